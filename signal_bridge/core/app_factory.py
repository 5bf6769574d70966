from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.monitoring_service import MonitoringService
from ..application.services.signal_query_service import SignalQueryService
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import monitoring as monitoring_router
from ..presentation.api.routers import signals as signals_router
from ..presentation.websocket import routes as websocket_routes
from ..services.dedup import DeduplicationIndex
from ..services.events import EventDispatcher
from ..services.message_stream import SignalStreamManager
from ..services.metrics import PerformanceMetrics
from ..services.signal_parser import SignalParser
from ..services.signal_processor import SignalProcessor
from ..services.signal_writer import SignalFileWriter
from ..services.symbol_mapper import SymbolMapper
from ..services.telegram import TelegramMessageSource

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    container: Optional[ApplicationContainer] = None,
) -> FastAPI:
    """Build the ASGI app.

    Passing a prebuilt ``container`` skips wiring and Telegram startup, which
    is how the API is exercised in tests.
    """
    if container is not None:
        settings = container.settings
    settings = settings or Settings()

    app = FastAPI(title="Telegram Signal Bridge", lifespan=_create_lifespan(settings, container))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(monitoring_router.router)
    app.include_router(signals_router.router)
    app.include_router(websocket_routes.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        current: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {
            "ok": True,
            "telegram": current.telegram_source.get_status(),
            "monitoring": current.monitoring_service.is_active,
        }

    return app


def build_container(settings: Settings) -> ApplicationContainer:
    persistence = SQLitePersistence(settings.database_path)
    telegram = TelegramMessageSource(
        api_id=settings.telegram_api_id,
        api_hash=settings.telegram_api_hash,
        session_name=settings.telegram_session_name,
    )
    events = EventDispatcher(forward_debug=settings.stream_debug_events)
    stream_manager = SignalStreamManager()
    events.add_listener(stream_manager.handle_event)
    metrics = PerformanceMetrics()

    signal_path = settings.signal_file_path
    writer: Optional[SignalFileWriter] = None
    if signal_path is not None:
        writer = SignalFileWriter(
            signal_path,
            lock_timeout=settings.write_lock_timeout_seconds,
            duplicate_window=timedelta(minutes=settings.dedup_window_minutes),
        )
    else:
        logger.warning("EA_FILES_PATH is not set; parsed signals will not be delivered to the EA.")

    mapper = SymbolMapper.from_settings(
        aliases=settings.symbol_aliases,
        prefix=settings.symbol_prefix,
        suffix=settings.symbol_suffix,
        skip_prefix_suffix=settings.symbol_skip_prefix_suffix,
        allowed=settings.symbol_allowed,
        excluded=settings.symbol_excluded,
    )
    processor = SignalProcessor(
        SignalParser(mapper),
        writer,
        events,
        repository=persistence,
        metrics=metrics,
        history_limit=settings.signal_history_limit,
    )
    dedup = DeduplicationIndex(window=timedelta(minutes=settings.dedup_window_minutes))
    monitoring = MonitoringService(
        telegram,
        processor,
        dedup,
        events,
        writer=writer,
        metrics=metrics,
        resolver=telegram.resolve_channels,
        tick_interval=settings.poll_tick_ms / 1000,
        health_interval=settings.health_check_seconds,
        maintenance_interval=settings.maintenance_minutes * 60,
    )

    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        telegram_source=telegram,
        events=events,
        stream_manager=stream_manager,
        signal_processor=processor,
        monitoring_service=monitoring,
        signal_query_service=SignalQueryService(persistence, writer),
        signal_writer=writer,
    )


def _create_lifespan(settings: Settings, prebuilt: Optional[ApplicationContainer]):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if prebuilt is not None:
            app.state.container = prebuilt  # type: ignore[attr-defined]
            yield
            return

        configure_logging()
        container = build_container(settings)
        app.state.container = container  # type: ignore[attr-defined]

        if container.signal_writer is not None:
            container.signal_writer.reset_file()

        await container.telegram_source.start()
        if container.telegram_source.is_authorized and settings.channels:
            try:
                await container.monitoring_service.start_from_identifiers(settings.channels)
            except ValueError as exc:  # pragma: no cover
                logger.warning("Unable to start monitoring on startup: %s", exc)
        elif not container.telegram_source.is_authorized:
            logger.warning("Telegram session is not authorized; run scripts/authorize.py first.")

        try:
            yield
        finally:
            await container.monitoring_service.shutdown()
            await container.telegram_source.stop()
            container.persistence.close()

    return lifespan
