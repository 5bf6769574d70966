from dataclasses import dataclass
from typing import Optional

from ..application.services.monitoring_service import MonitoringService
from ..application.services.signal_query_service import SignalQueryService
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..services.events import EventDispatcher
from ..services.message_stream import SignalStreamManager
from ..services.signal_processor import SignalProcessor
from ..services.signal_writer import SignalFileWriter
from ..services.telegram import TelegramMessageSource
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: SQLitePersistence
    telegram_source: TelegramMessageSource
    events: EventDispatcher
    stream_manager: SignalStreamManager
    signal_processor: SignalProcessor
    monitoring_service: MonitoringService
    signal_query_service: SignalQueryService
    signal_writer: Optional[SignalFileWriter] = None
