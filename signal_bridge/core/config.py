import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

DEFAULT_SIGNAL_FILE = "telegram_signals.txt"


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.telegram_api_id = self._get_int("TELEGRAM_API_ID")
        self.telegram_api_hash = self._get("TELEGRAM_API_HASH")
        self.telegram_session_name = os.getenv("TELEGRAM_SESSION_NAME", "telegram_session")
        self.telegram_phone_number = os.getenv("TELEGRAM_PHONE")
        self.channels = self._get_list("TELEGRAM_CHANNELS")
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/app.db")).resolve()

        ea_files_path = os.getenv("EA_FILES_PATH")
        self.ea_files_path = Path(ea_files_path).resolve() if ea_files_path else None
        self.ea_signal_file = os.getenv("EA_SIGNAL_FILE", DEFAULT_SIGNAL_FILE)

        self.symbol_aliases = self._get_mapping("SYMBOL_ALIASES")
        self.symbol_prefix = os.getenv("SYMBOL_PREFIX", "")
        self.symbol_suffix = os.getenv("SYMBOL_SUFFIX", "")
        self.symbol_skip_prefix_suffix = self._get_list("SYMBOL_SKIP_PREFIX_SUFFIX", upper=True)
        self.symbol_allowed = self._get_list("SYMBOL_ALLOWED", upper=True)
        self.symbol_excluded = self._get_list("SYMBOL_EXCLUDED", upper=True)

        self.signal_history_limit = self._get_int("SIGNAL_HISTORY_LIMIT", default=1000)
        self.poll_tick_ms = self._get_int("POLL_TICK_MS", default=500)
        self.dedup_window_minutes = self._get_int("DEDUP_WINDOW_MINUTES", default=10)
        self.write_lock_timeout_seconds = self._get_int("WRITE_LOCK_TIMEOUT_SECONDS", default=10)
        self.health_check_seconds = self._get_int("HEALTH_CHECK_SECONDS", default=60)
        self.maintenance_minutes = self._get_int("MAINTENANCE_MINUTES", default=5)
        self.stream_debug_events = self._get_bool("STREAM_DEBUG_EVENTS")

        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @property
    def signal_file_path(self) -> Optional[Path]:
        if self.ea_files_path is None:
            return None
        return self.ea_files_path / self.ea_signal_file

    @staticmethod
    def _get(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        value = os.getenv(key)
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    @staticmethod
    def _get_list(key: str, upper: bool = False) -> List[str]:
        raw = os.getenv(key)
        if not raw:
            return []
        items = [item.strip() for item in raw.split(",") if item.strip()]
        return [item.upper() for item in items] if upper else items

    @staticmethod
    def _get_mapping(key: str) -> Dict[str, str]:
        """Parse ``ALIAS=SYMBOL`` pairs separated by commas."""
        raw = os.getenv(key)
        if not raw:
            return {}
        mapping: Dict[str, str] = {}
        for item in raw.split(","):
            if not item.strip():
                continue
            alias, sep, target = item.partition("=")
            if not sep or not alias.strip() or not target.strip():
                raise RuntimeError(f"Environment variable {key} has a malformed entry: {item!r}")
            mapping[alias.strip().upper()] = target.strip().upper()
        return mapping
