from datetime import datetime, timezone
from typing import Any, Mapping, Optional, TextIO
import os

STATUS_EMOJI = {
    "INFO": "ℹ️",
    "WARN": "⚠️",
    "ERROR": "❌",
    "DEBUG": "🔍",
    "OK": "✅",
}

# Lower number = more severe
LOG_LEVELS = {
    "ERROR": 0,
    "WARN": 1,
    "WARNING": 1,
    "INFO": 2,
    "OK": 2,
    "DEBUG": 3,
}

CANONICAL_NAMES = {0: "ERROR", 1: "WARN", 2: "INFO", 3: "DEBUG"}


def _resolve_level(source: Mapping[str, Any], current: int) -> int:
    """LOG_LEVEL from source if recognised; JOURNAL_DEBUG=true forces DEBUG."""
    level = LOG_LEVELS.get(str(source.get("LOG_LEVEL") or "").upper(), current)
    if str(source.get("JOURNAL_DEBUG") or "false").lower() == "true":
        level = LOG_LEVELS["DEBUG"]
    return level


class LogUtil:
    """
    Journal service logger.

    The level is first taken from the environment, then again from the
    service config once SetupBase has loaded it. Lines go to stdout, or to
    `stream` when given, as `[ts][service][LEVEL]<emoji> message`.
    Logging must NEVER raise.
    """

    def __init__(self, service_name: str, stream: Optional[TextIO] = None):
        self.service_name = service_name
        self._stream = stream
        self.log_level = _resolve_level(os.environ, LOG_LEVELS["INFO"])
        self._configured = False

    @property
    def debug_enabled(self) -> bool:
        return self.log_level >= LOG_LEVELS["DEBUG"]

    @property
    def level_name(self) -> str:
        return CANONICAL_NAMES[self.log_level]

    def configure_from_config(self, config: Mapping[str, Any]) -> None:
        """Apply the config's level once; later calls are no-ops."""
        if self._configured:
            return
        try:
            self.log_level = _resolve_level(config, self.log_level)
            self._configured = True
            self.info(
                f"[LOG CONFIGURED] level={self.level_name}",
                emoji="🧪" if self.debug_enabled else "🔊",
            )
        except Exception:
            pass

    def _emit(self, level: str, message: str, emoji: str) -> None:
        try:
            if LOG_LEVELS[level] > self.log_level:
                return
            ts = datetime.now(timezone.utc).isoformat(timespec="seconds")
            line = f"[{ts}][{self.service_name}][{level}]{emoji or STATUS_EMOJI[level]} {message}"
            if self._stream is None:
                print(line)
            else:
                self._stream.write(line + "\n")
        except Exception:
            pass

    def info(self, message: str, emoji: str = ""):
        self._emit("INFO", message, emoji)

    def warn(self, message: str, emoji: str = ""):
        self._emit("WARN", message, emoji)

    def error(self, message: str, emoji: str = ""):
        self._emit("ERROR", message, emoji)

    def debug(self, message: str, emoji: str = ""):
        self._emit("DEBUG", message, emoji)

    def ok(self, message: str, emoji: str = ""):
        self._emit("OK", message, emoji)
