"""
Custom logger with domain-friendly levels.

Levels: warning, info, request, error, slow, great
"""
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from app.logging.formatters import format_message
from app.logging.log_levels import LogLevel


class CustomLogger:
    """
    Thin wrapper over a standard logger that accepts keyword context.

    Usage:
        logger = CustomLogger("app.services.teams")
        logger.info("Team created", team_id=12, user_id=3)
        logger.error("Transfer failed", exc_info=True, team_id=12)
        logger.slow("Slow request", duration=2.4, path="/api/tasks")
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _log(
        self,
        level: LogLevel,
        message: str,
        exc_info: bool = False,
        **context: Any
    ) -> None:
        log_data = {
            "level": level.value,
            "module": self.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **context
        }

        if exc_info:
            log_data["traceback"] = self._get_clean_traceback()

        self.logger.log(
            level.stdlib_level,
            format_message(level, message, log_data),
            extra={"custom_data": log_data},
            exc_info=exc_info
        )

    def _get_clean_traceback(self) -> str:
        """Current traceback without blank lines, duplicates or library frames."""
        seen = set()
        clean_lines = []
        for line in traceback.format_exc().split('\n'):
            if not line.strip() or line in seen:
                continue
            if 'site-packages' in line:
                continue
            seen.add(line)
            clean_lines.append(line)
        return '\n'.join(clean_lines)

    def warning(self, message: str, **context: Any) -> None:
        """
        Something deserves attention but is not a failure.

        Example:
            logger.warning("Reset requested for unknown email")
        """
        self._log(LogLevel.WARNING, message, **context)

    def info(self, message: str, **context: Any) -> None:
        """
        Notable system event.

        Example:
            logger.info("User registered", user_id=123)
        """
        self._log(LogLevel.INFO, message, **context)

    def request(
        self,
        message: str,
        method: str,
        path: str,
        status_code: int,
        duration: float,
        **context: Any
    ) -> None:
        """
        HTTP request summary.

        Example:
            logger.request(
                "API request",
                method="POST",
                path="/api/auth/login",
                status_code=200,
                duration=0.152
            )
        """
        self._log(
            LogLevel.REQUEST,
            message,
            method=method,
            path=path,
            status_code=status_code,
            duration=duration,
            **context
        )

    def error(
        self,
        message: str,
        exc_info: bool = True,
        **context: Any
    ) -> None:
        """
        Failure that needs attention.

        Example:
            try:
                ...
            except Exception:
                logger.error("Could not transfer ownership", team_id=4)
        """
        self._log(LogLevel.ERROR, message, exc_info=exc_info, **context)

    def slow(
        self,
        message: str,
        duration: float,
        threshold: float = 1.0,
        **context: Any
    ) -> None:
        """
        Operation slower than its threshold.

        Example:
            logger.slow("Slow request", duration=5.2, threshold=1.0, path="/api/tasks")
        """
        self._log(
            LogLevel.SLOW,
            message,
            duration=duration,
            threshold=threshold,
            **context
        )

    def great(self, message: str, **context: Any) -> None:
        """
        Positive milestone worth highlighting.

        Example:
            logger.great("Ownership transferred", team_id=3)
        """
        self._log(LogLevel.GREAT, message, **context)


_loggers: Dict[str, CustomLogger] = {}


def get_logger(name: str) -> CustomLogger:
    """
    Return the shared CustomLogger for ``name``.

    Usage:
        from app.logging import get_logger
        logger = get_logger(__name__)
    """
    if name not in _loggers:
        _loggers[name] = CustomLogger(name)
    return _loggers[name]
