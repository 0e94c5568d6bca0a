from typing import Any, Dict

from app.logging.log_levels import LogLevel

LEVEL_PREFIXES = {
    LogLevel.ERROR: "❌ [ERROR]",
    LogLevel.WARNING: "⚠️  [WARNING]",
    LogLevel.INFO: "ℹ️  [INFO]",
    LogLevel.REQUEST: "🌐 [REQUEST]",
    LogLevel.SLOW: "🐌 [SLOW]",
    LogLevel.GREAT: "✅ [GREAT]",
}

# Keys already rendered in the prefix or not useful on a console line
_HIDDEN_KEYS = {"level", "module", "timestamp", "traceback"}


def _render_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def format_message(level: LogLevel, message: str, context: Dict[str, Any]) -> str:
    """Build a single console line: prefix, message and key=value context."""
    prefix = LEVEL_PREFIXES.get(level, f"[{level.value.upper()}]")
    extras = " ".join(
        f"{key}={_render_value(value)}"
        for key, value in context.items()
        if key not in _HIDDEN_KEYS and value is not None
    )
    if extras:
        return f"{prefix} {message} | {extras}"
    return f"{prefix} {message}"
