"""
Application logger with level-specific formatting and keyword context.
"""
from app.logging.custom_logger import CustomLogger, get_logger
from app.logging.log_levels import LogLevel

__all__ = [
    'CustomLogger',
    'LogLevel',
    'get_logger',
]
