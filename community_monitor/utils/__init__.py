"""工具模块"""

from .exceptions import (
    ErrorCode, MonitorError, ConfigError, ProbeError, AlertError, StoreError,
    SchedulerError, AuthorizationError
)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'ErrorCode', 'MonitorError', 'ConfigError', 'ProbeError', 'AlertError', 'StoreError',
    'SchedulerError', 'AuthorizationError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]
