"""自定义异常类和错误代码"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002

    # 依赖探测错误 (3000-3999)
    PROBE_INITIALIZATION_ERROR = 3000
    CONNECTION_ERROR = 3001
    AUTHENTICATION_ERROR = 3003
    SERVICE_UNAVAILABLE = 3005
    INVALID_RESPONSE = 3006

    # 告警错误 (4000-4999)
    ALERT_CONFIG_ERROR = 4000
    ALERT_SEND_ERROR = 4001

    # 调度错误 (5000-5999)
    SCHEDULER_ERROR = 5000
    CYCLE_EXECUTION_ERROR = 5001

    # 持久化存储错误 (6000-6999)
    STORE_QUERY_ERROR = 6001
    STORE_UNREACHABLE = 6002

    # 权限错误 (7000-7999)
    AUTHORIZATION_ERROR = 7000


class MonitorError(Exception):
    """监控系统基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': traceback.format_exc() if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(MonitorError):
    """配置相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if config_path:
            details['config_path'] = config_path
        super().__init__(message, error_code, details, **kwargs)


class ProbeError(MonitorError):
    """依赖探测器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONNECTION_ERROR,
        dependency: Optional[str] = None,
        probe_type: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if dependency:
            details['dependency'] = dependency
        if probe_type:
            details['probe_type'] = probe_type
        super().__init__(message, error_code, details, **kwargs)


class AlertError(MonitorError):
    """告警相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.ALERT_SEND_ERROR,
        notifier_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if notifier_name:
            details['notifier_name'] = notifier_name
        super().__init__(message, error_code, details, **kwargs)


class AlertConfigError(AlertError):
    """告警配置异常"""

    def __init__(self, message: str, notifier_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.ALERT_CONFIG_ERROR,
            notifier_name=notifier_name,
            recoverable=False,
            **kwargs
        )


class AlertSendError(AlertError):
    """告警发送异常"""

    def __init__(self, message: str, notifier_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.ALERT_SEND_ERROR,
            notifier_name=notifier_name,
            recoverable=True,
            **kwargs
        )


class StoreError(MonitorError):
    """持久化存储访问异常

    与"查询结果为空"区分：凡是数据源不可达或查询失败都抛出该异常。
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STORE_QUERY_ERROR,
        table: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if table:
            details['table'] = table
        super().__init__(message, error_code, details, **kwargs)


class SchedulerError(MonitorError):
    """调度器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        task_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if task_name:
            details['task_name'] = task_name
        super().__init__(message, error_code, details, **kwargs)


class AuthorizationError(MonitorError):
    """管理员权限校验失败"""

    def __init__(self, message: str, user_id: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if user_id:
            details['user_id'] = user_id
        super().__init__(
            message,
            ErrorCode.AUTHORIZATION_ERROR,
            details,
            recoverable=False,
            **kwargs
        )
