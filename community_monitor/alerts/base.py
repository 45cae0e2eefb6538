"""通知渠道基类"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from ..models.health_check import Notification, AlertSeverity
from ..utils.exceptions import AlertSendError
from ..utils.log_manager import get_logger

CRITICAL_PREFIX = '🚨 CRITICAL ALERT'


class BaseNotifier(ABC):
    """通知渠道抽象基类

    子类实现 _send_request()；send() 负责指数退避重试，紧急告警只发送一次。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化通知渠道

        Args:
            name: 渠道名称
            config: 渠道配置参数
        """
        self.name = name
        self.config = config
        self.notifier_type = self.__class__.__name__.replace('Notifier', '').lower()
        self.logger = get_logger(f'notifier.{self.notifier_type}.{self.name}')

        self.max_retries = config.get('max_retries', 3)
        self.retry_delay = config.get('retry_delay', 1.0)  # 秒
        self.retry_backoff = config.get('retry_backoff', 2.0)  # 指数退避倍数

    @abstractmethod
    async def _send_request(self, notification: Notification) -> bool:
        """
        发送一次请求

        Returns:
            bool: 对端是否确认接收

        Raises:
            AlertSendError: 网络或协议错误
        """

    @abstractmethod
    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """

    def get_timeout(self) -> int:
        return self.config.get('timeout', 30)

    async def send(self, notification: Notification, max_retries: Optional[int] = None) -> bool:
        """
        发送通知，失败时按配置重试

        Args:
            notification: 通知内容
            max_retries: 本次发送的最大重试次数，默认使用渠道配置

        Returns:
            bool: 发送是否成功

        Raises:
            AlertSendError: 所有重试均失败
        """
        if max_retries is None:
            max_retries = self.max_retries

        for attempt in range(max_retries + 1):
            try:
                if await self._send_request(notification):
                    if attempt > 0:
                        self.logger.info(f"通知渠道 {self.name} 重试第 {attempt} 次后发送成功")
                    return True
                self.logger.warning(f"通知渠道 {self.name} 对端拒绝了消息")
                return False

            except Exception as e:
                self.logger.warning(
                    f"通知渠道 {self.name} 发送失败 (尝试 {attempt + 1}/{max_retries + 1}): {e}"
                )
                if attempt < max_retries:
                    delay = self.retry_delay * (self.retry_backoff ** attempt)
                    self.logger.debug(f"等待 {delay:.2f} 秒后重试")
                    await asyncio.sleep(delay)
                else:
                    self.logger.error(f"通知渠道 {self.name} 发送失败，放弃发送")
                    raise AlertSendError(f"通知发送失败: {e}", notifier_name=self.name,
                                         cause=e)

        return False

    async def send_message(self, text: str) -> bool:
        """发送一条普通文本消息"""
        return await self.send(Notification(text=text))

    async def post_critical_alert(self, message: str) -> bool:
        """发送紧急告警

        只尝试一次，不在当前监控周期内重试。
        """
        return await self.send(Notification(
            text=f"{CRITICAL_PREFIX}: {message}",
            severity=AlertSeverity.CRITICAL,
            title=message
        ), max_retries=0)
