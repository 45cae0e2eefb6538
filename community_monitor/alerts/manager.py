"""通知管理器"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional, Type

from .base import BaseNotifier
from .slack_notifier import SlackNotifier
from .webhook_notifier import WebhookNotifier
from ..models.health_check import Notification, AlertSeverity
from ..utils.exceptions import AlertConfigError
from ..utils.log_manager import get_logger

NOTIFIER_TYPES: Dict[str, Type[BaseNotifier]] = {
    'slack': SlackNotifier,
    'webhook': WebhookNotifier,
    'http': WebhookNotifier,
}


class NotificationManager:
    """通知管理器，负责管理通知渠道并把消息并发推送到所有渠道

    对外只暴露返回 bool 的发送接口，任何渠道故障都不会向调用方抛出异常。
    """

    def __init__(self, notifier_configs: Optional[List[Dict[str, Any]]] = None,
                 duplicate_window: float = 300):
        """
        初始化通知管理器

        Args:
            notifier_configs: 通知渠道配置列表
            duplicate_window: 相同紧急告警的去重窗口（秒）
        """
        self.notifiers: List[BaseNotifier] = []
        self.logger = get_logger('notification_manager')

        # 告警去重相关
        self._alert_history: Dict[str, datetime] = {}
        self._duplicate_threshold = timedelta(seconds=duplicate_window)

        for config in notifier_configs or []:
            if not config.get('enabled', True):
                self.logger.info(f"通知渠道 {config.get('name')} 已禁用，跳过")
                continue
            self.add_notifier(self.create_notifier(config))

    @staticmethod
    def create_notifier(config: Dict[str, Any]) -> BaseNotifier:
        """
        根据配置创建通知渠道

        Raises:
            AlertConfigError: 类型不支持或配置无效
        """
        notifier_type = config.get('type')
        name = config.get('name') or notifier_type
        notifier_class = NOTIFIER_TYPES.get(notifier_type)
        if notifier_class is None:
            raise AlertConfigError(
                f"不支持的通知渠道类型: {notifier_type}, 支持的类型: {list(NOTIFIER_TYPES)}",
                notifier_name=name
            )
        return notifier_class(name, config)

    def add_notifier(self, notifier: BaseNotifier):
        """
        添加通知渠道

        Args:
            notifier: 通知渠道实例
        """
        if not isinstance(notifier, BaseNotifier):
            raise AlertConfigError(f"通知渠道必须继承自BaseNotifier: {type(notifier)}")

        self.notifiers.append(notifier)
        self.logger.info(f"已添加通知渠道: {notifier.name} ({notifier.notifier_type})")

    def get_notifier_names(self) -> List[str]:
        return [notifier.name for notifier in self.notifiers]

    async def post_critical_alert(self, message: str) -> bool:
        """
        推送紧急告警

        Args:
            message: 告警内容

        Returns:
            bool: 至少一个渠道发送成功（或在去重窗口内已发送过）
        """
        if not self.notifiers:
            self.logger.warning("没有配置通知渠道，跳过紧急告警发送")
            return False

        now = datetime.now()
        if self._should_deduplicate(message, now):
            self.logger.debug(f"紧急告警去重，跳过发送: {message}")
            return True

        results = await asyncio.gather(
            *(self._send_to_notifier(n, n.post_critical_alert(message)) for n in self.notifiers),
            return_exceptions=True
        )
        success = self._log_send_results(results, message)
        if success:
            self._record_alert(message, now)
        return success

    async def post_report(self, text: str) -> bool:
        """推送普通报告消息，不做去重"""
        if not self.notifiers:
            self.logger.warning("没有配置通知渠道，跳过报告发送")
            return False

        results = await asyncio.gather(
            *(self._send_to_notifier(n, n.send(Notification(text=text, severity=AlertSeverity.INFO)))
              for n in self.notifiers),
            return_exceptions=True
        )
        return self._log_send_results(results, text[:50])

    async def _send_to_notifier(self, notifier: BaseNotifier, send) -> Dict[str, Any]:
        try:
            success = await send
            return {'notifier': notifier.name, 'success': success, 'error': None}
        except Exception as e:
            self.logger.error(f"通知渠道 {notifier.name} 发送失败: {e}")
            return {'notifier': notifier.name, 'success': False, 'error': str(e)}

    def _should_deduplicate(self, message: str, now: datetime) -> bool:
        last_alert_time = self._alert_history.get(message)
        return last_alert_time is not None and now - last_alert_time < self._duplicate_threshold

    def _record_alert(self, message: str, now: datetime):
        self._alert_history[message] = now

        # 清理过期的告警历史
        expired_keys = [key for key, timestamp in self._alert_history.items()
                        if now - timestamp > self._duplicate_threshold * 2]
        for key in expired_keys:
            del self._alert_history[key]

    def _log_send_results(self, results: List[Any], subject: str) -> bool:
        """
        记录发送结果

        Returns:
            bool: 是否至少有一个渠道发送成功
        """
        success_count = 0
        failed_notifiers = []

        for result in results:
            if isinstance(result, Exception):
                self.logger.error(f"通知发送异常: {result}")
                continue

            if result['success']:
                success_count += 1
            else:
                failed_notifiers.append(result['notifier'])

        if success_count > 0:
            self.logger.info(
                f"通知发送成功 {success_count}/{len(self.notifiers)} 个渠道 (内容: {subject})"
            )

        if failed_notifiers:
            self.logger.warning(
                f"以下通知渠道发送失败: {', '.join(failed_notifiers)} (内容: {subject})"
            )

        return success_count > 0

    def clear_alert_history(self):
        """清空告警历史记录"""
        self._alert_history.clear()
        self.logger.info("已清空告警历史记录")
