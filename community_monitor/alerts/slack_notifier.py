"""Slack 通知渠道"""

import asyncio
from typing import Dict, Any, List

import aiohttp

from .base import BaseNotifier
from ..models.health_check import Notification, AlertSeverity
from ..utils.exceptions import AlertConfigError, AlertSendError

SLACK_API_BASE = 'https://slack.com/api'


class SlackNotifier(BaseNotifier):
    """通过 chat.postMessage 向管理频道发送消息"""

    def __init__(self, name: str, config: Dict[str, Any]):
        super().__init__(name, config)
        self.token = config.get('token', '')
        self.channel = config.get('channel', '')
        self.api_base = config.get('api_base', SLACK_API_BASE).rstrip('/')

        if not self.validate_config():
            raise AlertConfigError(f"Slack通知渠道配置无效: {name}", notifier_name=name)

    def validate_config(self) -> bool:
        if not self.token:
            self.logger.error(f"Slack通知渠道 {self.name} 缺少token配置")
            return False
        if not self.channel:
            self.logger.error(f"Slack通知渠道 {self.name} 缺少channel配置")
            return False
        if self.max_retries < 0 or self.retry_delay < 0:
            self.logger.error(f"Slack通知渠道 {self.name} 重试配置不能为负数")
            return False
        return True

    def _build_blocks(self, notification: Notification) -> List[Dict[str, Any]]:
        if notification.severity is AlertSeverity.CRITICAL:
            text = (f"🚨 *CRITICAL ALERT*\n{notification.title or notification.text}"
                    f"\n\nPlease investigate immediately.")
        else:
            text = notification.text
        return [{'type': 'section', 'text': {'type': 'mrkdwn', 'text': text}}]

    async def _send_request(self, notification: Notification) -> bool:
        payload = {
            'channel': self.channel,
            'text': notification.text,
            'blocks': self._build_blocks(notification),
        }
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                        f'{self.api_base}/chat.postMessage',
                        json=payload,
                        headers={'Authorization': f'Bearer {self.token}'}) as response:
                    if response.status >= 300:
                        raise AlertSendError(f"Slack返回状态码 {response.status}",
                                             notifier_name=self.name)
                    body = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise AlertSendError(f"Slack请求失败: {e}", notifier_name=self.name, cause=e)
        except asyncio.TimeoutError as e:
            raise AlertSendError("Slack请求超时", notifier_name=self.name, cause=e)

        if not body.get('ok'):
            self.logger.error(f"Slack通知渠道 {self.name} 返回错误: {body.get('error')}")
            return False
        return True
