"""Webhook 通知渠道"""

import asyncio
import json
from typing import Dict, Any
from urllib.parse import urlparse

import aiohttp

from .base import BaseNotifier
from ..models.health_check import Notification
from ..utils.exceptions import AlertConfigError, AlertSendError

VALID_METHODS = ['GET', 'POST', 'PUT', 'PATCH']


class WebhookNotifier(BaseNotifier):
    """HTTP 通知渠道，把消息推送到任意 Webhook"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化Webhook通知渠道

        Args:
            name: 渠道名称
            config: 渠道配置
        """
        super().__init__(name, config)

        self.url = config.get('url', '')
        self.method = config.get('method', 'POST').upper()
        self.headers = config.get('headers', {})
        self.template = config.get('template', '')

        if not self.validate_config():
            raise AlertConfigError(f"Webhook通知渠道配置无效: {name}", notifier_name=name)

    def validate_config(self) -> bool:
        if not self.url:
            self.logger.error(f"Webhook通知渠道 {self.name} 缺少URL配置")
            return False

        parsed_url = urlparse(self.url)
        if not parsed_url.scheme or not parsed_url.netloc:
            self.logger.error(f"Webhook通知渠道 {self.name} URL格式无效: {self.url}")
            return False

        if self.method not in VALID_METHODS:
            self.logger.error(
                f"Webhook通知渠道 {self.name} 不支持的HTTP方法: {self.method}, "
                f"支持的方法: {VALID_METHODS}"
            )
            return False

        if self.max_retries < 0 or self.retry_delay < 0:
            self.logger.error(f"Webhook通知渠道 {self.name} 重试配置不能为负数")
            return False

        if self.template and '{{message}}' not in self.template:
            self.logger.warning(f"Webhook通知渠道 {self.name} 模板缺少变量: {{{{message}}}}")

        return True

    def _render_template(self, notification: Notification) -> str:
        """
        渲染 {{variable}} 模板，JSON 模板中的变量值会先转义

        Raises:
            AlertSendError: 渲染后的 JSON 无效
        """
        template_vars = {
            'message': notification.text,
            'severity': notification.severity.value,
            'title': notification.title or '',
            'timestamp': notification.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
        }

        is_json_template = self.template.strip().startswith('{') and \
            self.template.strip().endswith('}')

        rendered = self.template
        for key, value in template_vars.items():
            safe_value = json.dumps(value)[1:-1] if is_json_template else value
            rendered = rendered.replace(f'{{{{{key}}}}}', safe_value)

        if is_json_template:
            try:
                json.loads(rendered)
            except json.JSONDecodeError as e:
                self.logger.error(f"渲染后的JSON格式无效: {e}")
                raise AlertSendError(f"渲染后的JSON格式无效: {e}", notifier_name=self.name)

        return rendered

    def _prepare_request_data(self, notification: Notification) -> Dict[str, Any]:
        if self.method == 'GET':
            return {'params': {
                'message': notification.text,
                'severity': notification.severity.value,
                'timestamp': notification.timestamp.isoformat(),
            }}

        if not self.template:
            return {'json': {
                'message': notification.text,
                'severity': notification.severity.value,
                'title': notification.title,
                'timestamp': notification.timestamp.isoformat(),
                'metadata': notification.metadata,
            }}

        rendered = self._render_template(notification)
        try:
            return {'json': json.loads(rendered)}
        except json.JSONDecodeError:
            return {'data': rendered}

    async def _send_request(self, notification: Notification) -> bool:
        request_data = self._prepare_request_data(notification)
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        connector = aiohttp.TCPConnector(ssl=self.config.get('ssl_verify', True))

        try:
            async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
                async with session.request(self.method, self.url, headers=self.headers,
                                           **request_data) as response:
                    response_text = await response.text()
                    if 200 <= response.status < 300:
                        self.logger.debug(
                            f"Webhook通知渠道 {self.name} 发送成功 (状态码: {response.status})")
                        return True

                    self.logger.warning(
                        f"Webhook通知渠道 {self.name} 收到错误响应 "
                        f"(状态码: {response.status}, 响应: {response_text[:200]})"
                    )
                    return False

        except aiohttp.ClientError as e:
            raise AlertSendError(f"HTTP请求失败: {e}", notifier_name=self.name, cause=e)
        except asyncio.TimeoutError as e:
            raise AlertSendError("HTTP请求超时", notifier_name=self.name, cause=e)
