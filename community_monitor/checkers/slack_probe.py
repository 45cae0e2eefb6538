"""Slack 鉴权握手探测器"""

import aiohttp

from .base import BaseDependencyProbe
from .factory import register_probe
from ..utils.exceptions import ProbeError, ErrorCode

SLACK_API_BASE = 'https://slack.com/api'


@register_probe('slack')
class SlackProbe(BaseDependencyProbe):
    """调用 auth.test 验证机器人令牌和 Slack API 可达"""

    def validate_config(self) -> bool:
        token = self.config.get('token')
        return isinstance(token, str)

    async def check_health(self) -> bool:
        token = self.config.get('token')
        if not token:
            raise ProbeError("未配置 Slack 令牌", ErrorCode.AUTHENTICATION_ERROR,
                             dependency=self.name, probe_type='slack')

        url = f"{self.config.get('api_base', SLACK_API_BASE)}/auth.test"
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                    url, headers={'Authorization': f'Bearer {token}'}) as response:
                if response.status != 200:
                    raise ProbeError(f"auth.test 返回状态码 {response.status}",
                                     ErrorCode.SERVICE_UNAVAILABLE,
                                     dependency=self.name, probe_type='slack')
                body = await response.json(content_type=None)

        if not body.get('ok'):
            raise ProbeError(f"auth.test 失败: {body.get('error', 'unknown')}",
                             ErrorCode.AUTHENTICATION_ERROR,
                             dependency=self.name, probe_type='slack')
        return True
