"""HTTP 接口可达性探测器"""

import aiohttp

from .base import BaseDependencyProbe
from .factory import register_probe
from ..utils.exceptions import ProbeError, ErrorCode

VALID_METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'HEAD', 'OPTIONS', 'PATCH']


@register_probe('restful')
class RestfulProbe(BaseDependencyProbe):
    """HTTP 接口探测器，例如 GitHub 的 /rate_limit"""

    def validate_config(self) -> bool:
        url = self.config.get('url')
        if not isinstance(url, str) or not url.startswith(('http://', 'https://')):
            return False

        if self.config.get('method', 'GET').upper() not in VALID_METHODS:
            return False

        expected_status = self.config.get('expected_status', 200)
        if isinstance(expected_status, list):
            return all(isinstance(s, int) and 100 <= s <= 599 for s in expected_status)
        return isinstance(expected_status, int) and 100 <= expected_status <= 599

    def _is_status_expected(self, status_code: int) -> bool:
        expected_status = self.config.get('expected_status', 200)

        if isinstance(expected_status, list):
            return status_code in expected_status
        return status_code == expected_status

    async def check_health(self) -> bool:
        """
        发送一次 HTTP 请求

        Raises:
            ProbeError: 状态码不符合期望
        """
        url = self.config['url']
        method = self.config.get('method', 'GET').upper()
        headers = {k: v for k, v in self.config.get('headers', {}).items() if v}

        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, url, headers=headers,
                                       params=self.config.get('params', {})) as response:
                if not self._is_status_expected(response.status):
                    raise ProbeError(
                        f"HTTP状态码不符合期望: {response.status}",
                        ErrorCode.INVALID_RESPONSE,
                        dependency=self.name,
                        probe_type='restful'
                    )
                self.logger.debug(f"{method} {url} -> {response.status}")
                return True
