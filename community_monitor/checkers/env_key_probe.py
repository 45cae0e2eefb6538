"""环境变量密钥存在性探测器"""

import os

from .base import BaseDependencyProbe
from .factory import register_probe


@register_probe('env_key')
class EnvKeyProbe(BaseDependencyProbe):
    """检查所需的 API 密钥是否已配置

    用于无法免费实际调用的服务（如 LLM 接口），只要密钥存在即视为可用。
    """

    def _keys(self) -> list:
        keys = self.config.get('env', [])
        return [keys] if isinstance(keys, str) else list(keys)

    def validate_config(self) -> bool:
        keys = self._keys()
        return bool(keys) and all(isinstance(k, str) and k for k in keys)

    async def check_health(self) -> bool:
        missing = [key for key in self._keys() if not os.environ.get(key, '').strip()]
        if missing:
            self.logger.warning(f"依赖 {self.name} 缺少环境变量: {', '.join(missing)}")
            return False
        return True
