"""持久化存储往返探测器"""

from typing import Dict, Any

from .base import BaseDependencyProbe
from .factory import register_probe
from ..store.base import BaseStore


@register_probe('store')
class StoreProbe(BaseDependencyProbe):
    """通过存储协作方执行一次廉价的存在性查询"""

    requires_store = True

    def __init__(self, name: str, config: Dict[str, Any], store: BaseStore):
        super().__init__(name, config)
        self.store = store

    def validate_config(self) -> bool:
        return self.store is not None

    async def check_health(self) -> bool:
        return await self.store.check_reachable()
