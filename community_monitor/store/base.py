"""持久化存储协作方接口"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, List, Optional

from ..models.entities import TrackedEntity, CapacityRecord


class BaseStore(ABC):
    """学员/指标存储抽象基类

    所有方法在数据源不可达或查询失败时抛出 StoreError，
    空结果（0 或空列表）只表示确实没有数据。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        self.name = name
        self.config = config

    @abstractmethod
    async def fetch_entities(self) -> List[TrackedEntity]:
        """批量读取全部学员记录"""

    @abstractmethod
    async def fetch_capacity_records(self) -> List[CapacityRecord]:
        """读取全部在岗导师的负载记录"""

    @abstractmethod
    async def count(self, table: str, since: Optional[datetime] = None,
                    filters: Optional[Dict[str, Any]] = None,
                    time_field: str = 'created_at') -> int:
        """带过滤条件的计数查询

        Args:
            table: 表名
            since: 只统计 time_field >= since 的记录
            filters: 等值过滤条件
            time_field: 时间窗口所用字段
        """

    @abstractmethod
    async def fetch_top_entities(self, order_by: str, limit: int) -> List[TrackedEntity]:
        """按指定字段降序读取前 limit 个学员"""

    @abstractmethod
    async def check_reachable(self) -> bool:
        """廉价的存在性查询，用于依赖探测"""

    async def close(self):
        """释放底层连接"""

    def get_timeout(self) -> int:
        return self.config.get('timeout', 10)
