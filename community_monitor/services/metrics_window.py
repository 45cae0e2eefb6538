"""时间窗口指标聚合"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Awaitable

from ..models.entities import TrackedEntity, WeeklyMetrics
from ..models.health_check import round_half_up
from ..store.base import BaseStore
from ..utils.log_manager import get_logger

LEARNER_TABLE = 'learner_profiles'
STANDUP_TABLE = 'standups'
PROGRESS_TABLE = 'progress_entries'


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetricsWindow:
    """最近 N 天的聚合指标，每次调用都重新查询，不做缓存

    各子指标是相互独立的查询，任意一个失败只会让该指标回退为 0，
    整体调用不会失败。
    """

    def __init__(self, store: BaseStore, window_days: int = 7,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        初始化指标窗口

        Args:
            store: 持久化存储
            window_days: 窗口天数
            clock: 返回当前时间的函数，默认使用 UTC 当前时间
        """
        if window_days <= 0:
            raise ValueError(f"窗口天数必须大于0: {window_days}")
        self.store = store
        self.window_days = window_days
        self.clock = clock or _utc_now
        self.logger = get_logger('metrics_window')

    async def _safe(self, name: str, query: Awaitable[int], failed: List[str]) -> int:
        try:
            return await query
        except Exception as e:
            self.logger.warning(f"指标 {name} 查询失败，使用默认值0: {e}")
            failed.append(name)
            return 0

    async def _average_completion_rate(self) -> int:
        entities = await self.store.fetch_entities()
        return self.mean_completion_rate(entities)

    @staticmethod
    def mean_completion_rate(entities: List[TrackedEntity]) -> int:
        """学员完成率的算术平均值（四舍五入取整），无学员时为 0"""
        if not entities:
            return 0
        return round_half_up(sum(e.completion_rate for e in entities) / len(entities))

    async def weekly_aggregate(self) -> WeeklyMetrics:
        """
        计算窗口内的聚合指标

        Returns:
            WeeklyMetrics: 聚合结果，失败的子指标列在 failed_metrics 中
        """
        window_end = self.clock()
        window_start = window_end - timedelta(days=self.window_days)
        failed: List[str] = []

        queries = {
            'standups': self.store.count(STANDUP_TABLE, since=window_start),
            'mentor_sessions': self.store.count(
                PROGRESS_TABLE, since=window_start,
                filters={'activity_type': 'mentor_session'}),
            'pair_sessions': self.store.count(
                PROGRESS_TABLE, since=window_start,
                filters={'activity_type': 'pair_programming'}),
            'challenges_completed': self.store.count(
                PROGRESS_TABLE, since=window_start,
                filters={'activity_type': 'challenge', 'status': 'completed'}),
            'new_entities': self.store.count(LEARNER_TABLE, since=window_start),
            'total_entities': self.store.count(LEARNER_TABLE),
            'active_entities': self.store.count(
                LEARNER_TABLE, since=window_start, time_field='last_active'),
            'average_completion_rate': self._average_completion_rate(),
        }

        values = await asyncio.gather(
            *(self._safe(name, query, failed) for name, query in queries.items())
        )

        metrics = WeeklyMetrics(
            window_start=window_start,
            window_end=window_end,
            failed_metrics=sorted(failed),
            **dict(zip(queries.keys(), values))
        )

        if failed:
            self.logger.warning(f"周指标部分缺失: {', '.join(metrics.failed_metrics)}")
        else:
            self.logger.debug(f"周指标计算完成: {metrics.to_dict()}")

        return metrics

    async def top_performers(self, limit: int = 5) -> List[TrackedEntity]:
        """完成挑战最多的学员，查询失败时返回空列表"""
        try:
            return await self.store.fetch_top_entities('challenges_completed', limit)
        except Exception as e:
            self.logger.warning(f"查询优秀学员失败: {e}")
            return []
