"""健康聚合器模块

并发执行全部依赖探测，归约为系统健康快照，并维护有界的滚动历史
"""

import asyncio
from collections import deque
from typing import Dict, Any, List, Optional, Tuple

from ..checkers.base import BaseDependencyProbe, DEFAULT_PROBE_TIMEOUT
from ..checkers.factory import probe_factory
from ..models.health_check import ProbeResult, SystemHealth, OverallStatus, round_half_up
from ..store.base import BaseStore
from ..utils.log_manager import get_logger

DEFAULT_HISTORY_SIZE = 24


class HealthAggregator:
    """健康聚合器

    history 只由 check_health() 写入；读取方拿到的都是元组副本。
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        """
        Args:
            history_size: 滚动历史容量，默认保留 24 次（每小时一次即 24 小时）
        """
        if history_size <= 0:
            raise ValueError("历史容量必须是正整数")

        self.history_size = history_size
        self.probes: Dict[str, BaseDependencyProbe] = {}
        self._history: deque = deque(maxlen=history_size)
        self.logger = get_logger('aggregator')

    def configure_probes(self, dependencies_config: Dict[str, Any],
                         store: Optional[BaseStore] = None,
                         default_timeout: float = DEFAULT_PROBE_TIMEOUT):
        """
        按配置创建探测器

        Args:
            dependencies_config: 依赖名 -> 探测配置
            store: 持久化存储，供 store 类型探测器使用
            default_timeout: 未单独配置 timeout 时的探测超时

        Raises:
            ProbeError: 探测器创建失败
        """
        self.probes.clear()

        for name, config in dependencies_config.items():
            config = dict(config)
            config.setdefault('timeout', default_timeout)
            try:
                self.add_probe(probe_factory.create_probe(name, config, store=store))
                self.logger.info(
                    f"配置依赖 {name}: 类型={config.get('type')}, 超时={config['timeout']}秒")
            except Exception as e:
                self.logger.error(f"配置依赖 {name} 失败: {e}")
                raise

    def add_probe(self, probe: BaseDependencyProbe):
        self.probes[probe.name] = probe

    @property
    def dependency_names(self) -> List[str]:
        return list(self.probes.keys())

    async def _run_probe(self, probe: BaseDependencyProbe) -> ProbeResult:
        return await probe.run()

    async def check_health(self) -> SystemHealth:
        """
        并发执行全部探测并记录快照

        等待所有探测结束（成功或失败），单个探测失败不会取消其他探测。

        Returns:
            SystemHealth: 本次健康快照
        """
        probes = list(self.probes.values())
        outcomes = await asyncio.gather(*(self._run_probe(p) for p in probes),
                                        return_exceptions=True)

        results = []
        for probe, outcome in zip(probes, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                self.logger.error(f"依赖 {probe.name} 探测逸出异常: {outcome!r}")
                outcome = ProbeResult(
                    dependency=probe.name,
                    probe_type=probe.probe_type,
                    is_healthy=False,
                    response_time=0.0,
                    error_message=str(outcome)
                )
            results.append(outcome)

        health = SystemHealth.from_results(results)
        self._history.append(health)

        log = self.logger.info if health.is_healthy else self.logger.warning
        log(f"系统健康检查完成: {health.overall.value} "
            f"(故障 {health.down_count}/{len(results)}: {', '.join(health.down_dependencies) or '无'})")
        return health

    @property
    def latest(self) -> Optional[SystemHealth]:
        return self._history[-1] if self._history else None

    def get_history(self) -> Tuple[SystemHealth, ...]:
        return tuple(self._history)

    def uptime_percentage(self) -> int:
        """
        滚动历史中 healthy 快照所占百分比

        历史为空时返回 100：尚无任何宕机证据。
        """
        if not self._history:
            return 100

        healthy = sum(1 for h in self._history if h.overall is OverallStatus.HEALTHY)
        return round_half_up(100 * healthy / len(self._history))

    def error_rate(self) -> int:
        """最近一次快照中故障依赖占已配置依赖的百分比"""
        latest = self.latest
        total = len(self.probes) or (len(latest.dependencies) if latest else 0)
        if latest is None or total == 0:
            return 0
        return round_half_up(100 * latest.down_count / total)

    def average_response_time(self) -> Optional[float]:
        """最近一次快照的平均探测耗时（毫秒）"""
        latest = self.latest
        if latest is None or not latest.results:
            return None
        total = sum(r.response_time for r in latest.results)
        return round(total / len(latest.results) * 1000, 1)

    def clear_history(self):
        self._history.clear()
