"""健康聚合器测试"""

import asyncio
import time
import pytest
from unittest.mock import Mock, AsyncMock

from community_monitor.checkers.base import BaseDependencyProbe
from community_monitor.models.health_check import OverallStatus, ProbeResult
from community_monitor.services.health_aggregator import HealthAggregator
from community_monitor.utils.exceptions import ProbeError


class FlagProbe(BaseDependencyProbe):
    """健康状态可由测试切换的探测器"""

    def __init__(self, name, healthy=True, delay=0.0, timeout=5):
        super().__init__(name, {'type': 'flag', 'timeout': timeout})
        self.healthy = healthy
        self.delay = delay

    async def check_health(self) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.healthy

    def validate_config(self) -> bool:
        return True


class BrokenProbe(FlagProbe):
    """run() 本身抛出异常的探测器"""

    async def run(self) -> ProbeResult:
        raise RuntimeError('探测器缺陷')


def build_aggregator(states, history_size=24):
    aggregator = HealthAggregator(history_size)
    probes = [FlagProbe(f'dep{i}', healthy) for i, healthy in enumerate(states)]
    for probe in probes:
        aggregator.add_probe(probe)
    return aggregator, probes


class TestHealthAggregator:
    """健康聚合器测试类"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize('total', [2, 3, 4, 5])
    async def test_reduction_over_n_dependencies(self, total):
        for down in range(total + 1):
            aggregator, _ = build_aggregator([False] * down + [True] * (total - down))

            health = await aggregator.check_health()

            assert health.down_count == down
            if down == 0:
                assert health.overall is OverallStatus.HEALTHY
            elif down == 1:
                assert health.overall is OverallStatus.DEGRADED
            else:
                assert health.overall is OverallStatus.DOWN

    @pytest.mark.asyncio
    async def test_boundary_one_versus_two_failures(self):
        """4 个依赖中 1 个故障为 degraded，2 个故障即为 down"""
        aggregator, probes = build_aggregator([True, True, True, False])
        assert (await aggregator.check_health()).overall is OverallStatus.DEGRADED

        probes[0].healthy = False
        health = await aggregator.check_health()
        assert health.down_count == 2
        assert health.overall is OverallStatus.DOWN

    @pytest.mark.asyncio
    async def test_no_dependencies_is_healthy(self):
        health = await HealthAggregator().check_health()

        assert health.overall is OverallStatus.HEALTHY
        assert health.down_count == 0

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self):
        aggregator = HealthAggregator()
        for i in range(4):
            aggregator.add_probe(FlagProbe(f'slow{i}', delay=0.2))

        start = time.monotonic()
        await aggregator.check_health()

        assert time.monotonic() - start < 0.6

    @pytest.mark.asyncio
    async def test_hung_probe_does_not_block_others(self):
        aggregator = HealthAggregator()
        aggregator.add_probe(FlagProbe('hung', delay=10, timeout=0.1))
        aggregator.add_probe(FlagProbe('ok'))

        health = await asyncio.wait_for(aggregator.check_health(), timeout=2)

        assert health.dependencies == {'hung': False, 'ok': True}
        assert health.overall is OverallStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_escaped_exception_is_unhealthy(self):
        aggregator = HealthAggregator()
        aggregator.add_probe(BrokenProbe('broken'))
        aggregator.add_probe(FlagProbe('ok'))

        health = await aggregator.check_health()

        assert health.dependencies['broken'] is False
        assert health.dependencies['ok'] is True
        broken = [r for r in health.results if r.dependency == 'broken'][0]
        assert '探测器缺陷' in broken.error_message

    @pytest.mark.asyncio
    async def test_history_eviction_by_content(self):
        aggregator, probes = build_aggregator([True, True])
        snapshots = []
        for _ in range(25):
            snapshots.append(await aggregator.check_health())

        history = aggregator.get_history()

        assert len(history) == 24
        assert history[0] is snapshots[1]
        assert history[-1] is snapshots[-1]
        assert all(h is not snapshots[0] for h in history)

    @pytest.mark.asyncio
    async def test_history_is_read_only_copy(self):
        aggregator, _ = build_aggregator([True])
        await aggregator.check_health()

        history = aggregator.get_history()
        assert isinstance(history, tuple)
        assert aggregator.latest is history[-1]

    def test_uptime_empty_history(self):
        assert HealthAggregator().uptime_percentage() == 100

    @pytest.mark.asyncio
    async def test_uptime_three_of_four(self):
        aggregator, probes = build_aggregator([True, True])
        for healthy in [True, True, False, True]:
            probes[0].healthy = healthy
            probes[1].healthy = healthy
            await aggregator.check_health()

        assert aggregator.uptime_percentage() == 75

    @pytest.mark.asyncio
    async def test_degraded_does_not_count_as_up(self):
        aggregator, probes = build_aggregator([True, False])
        await aggregator.check_health()

        assert aggregator.uptime_percentage() == 0

    @pytest.mark.asyncio
    async def test_error_rate_uses_configured_count(self):
        aggregator, _ = build_aggregator([False, True, True])
        assert aggregator.error_rate() == 0

        await aggregator.check_health()

        assert aggregator.error_rate() == 33

    @pytest.mark.asyncio
    async def test_uptime_rounds_half_up(self):
        aggregator, probes = build_aggregator([True])
        for healthy in [True] + [False] * 7:
            probes[0].healthy = healthy
            await aggregator.check_health()

        assert aggregator.uptime_percentage() == 13

    @pytest.mark.asyncio
    async def test_error_rate_rounds_half_up(self):
        aggregator, _ = build_aggregator([False] + [True] * 7)

        await aggregator.check_health()

        assert aggregator.error_rate() == 13

    @pytest.mark.asyncio
    async def test_average_response_time(self):
        aggregator, _ = build_aggregator([True, True])
        assert aggregator.average_response_time() is None

        await aggregator.check_health()

        assert aggregator.average_response_time() >= 0

    def test_invalid_history_size(self):
        with pytest.raises(ValueError):
            HealthAggregator(0)

    def test_configure_probes(self):
        aggregator = HealthAggregator()
        store = Mock()
        store.check_reachable = AsyncMock(return_value=True)

        aggregator.configure_probes({
            'Claude API': {'type': 'env_key', 'env': 'ANTHROPIC_API_KEY'},
            'Supabase API': {'type': 'store'},
        }, store=store, default_timeout=3)

        assert aggregator.dependency_names == ['Claude API', 'Supabase API']
        assert aggregator.probes['Claude API'].get_timeout() == 3

    def test_configure_probes_invalid(self):
        with pytest.raises(ProbeError):
            HealthAggregator().configure_probes({'x': {'type': 'unknown'}})

    @pytest.mark.asyncio
    async def test_clear_history(self):
        aggregator, _ = build_aggregator([True])
        await aggregator.check_health()
        aggregator.clear_history()

        assert aggregator.latest is None
        assert aggregator.uptime_percentage() == 100
