"""监控调度器测试模块"""

import asyncio
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, AsyncMock

from community_monitor.alerts.engine import AlertEngine, CYCLE_FAILURE_MESSAGE, DOWN_MESSAGE
from community_monitor.checkers.base import BaseDependencyProbe
from community_monitor.models.entities import TrackedEntity, CapacityRecord
from community_monitor.models.health_check import OverallStatus, AlertCategory
from community_monitor.services.health_aggregator import HealthAggregator
from community_monitor.services.metrics_window import MetricsWindow
from community_monitor.services.monitor_scheduler import MonitorScheduler
from community_monitor.services.risk_scorer import RiskScorer
from community_monitor.utils.exceptions import ErrorCode, SchedulerError, StoreError

# 2024-03-10 是周日
SUNDAY_EVENING = datetime(2024, 3, 10, 20, 15)


class MockProbe(BaseDependencyProbe):
    """模拟依赖探测器"""

    def __init__(self, name, healthy=True):
        super().__init__(name, {'type': 'mock'})
        self.healthy = healthy
        self.check_count = 0

    async def check_health(self) -> bool:
        self.check_count += 1
        return self.healthy

    def validate_config(self) -> bool:
        return True


def make_store(entities=None, capacity=None):
    store = Mock()
    store.fetch_entities = AsyncMock(return_value=entities or [])
    store.fetch_capacity_records = AsyncMock(return_value=capacity or [])
    store.count = AsyncMock(return_value=0)
    store.fetch_top_entities = AsyncMock(return_value=[])
    return store


class TestMonitorScheduler:
    """监控调度器测试类"""

    def setup_method(self):
        self.probes = [MockProbe('GitHub API'), MockProbe('Slack API'), MockProbe('Supabase API')]
        self.aggregator = HealthAggregator()
        for probe in self.probes:
            self.aggregator.add_probe(probe)

        self.notifier = Mock()
        self.notifier.post_critical_alert = AsyncMock(return_value=True)
        self.engine = AlertEngine(notifier=self.notifier)
        self.store = make_store()
        self.clock = Mock(return_value=SUNDAY_EVENING)
        self.scheduler = MonitorScheduler(
            self.aggregator, self.engine, RiskScorer(7),
            MetricsWindow(self.store, clock=lambda: datetime(2024, 3, 10, tzinfo=timezone.utc)),
            self.store, check_interval=3600, clock=self.clock
        )

    def test_init(self):
        assert not self.scheduler.is_running
        assert self.scheduler.cycle_count == 0
        assert self.scheduler.get_health() is None
        assert self.scheduler.get_uptime() == 100
        assert self.scheduler.get_active_alerts() == []

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            MonitorScheduler(self.aggregator, self.engine, RiskScorer(7),
                             MetricsWindow(self.store), self.store, check_interval=0)

    @pytest.mark.asyncio
    async def test_run_cycle_healthy(self):
        callback = AsyncMock()
        self.scheduler.set_cycle_result_callback(callback)

        health = await self.scheduler.run_cycle()

        assert health.overall is OverallStatus.HEALTHY
        assert self.scheduler.get_health() is health
        assert self.scheduler.last_cycle_time == SUNDAY_EVENING
        callback.assert_awaited_once_with(health)

    @pytest.mark.asyncio
    async def test_run_cycle_down(self):
        self.probes[0].healthy = False
        self.probes[1].healthy = False

        await self.scheduler.run_cycle()

        assert f'🔴 {DOWN_MESSAGE}' in self.scheduler.get_active_alerts()
        self.notifier.post_critical_alert.assert_awaited_once_with(DOWN_MESSAGE)

    @pytest.mark.asyncio
    async def test_entity_and_capacity_alerts(self):
        self.store.fetch_entities.return_value = [
            TrackedEntity('a', days_inactive=15, completion_rate=80),
            TrackedEntity('b', days_inactive=8, completion_rate=80),
        ]
        self.store.fetch_capacity_records.return_value = [
            CapacityRecord('m1', current_load=3, max_load=3),
            CapacityRecord('m2', current_load=0, max_load=3),
        ]

        await self.scheduler.run_cycle()

        alerts = self.scheduler.get_active_alerts()
        assert '🟡 1 learners critically inactive (14+ days)' in alerts
        assert '⚠️ 2 learners inactive for 7+ days' in alerts
        assert '👥 1 mentors at or near capacity' in alerts

    @pytest.mark.asyncio
    async def test_store_failure_keeps_previous_alerts(self):
        self.store.fetch_entities.return_value = [TrackedEntity('a', days_inactive=9,
                                                                completion_rate=80)]
        await self.scheduler.run_cycle()

        self.store.fetch_entities.side_effect = StoreError('learner_profiles 不可达')
        health = await self.scheduler.run_cycle()

        assert health is not None
        assert '⚠️ 1 learners inactive for 7+ days' in self.scheduler.get_active_alerts()
        assert CYCLE_FAILURE_MESSAGE not in self.scheduler.get_active_alerts()

    @pytest.mark.asyncio
    async def test_cycle_failure_alert_lifecycle(self):
        error_callback = AsyncMock()
        self.scheduler.set_cycle_error_callback(error_callback)
        self.store.fetch_capacity_records.side_effect = RuntimeError('意外的数据格式')

        assert await self.scheduler.run_cycle() is None
        assert await self.scheduler.run_cycle() is None

        assert self.scheduler.get_active_alerts().count(CYCLE_FAILURE_MESSAGE) == 1
        assert self.scheduler.failed_cycle_count == 2
        assert error_callback.await_count == 2
        error = error_callback.await_args.args[0]
        assert isinstance(error, SchedulerError)
        assert error.error_code is ErrorCode.CYCLE_EXECUTION_ERROR
        assert error.details == {'task_name': 'run_cycle'}
        assert isinstance(error.cause, RuntimeError)

        self.store.fetch_capacity_records.side_effect = None
        self.store.fetch_capacity_records.return_value = []
        assert await self.scheduler.run_cycle() is not None

        assert CYCLE_FAILURE_MESSAGE not in self.scheduler.get_active_alerts()
        assert self.engine.get_alerts(AlertCategory.MONITOR) == []

    @pytest.mark.asyncio
    async def test_callback_failure_does_not_fail_cycle(self):
        self.scheduler.set_cycle_result_callback(AsyncMock(side_effect=RuntimeError('回调失败')))

        assert await self.scheduler.run_cycle() is not None
        assert self.scheduler.failed_cycle_count == 0

    @pytest.mark.asyncio
    async def test_cycles_are_serialized(self):
        active = 0
        overlap = []

        async def slow_fetch():
            nonlocal active
            active += 1
            overlap.append(active)
            await asyncio.sleep(0.05)
            active -= 1
            return []

        self.store.fetch_entities = AsyncMock(side_effect=slow_fetch)

        await asyncio.gather(*(self.scheduler.run_cycle() for _ in range(3)))

        assert max(overlap) == 1
        assert self.scheduler.cycle_count == 3
        assert len(self.aggregator.get_history()) == 3

    @pytest.mark.asyncio
    async def test_get_at_risk_entities(self):
        self.store.fetch_entities.return_value = [
            TrackedEntity('a', days_inactive=3, completion_rate=80),
            TrackedEntity('b', days_inactive=9, completion_rate=80),
        ]

        at_risk = await self.scheduler.get_at_risk_entities()
        assert [e.entity_id for e in at_risk] == ['b']

        self.store.fetch_entities.side_effect = StoreError('timeout')
        assert await self.scheduler.get_at_risk_entities() == []

    def test_should_run_cycle(self):
        assert self.scheduler._should_run_cycle(SUNDAY_EVENING)

        self.scheduler.last_cycle_time = datetime(2024, 3, 10, 19, 30)
        assert not self.scheduler._should_run_cycle(datetime(2024, 3, 10, 20, 0))
        assert self.scheduler._should_run_cycle(datetime(2024, 3, 10, 20, 30))

    def test_weekly_report_schedule(self):
        assert not self.scheduler._should_send_weekly_report(SUNDAY_EVENING)

        self.scheduler.set_weekly_report_callback(AsyncMock())
        assert self.scheduler._should_send_weekly_report(SUNDAY_EVENING)
        assert not self.scheduler._should_send_weekly_report(datetime(2024, 3, 10, 19, 59))
        assert not self.scheduler._should_send_weekly_report(datetime(2024, 3, 9, 20, 0))

        self.scheduler.last_report_date = SUNDAY_EVENING.date()
        assert not self.scheduler._should_send_weekly_report(SUNDAY_EVENING)

    @pytest.mark.asyncio
    async def test_send_weekly_report(self):
        callback = AsyncMock()
        self.scheduler.set_weekly_report_callback(callback)

        await self.scheduler._send_weekly_report(SUNDAY_EVENING)

        report = callback.await_args.args[0]
        assert report['week_ending'] == '2024-03-10'
        assert self.scheduler.last_report_date == SUNDAY_EVENING.date()

    @pytest.mark.asyncio
    async def test_weekly_report_engagement(self):
        async def count(table, since=None, filters=None, time_field='created_at'):
            if table != 'learner_profiles':
                return 0
            if time_field == 'last_active':
                return 9
            return 3 if since else 12

        self.store.count = AsyncMock(side_effect=count)

        report = await self.scheduler.build_weekly_report()

        assert report['total_entities'] == 12
        assert report['new_entities'] == 3
        assert report['engagement_rate'] == 75
        assert report['uptime_percentage'] == 100

    @pytest.mark.asyncio
    async def test_weekly_report_engagement_rounds_half_up(self):
        async def count(table, since=None, filters=None, time_field='created_at'):
            if table != 'learner_profiles':
                return 0
            if time_field == 'last_active':
                return 1
            return 0 if since else 8

        self.store.count = AsyncMock(side_effect=count)

        report = await self.scheduler.build_weekly_report()

        assert report['engagement_rate'] == 13

    @pytest.mark.asyncio
    async def test_weekly_report_empty_population(self):
        report = await self.scheduler.build_weekly_report()

        assert report['engagement_rate'] == 0
        assert report['top_performers'] == []

    @pytest.mark.asyncio
    async def test_dashboard_runs_first_cycle(self):
        self.store.fetch_entities.return_value = [
            TrackedEntity(str(i), days_inactive=10 + i, completion_rate=80) for i in range(7)
        ]

        dashboard = await self.scheduler.build_dashboard()

        assert self.scheduler.cycle_count == 1
        assert dashboard['health']['overall'] == 'healthy'
        assert dashboard['system']['uptime_percentage'] == 100
        assert dashboard['system']['error_rate'] == 0
        assert dashboard['at_risk_count'] == 7
        assert [e['entity_id'] for e in dashboard['at_risk']] == ['6', '5', '4', '3', '2']

    @pytest.mark.asyncio
    async def test_dashboard_reuses_snapshot(self):
        await self.scheduler.run_cycle()

        await self.scheduler.build_dashboard()

        assert self.scheduler.cycle_count == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        task = asyncio.create_task(self.scheduler.start())
        await asyncio.sleep(0.1)

        assert self.scheduler.is_running
        assert self.scheduler.cycle_count == 1

        await self.scheduler.stop()
        await asyncio.wait_for(task, timeout=2)

        assert not self.scheduler.is_running

    @pytest.mark.asyncio
    async def test_start_cancelled(self):
        task = asyncio.create_task(self.scheduler.start())
        await asyncio.sleep(0.1)

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert not self.scheduler.is_running

    def test_scheduler_stats(self):
        stats = self.scheduler.get_scheduler_stats()

        assert stats['configured_dependencies'] == ['GitHub API', 'Slack API', 'Supabase API']
        assert stats['last_cycle_time'] is None
        assert stats['next_cycle_time'] is None
        assert stats['weekly_report_enabled'] is True
