"""监控调度器模块

负责按固定间隔执行监控周期、定时生成周报，并对外提供查询接口
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional, Callable, Awaitable

from .health_aggregator import HealthAggregator
from .metrics_window import MetricsWindow
from .risk_scorer import RiskScorer
from ..alerts.engine import AlertEngine
from ..models.entities import TrackedEntity, WeeklyMetrics
from ..models.health_check import SystemHealth, AlertKind, AlertCategory, round_half_up
from ..store.base import BaseStore
from ..utils.exceptions import ErrorCode, SchedulerError, StoreError
from ..utils.log_manager import get_logger

DEFAULT_CHECK_INTERVAL = 3600
DASHBOARD_AT_RISK_LIMIT = 5


class MonitorScheduler:
    """监控调度器

    监控周期是健康历史和活动告警的唯一写入方，通过锁串行执行；
    查询接口只读取快照，可以被任意数量的请求并发调用。
    """

    def __init__(self, aggregator: HealthAggregator, alert_engine: AlertEngine,
                 risk_scorer: RiskScorer, metrics_window: MetricsWindow, store: BaseStore,
                 check_interval: int = DEFAULT_CHECK_INTERVAL,
                 weekly_report_config: Optional[Dict[str, Any]] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """初始化监控调度器

        Args:
            aggregator: 健康聚合器
            alert_engine: 告警引擎
            risk_scorer: 学员风险评估
            metrics_window: 周指标聚合
            store: 持久化存储
            check_interval: 监控周期间隔（秒）
            weekly_report_config: 周报配置，包含 enabled/weekday/hour
            clock: 返回当前本地时间的函数
        """
        if check_interval <= 0:
            raise ValueError("检查间隔必须是正整数")

        self.aggregator = aggregator
        self.alert_engine = alert_engine
        self.risk_scorer = risk_scorer
        self.metrics_window = metrics_window
        self.store = store
        self.check_interval = check_interval
        self.clock = clock or datetime.now

        weekly_report_config = weekly_report_config or {}
        self.weekly_report_enabled = weekly_report_config.get('enabled', True)
        self.weekly_report_weekday = weekly_report_config.get('weekday', 6)  # 周日
        self.weekly_report_hour = weekly_report_config.get('hour', 20)

        self.is_running = False
        self.last_cycle_time: Optional[datetime] = None
        self.last_report_date = None
        self.cycle_count = 0
        self.failed_cycle_count = 0
        self._cycle_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self.logger = get_logger('scheduler')

        # 回调函数
        self.on_cycle_result: Optional[Callable[[SystemHealth], Awaitable[None]]] = None
        self.on_cycle_error: Optional[Callable[[SchedulerError], Awaitable[None]]] = None
        self.on_weekly_report: Optional[Callable[[Dict[str, Any]], Awaitable[None]]] = None

    def set_cycle_result_callback(self, callback: Callable[[SystemHealth], Awaitable[None]]):
        """设置监控周期完成回调函数

        Args:
            callback: 回调函数，参数为本次健康快照
        """
        self.on_cycle_result = callback

    def set_cycle_error_callback(self, callback: Callable[[SchedulerError], Awaitable[None]]):
        """设置监控周期失败回调函数"""
        self.on_cycle_error = callback

    def set_weekly_report_callback(self, callback: Callable[[Dict[str, Any]], Awaitable[None]]):
        """设置周报回调函数

        Args:
            callback: 回调函数，参数为 build_weekly_report() 的结果
        """
        self.on_weekly_report = callback

    async def start(self):
        """启动监控调度器，直到 stop() 被调用或任务被取消"""
        if self.is_running:
            self.logger.warning("监控调度器已经在运行")
            return

        self.is_running = True
        self._stop_event = asyncio.Event()
        self.logger.info(
            f"启动监控调度器，检查间隔: {self.check_interval}秒, "
            f"依赖数量: {len(self.aggregator.dependency_names)}")

        try:
            await self._schedule_loop()
        except asyncio.CancelledError:
            self.logger.info("监控调度器被取消")
        finally:
            await self.stop()

    async def stop(self):
        """停止监控调度器"""
        if not self.is_running:
            return

        self.is_running = False
        if self._stop_event:
            self._stop_event.set()
        self.logger.info("监控调度器已停止")

    async def _schedule_loop(self):
        """调度循环，每秒检查一次是否有到期任务"""
        while self.is_running:
            try:
                current_time = self.clock()

                if self._should_run_cycle(current_time):
                    await self.run_cycle()

                if self._should_send_weekly_report(current_time):
                    await self._send_weekly_report(current_time)

            except Exception as e:
                self.logger.error(f"调度循环异常: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=1)
            except asyncio.TimeoutError:
                pass

    def _should_run_cycle(self, current_time: datetime) -> bool:
        if self.last_cycle_time is None:
            return True
        return current_time >= self.last_cycle_time + timedelta(seconds=self.check_interval)

    def _should_send_weekly_report(self, current_time: datetime) -> bool:
        if not self.weekly_report_enabled or self.on_weekly_report is None:
            return False
        if self.last_report_date == current_time.date():
            return False
        return (current_time.weekday() == self.weekly_report_weekday
                and current_time.hour == self.weekly_report_hour)

    async def _send_weekly_report(self, current_time: datetime):
        self.last_report_date = current_time.date()
        self.logger.info("开始生成周报")
        try:
            report = await self.build_weekly_report()
            await self.on_weekly_report(report)
        except Exception as e:
            self.logger.error(f"周报生成或发送失败: {e}")

    async def run_cycle(self) -> Optional[SystemHealth]:
        """执行一次完整监控周期

        健康检查 → 系统告警 → 学员风险告警 → 导师容量告警。
        周期内任何意外异常都会被转换为一条监控子系统告警，调度器继续运行。

        Returns:
            本次健康快照，周期失败时返回 None
        """
        async with self._cycle_lock:
            self.last_cycle_time = self.clock()
            self.cycle_count += 1

            try:
                health = await self.aggregator.check_health()
                await self.alert_engine.reconcile(health)
                await self._evaluate_entities()
                await self._evaluate_capacity()
            except Exception as e:
                self.failed_cycle_count += 1
                self.logger.exception(f"监控周期执行失败: {e}")
                error = SchedulerError(f"监控周期执行失败: {e}", ErrorCode.CYCLE_EXECUTION_ERROR,
                                       task_name='run_cycle', cause=e)
                self.alert_engine.record_cycle_failure(error)

                if self.on_cycle_error:
                    try:
                        await self.on_cycle_error(error)
                    except Exception as callback_error:
                        self.logger.error(f"错误回调执行失败: {callback_error}")
                return None

            self.alert_engine.clear_category(AlertCategory.MONITOR)
            self.logger.info(
                f"监控周期完成: {health.overall.value}, "
                f"活动告警 {len(self.alert_engine.active_alerts)} 条")

            if self.on_cycle_result:
                try:
                    await self.on_cycle_result(health)
                except Exception as callback_error:
                    self.logger.error(f"结果回调执行失败: {callback_error}")

            return health

    async def _evaluate_entities(self):
        try:
            entities = await self.store.fetch_entities()
        except StoreError as e:
            self.logger.warning(f"读取学员记录失败，保留上次的学员告警: {e}")
            return

        at_risk = self.risk_scorer.identify_at_risk(entities)
        self.alert_engine.evaluate_entities(self.risk_scorer.summarize(at_risk))

    async def _evaluate_capacity(self):
        try:
            records = await self.store.fetch_capacity_records()
        except StoreError as e:
            self.logger.warning(f"读取导师记录失败，保留上次的容量告警: {e}")
            return

        margin = int(self.alert_engine.rule(AlertKind.CAPACITY_OVERLOAD).threshold)
        overloaded = self.risk_scorer.overloaded(records, margin)
        self.alert_engine.evaluate_capacity(len(overloaded))

    def get_health(self) -> Optional[SystemHealth]:
        """最近一次健康快照，尚未检查时为 None"""
        return self.aggregator.latest

    def get_uptime(self) -> int:
        return self.aggregator.uptime_percentage()

    def get_active_alerts(self) -> List[str]:
        return self.alert_engine.active_alerts

    async def get_at_risk_entities(self) -> List[TrackedEntity]:
        """当前风险学员，数据源不可达时返回空列表"""
        try:
            entities = await self.store.fetch_entities()
        except StoreError as e:
            self.logger.warning(f"读取学员记录失败: {e}")
            return []
        return self.risk_scorer.identify_at_risk(entities)

    async def get_weekly_metrics(self) -> WeeklyMetrics:
        return await self.metrics_window.weekly_aggregate()

    async def build_dashboard(self) -> Dict[str, Any]:
        """组装管理面板数据，尚无健康快照时先执行一次监控周期"""
        if self.get_health() is None:
            await self.run_cycle()

        metrics, at_risk = await asyncio.gather(
            self.get_weekly_metrics(), self.get_at_risk_entities())
        health = self.get_health()

        return {
            'generated_at': self.clock().isoformat(),
            'metrics': metrics.to_dict(),
            'health': health.to_dict() if health else None,
            'system': {
                'uptime_percentage': self.get_uptime(),
                'error_rate': self.aggregator.error_rate(),
                'api_response_time': self.aggregator.average_response_time(),
            },
            'alerts': self.get_active_alerts(),
            'at_risk_count': len(at_risk),
            'at_risk': [e.to_dict() for e in at_risk[:DASHBOARD_AT_RISK_LIMIT]],
        }

    async def build_weekly_report(self) -> Dict[str, Any]:
        """组装周报数据"""
        metrics, top_performers = await asyncio.gather(
            self.get_weekly_metrics(), self.metrics_window.top_performers())

        engagement_rate = 0
        if metrics.total_entities:
            engagement_rate = round_half_up(100 * metrics.active_entities / metrics.total_entities)

        return {
            'week_ending': metrics.window_end.date().isoformat(),
            'metrics': metrics.to_dict(),
            'total_entities': metrics.total_entities,
            'new_entities': metrics.new_entities,
            'engagement_rate': engagement_rate,
            'uptime_percentage': self.get_uptime(),
            'top_performers': [e.to_dict() for e in top_performers],
        }

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """获取调度器统计信息"""
        next_cycle = None
        if self.last_cycle_time:
            next_cycle = self.last_cycle_time + timedelta(seconds=self.check_interval)

        return {
            'is_running': self.is_running,
            'check_interval': self.check_interval,
            'configured_dependencies': self.aggregator.dependency_names,
            'cycle_count': self.cycle_count,
            'failed_cycle_count': self.failed_cycle_count,
            'last_cycle_time': self.last_cycle_time.isoformat() if self.last_cycle_time else None,
            'next_cycle_time': next_cycle.isoformat() if next_cycle else None,
            'history_length': len(self.aggregator.get_history()),
            'weekly_report_enabled': self.weekly_report_enabled,
        }
