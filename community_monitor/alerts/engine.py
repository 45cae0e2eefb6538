"""告警引擎

根据健康快照、风险统计和容量统计维护活动告警列表。每个分类的告警在每次评估时
先整体清除再按当前状态重新生成，条件恢复后对应告警随即消失。
"""

from typing import Dict, List, Optional, Iterable, Protocol

from ..models.entities import RiskSummary
from ..models.health_check import (
    SystemHealth, OverallStatus, AlertKind, AlertRule, AlertCategory, AlertSeverity,
    AlertEntry, DEFAULT_THRESHOLDS, round_half_up
)
from ..utils.log_manager import get_logger

DEGRADED_MESSAGE = '🟡 System performance is degraded'
DOWN_MESSAGE = 'Multiple systems are down - immediate attention required'
CYCLE_FAILURE_MESSAGE = '🔴 Monitoring subsystem error'


class CriticalNotifier(Protocol):
    """紧急告警推送接口"""

    async def post_critical_alert(self, message: str) -> bool:
        ...


class AlertEngine:
    """告警引擎，进程内唯一持有活动告警状态"""

    def __init__(self, rules: Optional[Iterable[AlertRule]] = None,
                 notifier: Optional[CriticalNotifier] = None):
        """
        初始化告警引擎

        Args:
            rules: 告警规则，未配置的类型使用默认阈值
            notifier: 紧急告警推送渠道，可以为空
        """
        self.rules: Dict[AlertKind, AlertRule] = {}
        for rule in rules or []:
            self.rules[rule.kind] = rule
        self.notifier = notifier
        self.logger = get_logger('alert_engine')

        self._entries: List[AlertEntry] = []

    def rule(self, kind: AlertKind) -> AlertRule:
        """获取规则，未配置时返回默认规则"""
        return self.rules.get(kind) or AlertRule(kind, DEFAULT_THRESHOLDS[kind], True)

    @property
    def entries(self) -> List[AlertEntry]:
        return list(self._entries)

    @property
    def active_alerts(self) -> List[str]:
        """活动告警文本，按产生顺序排列"""
        return [entry.message for entry in self._entries]

    def get_alerts(self, category: Optional[AlertCategory] = None) -> List[AlertEntry]:
        if category is None:
            return self.entries
        return [entry for entry in self._entries if entry.category is category]

    def clear_category(self, category: AlertCategory) -> int:
        """
        清除指定分类的全部告警

        Returns:
            int: 被清除的告警数量
        """
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if entry.category is not category]
        return before - len(self._entries)

    def _add(self, category: AlertCategory, key: str, message: str,
             severity: AlertSeverity = AlertSeverity.WARNING):
        entry = AlertEntry(category=category, key=key, message=message, severity=severity)
        for index, existing in enumerate(self._entries):
            if existing.identity == entry.identity:
                self._entries[index] = entry
                return
        self._entries.append(entry)

    async def reconcile(self, health: SystemHealth) -> List[str]:
        """
        根据健康快照重新生成系统类告警

        overall 为 down 时立即推送紧急告警，推送失败只记录日志。

        Args:
            health: 系统健康快照

        Returns:
            List[str]: 当前全部活动告警
        """
        cleared = self.clear_category(AlertCategory.SYSTEM)
        if cleared:
            self.logger.debug(f"已清除 {cleared} 条系统告警")

        system_down = self.rule(AlertKind.SYSTEM_DOWN)
        if system_down.enabled:
            probe_types = {r.dependency: r.probe_type for r in health.results}
            for name in health.down_dependencies:
                reason = 'not configured' if probe_types.get(name) == 'env_key' \
                    else 'responding slowly'
                self._add(AlertCategory.SYSTEM, f'dependency:{name}',
                          f'🔴 {name} is down or {reason}', AlertSeverity.CRITICAL)

            if health.overall is OverallStatus.DEGRADED:
                self._add(AlertCategory.SYSTEM, 'overall', DEGRADED_MESSAGE)
            elif health.overall is OverallStatus.DOWN:
                self._add(AlertCategory.SYSTEM, 'overall', f'🔴 {DOWN_MESSAGE}',
                          AlertSeverity.CRITICAL)

        failure_rate = self.rule(AlertKind.HIGH_FAILURE_RATE)
        if failure_rate.enabled and health.dependencies:
            error_rate = round_half_up(health.down_count / len(health.dependencies) * 100)
            if health.down_count and error_rate >= failure_rate.threshold:
                self._add(AlertCategory.SYSTEM, 'failure_rate',
                          f'📈 Error rate {error_rate}% exceeds {failure_rate.threshold:g}%')

        if health.overall is OverallStatus.DOWN:
            await self._push_critical(DOWN_MESSAGE)

        return self.active_alerts

    async def _push_critical(self, message: str):
        if self.notifier is None:
            self.logger.warning(f"未配置通知渠道，紧急告警未推送: {message}")
            return

        try:
            if not await self.notifier.post_critical_alert(message):
                self.logger.error(f"紧急告警推送失败: {message}")
        except Exception as e:
            self.logger.error(f"紧急告警推送异常: {e}")

    def evaluate_entities(self, summary: RiskSummary) -> List[str]:
        """
        根据风险统计重新生成学员类告警

        Args:
            summary: 风险统计

        Returns:
            List[str]: 当前全部活动告警
        """
        self.clear_category(AlertCategory.ENTITY)

        rule = self.rule(AlertKind.ENTITY_INACTIVE)
        if rule.enabled:
            if summary.critical > 0:
                self._add(AlertCategory.ENTITY, 'critical',
                          f'🟡 {summary.critical} learners critically inactive '
                          f'({summary.critical_threshold:g}+ days)')
            if summary.inactive > 0:
                self._add(AlertCategory.ENTITY, 'inactive',
                          f'⚠️ {summary.inactive} learners inactive for '
                          f'{summary.threshold:g}+ days')
            if summary.low_completion > 0:
                self._add(AlertCategory.ENTITY, 'low_completion',
                          f'📉 {summary.low_completion} learners with completion rate below 30%')

        return self.active_alerts

    def evaluate_capacity(self, overloaded_count: int) -> List[str]:
        """根据满负荷导师数量重新生成容量类告警"""
        self.clear_category(AlertCategory.CAPACITY)

        if self.rule(AlertKind.CAPACITY_OVERLOAD).enabled and overloaded_count > 0:
            self._add(AlertCategory.CAPACITY, 'overload',
                      f'👥 {overloaded_count} mentors at or near capacity')

        return self.active_alerts

    def record_cycle_failure(self, error: Exception):
        """记录监控周期失败，重复失败只保留一条告警"""
        self.logger.debug(f"记录监控周期失败: {error}")
        self._add(AlertCategory.MONITOR, 'cycle_failure', CYCLE_FAILURE_MESSAGE,
                  AlertSeverity.CRITICAL)
