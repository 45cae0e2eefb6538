"""学员风险评估"""

from typing import Iterable, List, Sequence

from ..models.entities import TrackedEntity, CapacityRecord, RiskLevel, RiskSummary
from ..models.health_check import AlertRule, AlertKind
from ..utils.log_manager import get_logger

LOW_COMPLETION_RATE = 30
FAILED_CHALLENGE_LIMIT = 3
# 完成挑战数不足的新学员不计入低完成率告警
LOW_COMPLETION_MIN_CHALLENGES = 5


class RiskScorer:
    """按多个独立条件判定学员是否存在风险

    任一条件满足即为风险学员：
        - days_inactive >= 阈值
        - completion_rate < 30
        - failed_count >= 3
    days_inactive >= 2 倍阈值时为严重不活跃。
    """

    def __init__(self, inactivity_threshold: int = 7):
        if inactivity_threshold <= 0:
            raise ValueError(f"不活跃阈值必须大于0: {inactivity_threshold}")
        self.inactivity_threshold = inactivity_threshold
        self.logger = get_logger('risk_scorer')

    @classmethod
    def from_rule(cls, rule: AlertRule) -> 'RiskScorer':
        if rule.kind is not AlertKind.ENTITY_INACTIVE:
            raise ValueError(f"规则类型不匹配: {rule.kind.value}")
        threshold = rule.threshold
        return cls(int(threshold) if float(threshold).is_integer() else threshold)

    @property
    def critical_threshold(self):
        return self.inactivity_threshold * 2

    def is_at_risk(self, entity: TrackedEntity) -> bool:
        return (entity.days_inactive >= self.inactivity_threshold
                or entity.completion_rate < LOW_COMPLETION_RATE
                or entity.failed_count >= FAILED_CHALLENGE_LIMIT)

    def is_critical(self, entity: TrackedEntity) -> bool:
        return entity.days_inactive >= self.critical_threshold

    def classify(self, entity: TrackedEntity) -> RiskLevel:
        """
        判定学员风险等级

        Returns:
            RiskLevel: 非风险学员为 NONE，严重不活跃为 CRITICAL，其余风险学员为 INACTIVE
        """
        if not self.is_at_risk(entity):
            return RiskLevel.NONE
        if self.is_critical(entity):
            return RiskLevel.CRITICAL
        return RiskLevel.INACTIVE

    def identify_at_risk(self, entities: Iterable[TrackedEntity]) -> List[TrackedEntity]:
        """
        筛选风险学员，按 days_inactive 降序排列，相同天数保持输入顺序

        Args:
            entities: 学员记录

        Returns:
            List[TrackedEntity]: 风险学员列表
        """
        at_risk = [entity for entity in entities if self.is_at_risk(entity)]
        # sorted 是稳定排序，reverse=True 不会打乱相等元素的原始顺序
        return sorted(at_risk, key=lambda entity: entity.days_inactive, reverse=True)

    def summarize(self, at_risk: Sequence[TrackedEntity]) -> RiskSummary:
        """统计风险学员中各类告警的人数"""
        summary = RiskSummary(
            threshold=self.inactivity_threshold,
            at_risk=len(at_risk),
            inactive=sum(1 for e in at_risk if e.days_inactive >= self.inactivity_threshold),
            critical=sum(1 for e in at_risk if self.is_critical(e)),
            low_completion=sum(
                1 for e in at_risk
                if e.completion_rate < LOW_COMPLETION_RATE
                and e.challenges_completed > LOW_COMPLETION_MIN_CHALLENGES
            )
        )
        self.logger.debug(
            f"风险评估: 风险 {summary.at_risk}, 不活跃 {summary.inactive}, "
            f"严重 {summary.critical}, 低完成率 {summary.low_completion}"
        )
        return summary

    @staticmethod
    def overloaded(records: Iterable[CapacityRecord], margin: int = 1) -> List[CapacityRecord]:
        """
        筛选满负荷或接近满负荷的导师

        Args:
            records: 导师负载记录
            margin: 距离上限的余量，current_load >= max_load - margin 即视为满负荷

        Returns:
            List[CapacityRecord]: 满负荷导师列表
        """
        return [r for r in records if r.current_load >= r.max_load - margin]
