"""被跟踪个体（学员、导师）与周期指标的数据模型"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, List


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """解析存储层返回的 ISO 时间戳"""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class TrackedEntity:
    """被跟踪的学员记录，只包含风险评估关心的字段"""
    entity_id: str
    days_inactive: int = 0
    completion_rate: int = 0
    failed_count: int = 0
    challenges_completed: int = 0
    slack_user_id: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    def __post_init__(self):
        self.days_inactive = max(0, self.days_inactive)
        self.completion_rate = min(100, max(0, self.completion_rate))
        self.failed_count = max(0, self.failed_count)
        self.challenges_completed = max(0, self.challenges_completed)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'TrackedEntity':
        """由 learner_profiles 行构造"""
        return cls(
            entity_id=str(record.get('id', '')),
            days_inactive=_as_int(record.get('days_inactive')),
            completion_rate=_as_int(record.get('completion_rate')),
            failed_count=_as_int(record.get('challenges_failed',
                                            record.get('failed_count'))),
            challenges_completed=_as_int(record.get('challenges_completed')),
            slack_user_id=record.get('slack_user_id'),
            name=record.get('name'),
            created_at=_parse_timestamp(record.get('created_at')),
            last_active=_parse_timestamp(record.get('last_active'))
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ('created_at', 'last_active'):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class CapacityRecord:
    """导师负载记录"""
    entity_id: str
    current_load: int
    max_load: int
    name: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'CapacityRecord':
        """由 mentor_profiles 行构造，current_mentees 可能是列表或数量"""
        mentees = record.get('current_mentees', 0)
        current_load = len(mentees) if isinstance(mentees, (list, tuple)) else _as_int(mentees)
        return cls(
            entity_id=str(record.get('id', '')),
            current_load=current_load,
            max_load=_as_int(record.get('max_mentees'), 3),
            name=record.get('name')
        )


class RiskLevel(Enum):
    """学员风险等级"""
    NONE = "none"
    INACTIVE = "inactive"
    CRITICAL = "critical"


@dataclass
class RiskSummary:
    """风险评估汇总计数"""
    threshold: int
    at_risk: int = 0
    inactive: int = 0
    critical: int = 0
    low_completion: int = 0

    @property
    def critical_threshold(self) -> int:
        return self.threshold * 2


@dataclass
class WeeklyMetrics:
    """最近一周的聚合指标"""
    window_start: datetime
    window_end: datetime
    standups: int = 0
    mentor_sessions: int = 0
    pair_sessions: int = 0
    challenges_completed: int = 0
    new_entities: int = 0
    total_entities: int = 0
    active_entities: int = 0
    average_completion_rate: int = 0
    failed_metrics: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.failed_metrics

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['window_start'] = self.window_start.isoformat()
        data['window_end'] = self.window_end.isoformat()
        return data
