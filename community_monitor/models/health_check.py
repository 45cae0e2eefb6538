"""系统健康与告警相关的数据模型"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Optional, Mapping, Tuple, Iterable, List


def round_half_up(value: float) -> int:
    """四舍五入取整，.5 一律向上进位"""
    return int(math.floor(value + 0.5))


class OverallStatus(Enum):
    """系统整体健康状态"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


@dataclass
class ProbeResult:
    """单个依赖探测结果"""
    dependency: str
    probe_type: str
    is_healthy: bool
    response_time: float
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


def reduce_overall(statuses: Iterable[bool]) -> OverallStatus:
    """将各依赖的健康状态归约为整体状态

    单个依赖故障只算降级，两个及以上才算宕机。
    """
    down_count = sum(1 for healthy in statuses if not healthy)
    if down_count == 0:
        return OverallStatus.HEALTHY
    if down_count == 1:
        return OverallStatus.DEGRADED
    return OverallStatus.DOWN


@dataclass(frozen=True)
class SystemHealth:
    """系统健康快照，构造后不可修改"""
    dependencies: Mapping[str, bool]
    overall: OverallStatus
    timestamp: datetime = field(default_factory=datetime.now)
    results: Tuple[ProbeResult, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'dependencies',
                           MappingProxyType(dict(self.dependencies)))
        object.__setattr__(self, 'results', tuple(self.results))

    @classmethod
    def from_results(cls, results: Iterable[ProbeResult],
                     timestamp: Optional[datetime] = None) -> 'SystemHealth':
        """根据探测结果构造快照"""
        results = tuple(results)
        dependencies = {r.dependency: r.is_healthy for r in results}
        return cls(
            dependencies=dependencies,
            overall=reduce_overall(dependencies.values()),
            timestamp=timestamp or datetime.now(),
            results=results
        )

    @classmethod
    def from_statuses(cls, statuses: Mapping[str, bool]) -> 'SystemHealth':
        """根据依赖名到健康状态的映射构造快照"""
        return cls(dependencies=statuses, overall=reduce_overall(statuses.values()))

    @property
    def down_dependencies(self) -> List[str]:
        return [name for name, healthy in self.dependencies.items() if not healthy]

    @property
    def down_count(self) -> int:
        return len(self.down_dependencies)

    @property
    def is_healthy(self) -> bool:
        return self.overall is OverallStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall': self.overall.value,
            'dependencies': dict(self.dependencies),
            'down_count': self.down_count,
            'timestamp': self.timestamp.isoformat(),
            'response_times': {
                r.dependency: round(r.response_time * 1000, 1) for r in self.results
            }
        }


class AlertKind(Enum):
    """告警规则类型"""
    ENTITY_INACTIVE = "entity_inactive"
    SYSTEM_DOWN = "system_down"
    HIGH_FAILURE_RATE = "high_failure_rate"
    CAPACITY_OVERLOAD = "capacity_overload"

    @classmethod
    def parse(cls, value: str) -> 'AlertKind':
        """解析规则类型，兼容旧配置名称"""
        value = LEGACY_ALERT_KINDS.get(value, value)
        return cls(value)


LEGACY_ALERT_KINDS = {
    'learner_inactive': AlertKind.ENTITY_INACTIVE.value,
    'mentor_overload': AlertKind.CAPACITY_OVERLOAD.value,
}

# 旧版 mentor_overload 的 threshold 表示人数上限，与新版余量语义不同，读取时忽略
LEGACY_IGNORED_THRESHOLDS = {'mentor_overload'}


@dataclass(frozen=True)
class AlertRule:
    """告警规则配置，运行期不可变"""
    kind: AlertKind
    threshold: float
    enabled: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AlertRule':
        raw_kind = config.get('kind') or config.get('type')
        kind = AlertKind.parse(raw_kind)
        threshold = DEFAULT_THRESHOLDS[kind]
        if raw_kind not in LEGACY_IGNORED_THRESHOLDS:
            threshold = config.get('threshold', threshold)
        return cls(
            kind=kind,
            threshold=float(threshold),
            enabled=bool(config.get('enabled', True))
        )


DEFAULT_THRESHOLDS = {
    AlertKind.ENTITY_INACTIVE: 7,
    AlertKind.SYSTEM_DOWN: 1,
    AlertKind.HIGH_FAILURE_RATE: 50,
    AlertKind.CAPACITY_OVERLOAD: 1,
}


def default_alert_rules() -> List[AlertRule]:
    """默认告警规则集合"""
    return [AlertRule(kind, threshold, True) for kind, threshold in DEFAULT_THRESHOLDS.items()]


class AlertCategory(Enum):
    """告警分类，同一分类的告警整体清除"""
    SYSTEM = "system"
    ENTITY = "entity"
    CAPACITY = "capacity"
    MONITOR = "monitor"


class AlertSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AlertEntry:
    """活动告警条目，以 (category, key) 作为去重标识"""
    category: AlertCategory
    key: str
    message: str
    severity: AlertSeverity = AlertSeverity.WARNING
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def identity(self) -> Tuple[AlertCategory, str]:
        return self.category, self.key


@dataclass
class Notification:
    """推送给通知渠道的消息"""
    text: str
    severity: AlertSeverity = AlertSeverity.INFO
    title: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
