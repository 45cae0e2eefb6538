"""数据模型模块"""

from .entities import TrackedEntity, CapacityRecord, RiskLevel, RiskSummary, WeeklyMetrics
from .health_check import (
    OverallStatus, ProbeResult, SystemHealth, AlertKind, AlertRule,
    AlertCategory, AlertSeverity, AlertEntry, Notification
)

__all__ = ['OverallStatus', 'ProbeResult', 'SystemHealth', 'AlertKind', 'AlertRule',
           'AlertCategory', 'AlertSeverity', 'AlertEntry', 'Notification',
           'TrackedEntity', 'CapacityRecord', 'RiskLevel', 'RiskSummary', 'WeeklyMetrics']
