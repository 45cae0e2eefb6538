"""配置验证工具"""

from typing import Dict, Any, List

from .exceptions import ConfigError

SUPPORTED_PROBE_TYPES = ['restful', 'env_key', 'store', 'slack', 'redis']
SUPPORTED_NOTIFIER_TYPES = ['slack', 'webhook', 'http']
SUPPORTED_STORE_TYPES = ['supabase']
SUPPORTED_RULE_KINDS = ['entity_inactive', 'system_down', 'high_failure_rate',
                        'capacity_overload', 'learner_inactive', 'mentor_overload']
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        # 验证检查间隔
        check_interval = global_config.get('check_interval')
        if check_interval is not None:
            if not isinstance(check_interval, int) or isinstance(check_interval, bool) \
                    or check_interval <= 0:
                raise ConfigError("check_interval 必须是正整数")

        history_size = global_config.get('history_size')
        if history_size is not None:
            if not isinstance(history_size, int) or history_size <= 0:
                raise ConfigError("history_size 必须是正整数")

        for field in ('probe_timeout', 'metrics_window_days', 'alert_dedup_window'):
            value = global_config.get(field)
            if value is not None and not _is_positive_number(value):
                raise ConfigError(f"{field} 必须是正数")

        # 验证日志级别
        log_level = global_config.get('log_level')
        if log_level is not None and log_level not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

        admin_users = global_config.get('admin_users')
        if admin_users is not None and not isinstance(admin_users, list):
            raise ConfigError("admin_users 必须是列表类型")

    @staticmethod
    def validate_store_config(store_config: Dict[str, Any]) -> None:
        """
        验证持久化存储配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(store_config, dict):
            raise ConfigError("store配置必须是字典类型")

        store_type = store_config.get('type', 'supabase')
        if store_type not in SUPPORTED_STORE_TYPES:
            raise ConfigError(
                f"存储类型 '{store_type}' 不受支持。支持的类型: {SUPPORTED_STORE_TYPES}")

        for field in ('url', 'key'):
            if field not in store_config:
                raise ConfigError(f"store配置缺少必需的配置项: {field}")

    @staticmethod
    def validate_dependency_config(name: str, config: Dict[str, Any]) -> None:
        """
        验证依赖探测配置

        Args:
            name: 依赖名称
            config: 探测配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"依赖 '{name}' 的配置必须是字典类型")

        if 'type' not in config:
            raise ConfigError(f"依赖 '{name}' 缺少必需的配置项: type")

        probe_type = config.get('type')
        if probe_type not in SUPPORTED_PROBE_TYPES:
            raise ConfigError(
                f"依赖 '{name}' 的类型 '{probe_type}' 不受支持。支持的类型: {SUPPORTED_PROBE_TYPES}")

        timeout = config.get('timeout')
        if timeout is not None and not _is_positive_number(timeout):
            raise ConfigError(f"依赖 '{name}' 的 timeout 必须是正数")

    @staticmethod
    def validate_alert_rules(rules: List[Dict[str, Any]]) -> None:
        """
        验证告警规则配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(rules, list):
            raise ConfigError("alert_rules配置必须是列表类型")

        seen = set()
        for rule in rules:
            if not isinstance(rule, dict):
                raise ConfigError("告警规则必须是字典类型")

            kind = rule.get('kind') or rule.get('type')
            if kind not in SUPPORTED_RULE_KINDS:
                raise ConfigError(
                    f"告警规则类型 '{kind}' 不受支持。支持的类型: {SUPPORTED_RULE_KINDS}")
            if kind in seen:
                raise ConfigError(f"告警规则类型重复: {kind}")
            seen.add(kind)

            threshold = rule.get('threshold')
            if threshold is not None and (not isinstance(threshold, (int, float))
                                          or isinstance(threshold, bool) or threshold < 0):
                raise ConfigError(f"告警规则 '{kind}' 的 threshold 必须是非负数")

            enabled = rule.get('enabled')
            if enabled is not None and not isinstance(enabled, bool):
                raise ConfigError(f"告警规则 '{kind}' 的 enabled 必须是布尔值")

    @staticmethod
    def validate_notifier_config(notifier_config: Dict[str, Any]) -> None:
        """
        验证通知渠道配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(notifier_config, dict):
            raise ConfigError("通知渠道配置必须是字典类型")

        for field in ('name', 'type'):
            if field not in notifier_config:
                raise ConfigError(f"通知渠道配置缺少必需的配置项: {field}")

        notifier_type = notifier_config['type']
        if notifier_type not in SUPPORTED_NOTIFIER_TYPES:
            raise ConfigError(
                f"通知渠道类型 '{notifier_type}' 不受支持。支持的类型: {SUPPORTED_NOTIFIER_TYPES}")

        required = ['token', 'channel'] if notifier_type == 'slack' else ['url']
        for field in required:
            if field not in notifier_config:
                raise ConfigError(
                    f"通知渠道 '{notifier_config['name']}' 缺少必需的配置项: {field}")

    @staticmethod
    def validate_weekly_report_config(report_config: Dict[str, Any]) -> None:
        """
        验证周报配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(report_config, dict):
            raise ConfigError("weekly_report配置必须是字典类型")

        weekday = report_config.get('weekday')
        if weekday is not None and (not isinstance(weekday, int) or not 0 <= weekday <= 6):
            raise ConfigError("weekday 必须是 0-6 之间的整数（0 为周一）")

        hour = report_config.get('hour')
        if hour is not None and (not isinstance(hour, int) or not 0 <= hour <= 23):
            raise ConfigError("hour 必须是 0-23 之间的整数")
