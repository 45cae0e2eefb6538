"""配置管理器"""

import os
import re
from typing import Dict, Any, List

import yaml

from ..models.health_check import (
    AlertRule, AlertKind, LEGACY_IGNORED_THRESHOLDS, default_alert_rules
)
from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.log_manager import get_logger

ENV_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')


def expand_env(value: Any) -> Any:
    """
    递归展开配置中字符串里的 ${VAR} 引用，未设置的环境变量展开为空字符串

    Args:
        value: 配置值

    Returns:
        Any: 展开后的配置值
    """
    if isinstance(value, str):
        return ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ''), value)
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    return value


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证"""

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        if not os.path.exists(self.config_path):
            self.logger.error(f"配置文件不存在: {self.config_path}")
            raise ConfigError(f"配置文件不存在: {self.config_path}", ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)
        except PermissionError as e:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path, cause=e)

        if config is None:
            self.logger.error("配置文件为空")
            raise ConfigError("配置文件为空", config_path=self.config_path)

        config = expand_env(config)

        self.logger.debug("开始验证配置文件内容")
        self._validate_config(config)

        dependencies_count = len(config.get('dependencies', {}))
        notifiers_count = len(config.get('notifiers', []))
        self.logger.info(
            f"配置验证成功，包含 {dependencies_count} 个依赖和 {notifiers_count} 个通知渠道")

        self.config = config
        return self.config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Args:
            config: 配置字典

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if 'global' in config:
            ConfigValidator.validate_global_config(config['global'])

        if 'store' not in config:
            raise ConfigError("缺少必需的配置节: store")
        ConfigValidator.validate_store_config(config['store'])

        dependencies = config.get('dependencies', {})
        if not isinstance(dependencies, dict):
            raise ConfigError("dependencies配置必须是字典类型")
        for name, dependency_config in dependencies.items():
            ConfigValidator.validate_dependency_config(name, dependency_config)

        if 'alert_rules' in config:
            ConfigValidator.validate_alert_rules(config['alert_rules'])

        if 'notifiers' in config:
            if not isinstance(config['notifiers'], list):
                raise ConfigError("notifiers配置必须是列表类型")
            for notifier_config in config['notifiers']:
                ConfigValidator.validate_notifier_config(notifier_config)

        if 'weekly_report' in config:
            ConfigValidator.validate_weekly_report_config(config['weekly_report'])

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global', {})

    def get_store_config(self) -> Dict[str, Any]:
        return self.config.get('store', {})

    def get_dependencies_config(self) -> Dict[str, Any]:
        return self.config.get('dependencies', {})

    def get_notifiers_config(self) -> List[Dict[str, Any]]:
        return self.config.get('notifiers', [])

    def get_weekly_report_config(self) -> Dict[str, Any]:
        return self.config.get('weekly_report', {})

    def get_alert_rules(self) -> List[AlertRule]:
        """
        获取告警规则，配置中未出现的类型使用默认规则

        Returns:
            List[AlertRule]: 每种类型各一条规则
        """
        rules: Dict[AlertKind, AlertRule] = {r.kind: r for r in default_alert_rules()}
        for rule_config in self.config.get('alert_rules', []):
            raw_kind = rule_config.get('kind') or rule_config.get('type')
            if raw_kind in LEGACY_IGNORED_THRESHOLDS and 'threshold' in rule_config:
                self.logger.warning(
                    f"旧版告警规则 {raw_kind} 的 threshold={rule_config['threshold']} 已忽略，"
                    f"容量余量使用默认值")
            rule = AlertRule.from_config(rule_config)
            rules[rule.kind] = rule
        return list(rules.values())
