"""依赖探测器工厂"""

from typing import Dict, Type, Any, Optional
from .base import BaseDependencyProbe
from ..utils.exceptions import ProbeError, ErrorCode


class ProbeFactory:
    """依赖探测器工厂类，负责按类型注册和创建探测器"""

    def __init__(self):
        self._probes: Dict[str, Type[BaseDependencyProbe]] = {}

    def register_probe(self, probe_type: str, probe_class: Type[BaseDependencyProbe]):
        """
        注册探测器类

        Raises:
            ProbeError: 注册失败
        """
        if not issubclass(probe_class, BaseDependencyProbe):
            raise ProbeError(f"探测器类 {probe_class.__name__} 必须继承自 BaseDependencyProbe")

        if probe_type in self._probes:
            raise ProbeError(f"探测类型 '{probe_type}' 已经注册了探测器")

        self._probes[probe_type] = probe_class

    def unregister_probe(self, probe_type: str):
        self._probes.pop(probe_type, None)

    def create_probe(self, name: str, config: Dict[str, Any],
                     store: Optional[Any] = None) -> BaseDependencyProbe:
        """
        创建探测器实例

        Args:
            name: 依赖名称
            config: 探测配置
            store: 持久化存储，仅 requires_store 的探测器需要

        Returns:
            BaseDependencyProbe: 探测器实例

        Raises:
            ProbeError: 类型不支持或配置无效
        """
        probe_type = config.get('type')
        if not probe_type:
            raise ProbeError(f"依赖 '{name}' 缺少 'type' 配置", dependency=name)

        if probe_type not in self._probes:
            raise ProbeError(f"不支持的探测类型: '{probe_type}'", dependency=name,
                             probe_type=probe_type)

        probe_class = self._probes[probe_type]

        try:
            if getattr(probe_class, 'requires_store', False):
                if store is None:
                    raise ProbeError(f"依赖 '{name}' 需要持久化存储但未提供")
                probe = probe_class(name, config, store)
            else:
                probe = probe_class(name, config)
        except ProbeError:
            raise
        except Exception as e:
            raise ProbeError(f"创建依赖 '{name}' 的探测器失败: {e}",
                             ErrorCode.PROBE_INITIALIZATION_ERROR,
                             dependency=name, cause=e)

        if not probe.validate_config():
            raise ProbeError(f"依赖 '{name}' 的配置验证失败",
                             ErrorCode.PROBE_INITIALIZATION_ERROR,
                             dependency=name, probe_type=probe_type)

        return probe

    def get_supported_types(self) -> list:
        return list(self._probes.keys())

    def is_type_supported(self, probe_type: str) -> bool:
        return probe_type in self._probes


# 全局工厂实例
probe_factory = ProbeFactory()


def register_probe(probe_type: str):
    """
    装饰器：注册依赖探测器类

    Args:
        probe_type: 探测类型名称
    """
    def decorator(probe_class: Type[BaseDependencyProbe]):
        probe_factory.register_probe(probe_type, probe_class)
        return probe_class

    return decorator
