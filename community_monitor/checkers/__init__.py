"""依赖探测器模块"""

from .base import BaseDependencyProbe, DEFAULT_PROBE_TIMEOUT
from .env_key_probe import EnvKeyProbe
from .factory import ProbeFactory, probe_factory, register_probe
from .redis_probe import RedisProbe
from .restful_probe import RestfulProbe
from .slack_probe import SlackProbe
from .store_probe import StoreProbe

__all__ = ['BaseDependencyProbe', 'DEFAULT_PROBE_TIMEOUT', 'ProbeFactory',
           'probe_factory', 'register_probe', 'RestfulProbe', 'EnvKeyProbe',
           'StoreProbe', 'SlackProbe', 'RedisProbe']
