"""依赖探测器基类"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Dict, Any

from ..models.health_check import ProbeResult
from ..utils.log_manager import get_logger

DEFAULT_PROBE_TIMEOUT = 5


class BaseDependencyProbe(ABC):
    """依赖探测器抽象基类

    子类只需实现 check_health()，失败时返回 False 或直接抛出异常；
    run()/probe() 负责超时控制并把任何异常收敛为不健康结果，绝不向外抛出。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化依赖探测器

        Args:
            name: 依赖名称
            config: 探测配置参数
        """
        self.name = name
        self.config = config
        self.probe_type = config.get('type') or self.__class__.__name__.replace('Probe', '').lower()
        self.logger = get_logger(f'probe.{self.probe_type}.{self.name}')

    @abstractmethod
    async def check_health(self) -> bool:
        """
        执行一次探测

        Returns:
            bool: 依赖是否可达
        """

    @abstractmethod
    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.config.get('timeout', DEFAULT_PROBE_TIMEOUT)

    async def run(self) -> ProbeResult:
        """
        在超时约束内执行探测

        Returns:
            ProbeResult: 探测结果，异常与超时都记为不健康
        """
        start_time = time.time()
        error_message = None
        is_healthy = False

        try:
            is_healthy = bool(await asyncio.wait_for(self.check_health(),
                                                     timeout=self.get_timeout()))
            if not is_healthy:
                error_message = "探测返回不健康"
        except asyncio.TimeoutError:
            error_message = f"探测超时 ({self.get_timeout()}秒)"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_message = f"{type(e).__name__}: {e}"

        response_time = time.time() - start_time

        if is_healthy:
            self.logger.debug(f"依赖 {self.name} 探测成功，耗时: {response_time:.3f}秒")
        else:
            self.logger.warning(
                f"依赖 {self.name} 探测失败，耗时: {response_time:.3f}秒，错误: {error_message}")

        return ProbeResult(
            dependency=self.name,
            probe_type=self.probe_type,
            is_healthy=is_healthy,
            response_time=response_time,
            error_message=error_message
        )

    async def probe(self) -> bool:
        """返回依赖是否可达，从不抛出异常"""
        result = await self.run()
        return result.is_healthy

    async def close(self):
        """释放探测器持有的资源"""
