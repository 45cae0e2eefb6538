"""基于 Supabase (PostgREST) 的存储实现"""

import asyncio
import time
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple

import aiohttp

from .base import BaseStore
from ..models.entities import TrackedEntity, CapacityRecord
from ..utils.exceptions import ConfigError, ErrorCode, StoreError
from ..utils.log_manager import get_logger

LEARNER_TABLE = 'learner_profiles'
MENTOR_TABLE = 'mentor_profiles'


def parse_content_range(header: Optional[str]) -> int:
    """解析 Content-Range 头中的总数，如 ``0-0/42`` 或 ``*/0``"""
    if not header or '/' not in header:
        raise ValueError(f"无法解析 Content-Range: {header!r}")
    total = header.rsplit('/', 1)[1]
    if total == '*':
        raise ValueError(f"Content-Range 未包含精确总数: {header!r}")
    return int(total)


class SupabaseStore(BaseStore):
    """通过 PostgREST 接口访问 Supabase"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化 Supabase 存储

        Args:
            name: 存储名称
            config: 配置，需包含 url 与 key
        """
        super().__init__(name, config)
        self.url = (config.get('url') or '').rstrip('/')
        self.key = config.get('key') or ''
        self.schema = config.get('schema', 'public')
        self.logger = get_logger(f'store.supabase.{name}')

        if not self.validate_config():
            raise ConfigError(f"Supabase 存储配置无效: {name}")

    def validate_config(self) -> bool:
        if not self.url.startswith(('http://', 'https://')):
            self.logger.error(f"Supabase 存储 {self.name} URL 无效: {self.url!r}")
            return False
        if not self.key:
            self.logger.error(f"Supabase 存储 {self.name} 缺少 key 配置")
            return False
        return True

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            'apikey': self.key,
            'Authorization': f'Bearer {self.key}',
            'Accept': 'application/json',
            'Accept-Profile': self.schema,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(self, table: str, params: List[Tuple[str, str]],
                       extra_headers: Optional[Dict[str, str]] = None
                       ) -> Tuple[Any, Optional[str]]:
        """
        发送 PostgREST 查询

        Returns:
            (响应 JSON, Content-Range 头)

        Raises:
            StoreError: 网络错误、超时或非 2xx 响应
        """
        url = f'{self.url}/rest/v1/{table}'
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        start_time = time.time()

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params,
                                       headers=self._headers(extra_headers)) as response:
                    if response.status >= 300:
                        body = await response.text()
                        raise StoreError(
                            f"查询 {table} 失败: HTTP {response.status} {body[:200]}",
                            table=table
                        )
                    data = await response.json(content_type=None)
                    self.logger.debug(
                        f"查询 {table} 完成，耗时: {time.time() - start_time:.3f}秒")
                    return data, response.headers.get('Content-Range')

        except StoreError:
            raise
        except asyncio.TimeoutError as e:
            raise StoreError(f"查询 {table} 超时", ErrorCode.STORE_UNREACHABLE,
                             table=table, cause=e)
        except aiohttp.ClientError as e:
            raise StoreError(f"查询 {table} 网络错误: {e}", ErrorCode.STORE_UNREACHABLE,
                             table=table, cause=e)
        except ValueError as e:
            raise StoreError(f"查询 {table} 响应解析失败: {e}", table=table, cause=e)

    async def fetch_entities(self) -> List[TrackedEntity]:
        rows, _ = await self._request(LEARNER_TABLE, [('select', '*')])
        return [TrackedEntity.from_record(row) for row in rows or []]

    async def fetch_capacity_records(self) -> List[CapacityRecord]:
        rows, _ = await self._request(MENTOR_TABLE, [
            ('select', 'id,name,current_mentees,max_mentees'),
            ('is_active', 'eq.true'),
        ])
        return [CapacityRecord.from_record(row) for row in rows or []]

    async def count(self, table: str, since: Optional[datetime] = None,
                    filters: Optional[Dict[str, Any]] = None,
                    time_field: str = 'created_at') -> int:
        params = [('select', 'id')]
        for column, value in (filters or {}).items():
            params.append((column, f'eq.{value}'))
        if since is not None:
            params.append((time_field, f'gte.{since.isoformat()}'))

        _, content_range = await self._request(
            table, params, {'Prefer': 'count=exact', 'Range-Unit': 'items', 'Range': '0-0'})

        try:
            return parse_content_range(content_range)
        except ValueError as e:
            raise StoreError(f"统计 {table} 失败: {e}", table=table, cause=e)

    async def fetch_top_entities(self, order_by: str, limit: int) -> List[TrackedEntity]:
        rows, _ = await self._request(LEARNER_TABLE, [
            ('select', '*'),
            ('order', f'{order_by}.desc'),
            ('limit', str(limit)),
        ])
        return [TrackedEntity.from_record(row) for row in rows or []]

    async def check_reachable(self) -> bool:
        await self._request(LEARNER_TABLE, [('select', 'id'), ('limit', '1')])
        return True


def create_store(config: Dict[str, Any], name: str = 'primary') -> BaseStore:
    """
    根据配置创建存储实例

    Raises:
        ConfigError: 存储类型不受支持
    """
    store_type = (config.get('type') or 'supabase').lower()
    if store_type == 'supabase':
        return SupabaseStore(name, config)
    raise ConfigError(f"不支持的存储类型: '{store_type}'")
