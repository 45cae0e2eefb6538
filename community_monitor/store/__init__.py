"""持久化存储模块"""

from .base import BaseStore
from .supabase_store import SupabaseStore, create_store, parse_content_range

__all__ = ['BaseStore', 'SupabaseStore', 'create_store', 'parse_content_range']
