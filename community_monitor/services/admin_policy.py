"""管理员权限判定"""

from typing import Iterable, Optional

from ..utils.exceptions import AuthorizationError
from ..utils.log_manager import get_logger


class AdminPolicy:
    """基于白名单的管理员判定，未配置白名单时拒绝所有人"""

    def __init__(self, admin_users: Optional[Iterable[str]] = None):
        self.admin_users = frozenset(str(u).strip() for u in admin_users or [] if str(u).strip())
        self.logger = get_logger('admin_policy')
        self._warned_empty = False

    def is_admin(self, user_id: Optional[str]) -> bool:
        if not self.admin_users:
            if not self._warned_empty:
                self.logger.warning("未配置管理员白名单，所有管理操作都会被拒绝")
                self._warned_empty = True
            return False
        return bool(user_id) and user_id in self.admin_users

    def require_admin(self, user_id: Optional[str]):
        """
        校验管理员权限

        Raises:
            AuthorizationError: 用户不在白名单中
        """
        if not self.is_admin(user_id):
            self.logger.warning(f"拒绝非管理员用户的管理请求: {user_id}")
            raise AuthorizationError(f"用户 {user_id} 没有管理员权限", user_id=user_id)
