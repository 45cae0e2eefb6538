"""管理员权限测试"""

import pytest

from community_monitor.services.admin_policy import AdminPolicy
from community_monitor.utils.exceptions import AuthorizationError, ErrorCode


class TestAdminPolicy:

    def test_allow_list(self):
        policy = AdminPolicy(['U01ADMIN', ' U02OPS '])

        assert policy.is_admin('U01ADMIN')
        assert policy.is_admin('U02OPS')
        assert not policy.is_admin('U99GUEST')
        assert not policy.is_admin(None)

    def test_empty_list_denies_everyone(self):
        policy = AdminPolicy([])

        assert not policy.is_admin('U01ADMIN')
        assert not policy.is_admin('')

    def test_require_admin(self):
        policy = AdminPolicy(['U01ADMIN'])
        policy.require_admin('U01ADMIN')

        with pytest.raises(AuthorizationError) as exc_info:
            policy.require_admin('U99GUEST')

        assert exc_info.value.error_code is ErrorCode.AUTHORIZATION_ERROR
        assert exc_info.value.details['user_id'] == 'U99GUEST'
        assert exc_info.value.recoverable is False
