from typing import Callable

from fastapi import Depends

from peertrack.core.auth_utils import get_current_user
from peertrack.core.errors import AuthorizationError
from peertrack.core.role_matrix import can_perform
from peertrack.models.user import User


def require_action(action: str) -> Callable[..., User]:
    """
    路由级能力校验（只看角色，不看资源）。

    中文注释: 需要看资源归属的动作（例如 review:submit）由 service 加载资源后再复核。
    """

    async def _dep(user: User = Depends(get_current_user)) -> User:
        if not can_perform(user, action):
            raise AuthorizationError(f"User role '{user.role.value}' is not authorized to access this route")
        return user

    return _dep
