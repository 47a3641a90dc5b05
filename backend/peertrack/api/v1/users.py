import asyncio

from fastapi import APIRouter, Depends

from peertrack.core.auth_utils import get_current_user
from peertrack.core.dependencies import get_user_directory
from peertrack.core.role_matrix import list_allowed_actions
from peertrack.core.roles import require_action
from peertrack.models.user import User
from peertrack.schemas.envelope import ok
from peertrack.services.user_directory import UserDirectory

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
async def list_users(
    _admin: User = Depends(require_action("user:list")),
    users: UserDirectory = Depends(get_user_directory),
):
    """全部账号（含已停用），注册时间倒序"""
    rows = [u.model_dump(mode="json") for u in await asyncio.to_thread(users.list_all)]
    return ok({"count": len(rows), "users": rows}, "Users retrieved successfully")


@router.get("/stats")
async def user_stats(
    _admin: User = Depends(require_action("user:stats")),
    users: UserDirectory = Depends(get_user_directory),
):
    stats = await asyncio.to_thread(users.stats)
    return ok(stats, "User statistics retrieved successfully")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """当前用户信息 + 可执行动作（前端据此渲染按钮）"""
    user = current_user.model_dump(mode="json")
    user["capabilities"] = sorted(list_allowed_actions(current_user))
    return ok({"user": user})


@router.get("/reviewers")
async def list_reviewers(
    _editor: User = Depends(require_action("user:list_reviewers")),
    users: UserDirectory = Depends(get_user_directory),
):
    reviewers = [u.model_dump(mode="json") for u in await asyncio.to_thread(users.list_reviewers)]
    return ok({"count": len(reviewers), "reviewers": reviewers}, "Reviewers retrieved successfully")
