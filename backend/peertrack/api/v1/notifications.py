import asyncio

from fastapi import APIRouter, Body, Depends, Query

from peertrack.core.auth_utils import get_current_user
from peertrack.core.dependencies import get_notification_service
from peertrack.core.errors import NotFoundError
from peertrack.core.roles import require_action
from peertrack.models.notification import Notification, NotificationCreate
from peertrack.models.user import User
from peertrack.schemas.envelope import ok
from peertrack.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _present(row: dict) -> dict:
    return Notification.model_validate(row).model_dump(mode="json")


@router.get("")
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """
    获取当前用户的通知列表（按时间倒序，附 total 与 unreadCount）
    """
    data = await asyncio.to_thread(
        service.list_for_user, current_user.id, unread_only=unread_only, limit=limit, offset=skip
    )
    data["notifications"] = [_present(n) for n in data["notifications"]]
    return ok(data)


@router.post("", status_code=201)
async def create_notification(
    payload: NotificationCreate = Body(...),
    _admin: User = Depends(require_action("notification:create")),
    service: NotificationService = Depends(get_notification_service),
):
    """
    管理员手动发送通知（系统公告等）
    """
    created = await asyncio.to_thread(
        service.notify,
        payload.user_id,
        payload.message,
        manuscript_id=payload.manuscript_id,
        type=payload.type,
    )
    if created is None:
        # 中文注释: notify 本身吞异常；手动创建场景下需要让管理员知道没有写入
        raise NotFoundError("Notification target could not be notified")
    return ok({"notification": _present(created)}, "Notification created successfully")


@router.patch("/read-all")
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    modified = await asyncio.to_thread(service.mark_all_read, current_user.id)
    return ok({"modifiedCount": modified}, "All notifications marked as read")


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """
    将通知标记为已读（仅允许更新自己的记录）
    """
    updated = await asyncio.to_thread(service.mark_read, notification_id, current_user.id)
    return ok({"notification": _present(updated)}, "Notification marked as read")


@router.delete("/all")
async def delete_all_notifications(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    deleted = await asyncio.to_thread(service.delete_all, current_user.id)
    return ok({"deletedCount": deleted}, "All notifications deleted successfully")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    await asyncio.to_thread(service.delete, notification_id, current_user.id)
    return ok(message="Notification deleted successfully")
