from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError

from peertrack.core.errors import NotFoundError
from peertrack.models.notification import MESSAGE_MAX_LENGTH

logger = logging.getLogger(__name__)


def _is_dangling_target_error(e: Exception) -> bool:
    # postgrest 的 APIError 在不同版本里字段不完全一致，这里从 code/字符串两处兜底判断
    text = " ".join(
        str(part or "") for part in (e, getattr(e, "message", None), getattr(e, "details", None))
    ).lower()
    code = str(getattr(e, "code", "") or "").lower()
    return ("23503" in code or "23503" in text) and ("user_id" in text or "foreign key" in text)


def _clip(message: str) -> str:
    msg = str(message or "").strip()
    if len(msg) <= MESSAGE_MAX_LENGTH:
        return msg
    return msg[: MESSAGE_MAX_LENGTH - 3].rstrip() + "..."


class NotificationService:
    """
    通知服务：封装 notifications 表的读写

    中文注释:
    1) 写入是 fire-and-forget：任何失败只记日志，不向调用方抛出，也不回滚触发它的工作流写入。
    2) notify_all 并发写入，无顺序保证、无全有或全无语义（部分成功是允许的）。
    3) 读取/更新/删除一律带 user_id 条件，只能操作自己的通知。
    """

    def __init__(self, client: Any, *, max_workers: int = 8) -> None:
        self.client = client
        self.max_workers = max(1, int(max_workers))

    def notify(
        self,
        user_id: str,
        message: str,
        *,
        manuscript_id: Optional[str] = None,
        type: str = "system",
    ) -> Optional[Dict[str, Any]]:
        payload = {
            "user_id": str(user_id),
            "manuscript_id": manuscript_id,
            "type": type,
            "message": _clip(message),
            "is_read": False,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            res = self.client.table("notifications").insert(payload).execute()
            rows = getattr(res, "data", None) or []
            return rows[0] if rows else None
        except APIError as e:
            # 中文注释: 目标用户不存在（外键 23503）是允许的悬空引用，降级为 debug，避免日志刷屏
            if _is_dangling_target_error(e):
                logger.debug("[Notifications] target user missing (ignored): user_id=%s", user_id)
                return None
            logger.warning("[Notifications] create failed: user_id=%s error=%s", user_id, e)
            return None
        except Exception as e:
            logger.warning("[Notifications] create failed: user_id=%s error=%s", user_id, e)
            return None

    def notify_all(
        self,
        user_ids: Iterable[str],
        message: str,
        *,
        manuscript_id: Optional[str] = None,
        type: str = "system",
    ) -> List[Dict[str, Any]]:
        """
        并发给多个用户发同一条消息，返回实际写入成功的行（可能是子集）。
        """
        targets = [str(u) for u in user_ids if str(u or "").strip()]
        if not targets:
            return []

        workers = min(self.max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
            results = list(
                pool.map(
                    lambda uid: self.notify(uid, message, manuscript_id=manuscript_id, type=type),
                    targets,
                )
            )
        delivered = [r for r in results if r]
        if len(delivered) < len(targets):
            logger.warning(
                "[Notifications] fan-out partially delivered: %s/%s (manuscript_id=%s)",
                len(delivered),
                len(targets),
                manuscript_id,
            )
        return delivered

    def list_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        limit = max(1, int(limit))
        offset = max(0, int(offset))

        query = self.client.table("notifications").select("*", count="exact").eq("user_id", user_id)
        if unread_only:
            query = query.eq("is_read", False)
        res = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        rows = getattr(res, "data", None) or []
        total = getattr(res, "count", None)

        unread = (
            self.client.table("notifications")
            .select("id", count="exact")
            .eq("user_id", user_id)
            .eq("is_read", False)
            .execute()
        )
        unread_count = getattr(unread, "count", None)

        return {
            "notifications": rows,
            "total": int(total if total is not None else len(rows)),
            "unreadCount": int(unread_count if unread_count is not None else len(getattr(unread, "data", None) or [])),
        }

    def mark_read(self, notification_id: str, user_id: str) -> Dict[str, Any]:
        res = (
            self.client.table("notifications")
            .update({"is_read": True})
            .eq("id", notification_id)
            .eq("user_id", user_id)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        if not rows:
            # 中文注释: 不存在与“不属于当前用户”对外不做区分
            raise NotFoundError("Notification not found")
        return rows[0]

    def mark_all_read(self, user_id: str) -> int:
        res = (
            self.client.table("notifications")
            .update({"is_read": True})
            .eq("user_id", user_id)
            .eq("is_read", False)
            .execute()
        )
        return len(getattr(res, "data", None) or [])

    def delete(self, notification_id: str, user_id: str) -> None:
        res = (
            self.client.table("notifications")
            .delete()
            .eq("id", notification_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not (getattr(res, "data", None) or []):
            raise NotFoundError("Notification not found")

    def delete_all(self, user_id: str) -> int:
        res = self.client.table("notifications").delete().eq("user_id", user_id).execute()
        return len(getattr(res, "data", None) or [])
