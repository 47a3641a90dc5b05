from __future__ import annotations

from typing import Any, Iterable, Optional

from peertrack.models.user import User, UserRole

_PROFILE_COLUMNS = "id,full_name,email,role,is_active,university,department,phone,created_at"


class UserDirectory:
    """
    用户目录：只读查询身份与角色。

    中文注释:
    - 注册/停用/密码由外部账号系统维护，这里不提供写接口。
    - 所有查询都走注入的 client（service role），便于单测替换为 fake。
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    def _rows(self, resp: Any) -> list[dict[str, Any]]:
        return getattr(resp, "data", None) or []

    def find_by_id(self, user_id: Optional[str]) -> Optional[User]:
        uid = str(user_id or "").strip()
        if not uid:
            return None
        resp = self.client.table("user_profiles").select(_PROFILE_COLUMNS).eq("id", uid).limit(1).execute()
        rows = self._rows(resp)
        return User.from_row(rows[0]) if rows else None

    def find_by_ids(self, user_ids: Iterable[str]) -> dict[str, User]:
        ids = sorted({str(i).strip() for i in user_ids if str(i or "").strip()})
        if not ids:
            return {}
        resp = self.client.table("user_profiles").select(_PROFILE_COLUMNS).in_("id", ids).execute()
        users = [User.from_row(r) for r in self._rows(resp)]
        return {u.id: u for u in users}

    def find_by_role(self, roles: UserRole | Iterable[UserRole], *, active_only: bool = True) -> list[User]:
        wanted = [roles] if isinstance(roles, UserRole) else list(roles)
        if not wanted:
            return []
        query = self.client.table("user_profiles").select(_PROFILE_COLUMNS).in_("role", [r.value for r in wanted])
        if active_only:
            query = query.eq("is_active", True)
        resp = query.execute()
        return [User.from_row(r) for r in self._rows(resp)]

    def find_active_reviewers_by_ids(self, user_ids: Iterable[str]) -> list[User]:
        """
        返回 ids 中“启用中且角色为 reviewer”的用户；调用方通过数量比对判断是否全部有效。
        """
        ids = sorted({str(i).strip() for i in user_ids if str(i or "").strip()})
        if not ids:
            return []
        resp = (
            self.client.table("user_profiles")
            .select(_PROFILE_COLUMNS)
            .in_("id", ids)
            .eq("role", UserRole.REVIEWER.value)
            .eq("is_active", True)
            .execute()
        )
        return [User.from_row(r) for r in self._rows(resp)]

    def list_reviewers(self) -> list[User]:
        reviewers = self.find_by_role(UserRole.REVIEWER, active_only=True)
        return sorted(reviewers, key=lambda u: (u.full_name.lower(), u.id))

    def display_name(self, user_id: Optional[str], fallback: str) -> str:
        user = self.find_by_id(user_id)
        return (user.full_name if user and user.full_name else "") or fallback

    def list_all(self) -> list[User]:
        """全部账号（含已停用），按注册时间倒序。"""
        resp = self.client.table("user_profiles").select(_PROFILE_COLUMNS).order("created_at", desc=True).execute()
        return [User.from_row(r) for r in self._rows(resp)]

    def stats(self) -> dict[str, Any]:
        resp = self.client.table("user_profiles").select("id,role,is_active").execute()
        rows = self._rows(resp)
        by_role: dict[str, int] = {}
        for r in rows:
            role = str(r.get("role") or "").strip().lower() or "unknown"
            by_role[role] = by_role.get(role, 0) + 1
        return {
            "totalUsers": len(rows),
            "activeUsers": sum(1 for r in rows if r.get("is_active", True)),
            "usersByRole": [{"role": role, "count": count} for role, count in sorted(by_role.items())],
        }
