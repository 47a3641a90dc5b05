from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class UserRole(str, Enum):
    ADMIN = "admin"
    AUTHOR = "author"
    REVIEWER = "reviewer"
    EDITOR = "editor"


# 中文注释: 稿件事件默认抄送的“编辑部”角色集合
STAFF_ROLES: tuple[UserRole, ...] = (UserRole.ADMIN, UserRole.EDITOR)


def normalize_role(value: Any) -> Optional[UserRole]:
    if isinstance(value, UserRole):
        return value
    v = str(value or "").strip().lower()
    if not v:
        return None
    try:
        return UserRole(v)
    except ValueError:
        return None


class User(BaseModel):
    """
    user_profiles 行的只读视图。

    中文注释:
    - 注册/停用/密码均由外部账号系统维护，这里只消费身份 + 角色 + 是否启用。
    - 账号只会被“停用”（is_active=false），不会物理删除。
    """

    id: str
    full_name: str = ""
    email: Optional[str] = None
    role: UserRole = UserRole.AUTHOR
    is_active: bool = True
    university: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "User":
        data = dict(row)
        data["id"] = str(data.get("id") or "")
        data["role"] = normalize_role(data.get("role")) or UserRole.AUTHOR
        data["is_active"] = bool(data.get("is_active", True))
        data["full_name"] = str(data.get("full_name") or "")
        return cls.model_validate(data)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "university": self.university,
            "department": self.department,
        }
