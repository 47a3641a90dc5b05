from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ManuscriptStatus(str, Enum):
    """
    稿件生命周期状态（有序）。

    中文注释:
    - 状态只沿 allowed_next 定义的图向前流转；
    - 唯一的“回退”是重新分配审稿人（强制回到 under_review），由 workflow service 显式处理；
    - 管理员 set_status 走 override 通道，不经过这里的校验。
    """

    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    DECISION_READY = "DECISION_READY"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    @classmethod
    def allowed_next(cls, current: str) -> set[str]:
        """
        状态机规则必须显性可见：

        - SUBMITTED -> UNDER_REVIEW
        - UNDER_REVIEW -> DECISION_READY
        - DECISION_READY -> ACCEPTED / REJECTED
        - ACCEPTED / REJECTED: 终态
        """
        c = normalize_status(current)
        if c == cls.SUBMITTED.value:
            return {cls.UNDER_REVIEW.value}
        if c == cls.UNDER_REVIEW.value:
            return {cls.DECISION_READY.value}
        if c == cls.DECISION_READY.value:
            return {cls.ACCEPTED.value, cls.REJECTED.value}
        return set()

    @classmethod
    def terminal(cls) -> set[str]:
        return {cls.ACCEPTED.value, cls.REJECTED.value}

    @classmethod
    def assignable(cls) -> set[str]:
        # 中文注释: 终态之外都允许（重新）分配审稿人
        return {cls.SUBMITTED.value, cls.UNDER_REVIEW.value, cls.DECISION_READY.value}


DECISIONS: dict[str, str] = {
    "ACCEPTED": ManuscriptStatus.ACCEPTED.value,
    "REJECTED": ManuscriptStatus.REJECTED.value,
}


def normalize_status(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, ManuscriptStatus):
        return value.value
    v = str(value).strip().upper()
    if not v:
        return None
    try:
        return ManuscriptStatus(v).value
    except ValueError:
        return None


def normalize_keywords(value: Any) -> list[str]:
    """
    keywords 同时兼容逗号分隔字符串与列表。
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = [str(v) for v in value]
    out: list[str] = []
    for p in parts:
        k = p.strip()
        if k and k not in out:
            out.append(k)
    return out


class ManuscriptFile(BaseModel):
    file_name: str
    file_url: str
    storage_path: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None


class Manuscript(BaseModel):
    id: str
    title: str
    abstract: str
    keywords: list[str] = Field(default_factory=list)
    authors: str
    submitted_by: str
    assigned_reviewers: list[str] = Field(default_factory=list)
    status: ManuscriptStatus = ManuscriptStatus.SUBMITTED
    file_name: str
    file_url: Optional[str] = None
    editor_comments: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Manuscript":
        data = dict(row)
        data["id"] = str(data.get("id") or "")
        data["submitted_by"] = str(data.get("submitted_by") or "")
        data["assigned_reviewers"] = [str(r) for r in (data.get("assigned_reviewers") or [])]
        data["keywords"] = normalize_keywords(data.get("keywords"))
        data["status"] = normalize_status(data.get("status")) or ManuscriptStatus.SUBMITTED.value
        return cls.model_validate(data)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "abstract": self.abstract,
            "keywords": self.keywords,
            "authors": self.authors,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "status": self.status.value,
            "submitted_at": self.created_at.isoformat() if self.created_at else None,
        }
