from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ReviewRecommendation(str, Enum):
    ACCEPT = "ACCEPT"
    MINOR_REVISION = "MINOR_REVISION"
    MAJOR_REVISION = "MAJOR_REVISION"
    REJECT = "REJECT"


class Review(BaseModel):
    """审稿意见（每个 manuscript x reviewer 至多一条，创建后不可修改）"""

    id: str
    manuscript_id: str
    reviewer_id: str
    recommendation: ReviewRecommendation
    comments: str
    strengths: str = ""
    weaknesses: str = ""
    suggestions: str = ""
    created_at: Optional[datetime] = None
    reviewer: Optional[dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Review":
        data = dict(row)
        for key in ("id", "manuscript_id", "reviewer_id"):
            data[key] = str(data.get(key) or "")
        for key in ("strengths", "weaknesses", "suggestions"):
            data[key] = data.get(key) or ""
        return cls.model_validate(data)
