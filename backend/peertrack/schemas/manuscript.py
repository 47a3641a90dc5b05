from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from peertrack.models.review import ReviewRecommendation


class _CamelModel(BaseModel):
    # 中文注释: 前端沿用 camelCase 字段名，后端同时接受 snake_case
    model_config = ConfigDict(populate_by_name=True)


class AssignReviewersRequest(_CamelModel):
    reviewer_ids: Optional[List[str]] = Field(None, alias="reviewerIds")

    @field_validator("reviewer_ids", mode="before")
    @classmethod
    def strip_ids(cls, v):
        if v is None or not isinstance(v, list):
            return v
        return [str(item).strip() for item in v]


class StatusUpdateRequest(_CamelModel):
    status: Optional[str] = None


class DecisionRequest(_CamelModel):
    decision: Optional[str] = None
    editor_comments: Optional[str] = Field(None, alias="editorComments", max_length=5000)


class ReviewSubmission(_CamelModel):
    recommendation: ReviewRecommendation
    comments: str = Field(..., min_length=1)
    strengths: Optional[str] = None
    weaknesses: Optional[str] = None
    suggestions: Optional[str] = None

    @field_validator("comments")
    @classmethod
    def comments_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Review comments are required")
        return v.strip()
