from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from peertrack.core.errors import ConflictError
from peertrack.models.review import Review, ReviewRecommendation
from peertrack.services.user_directory import UserDirectory


class ReviewLedger:
    """
    审稿意见台账：每个 (manuscript, reviewer) 至多一条，创建后不可修改/删除。

    中文注释:
    - 唯一性是“先查后插”实现的，不是原子操作：两个并发请求可能都查不到再各插一条。
      同一进程内由 workflow 的稿件锁串行化；跨进程仍存在该竞态（建议数据库加唯一约束兜底）。
    """

    def __init__(self, client: Any, users: Optional[UserDirectory] = None) -> None:
        self.client = client
        self.users = users

    def find(self, manuscript_id: str, reviewer_id: str) -> Optional[Review]:
        res = (
            self.client.table("reviews")
            .select("*")
            .eq("manuscript_id", manuscript_id)
            .eq("reviewer_id", reviewer_id)
            .limit(1)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        return Review.from_row(rows[0]) if rows else None

    def create(
        self,
        manuscript_id: str,
        reviewer_id: str,
        *,
        recommendation: ReviewRecommendation,
        comments: str,
        strengths: Optional[str] = None,
        weaknesses: Optional[str] = None,
        suggestions: Optional[str] = None,
    ) -> Review:
        if self.find(manuscript_id, reviewer_id) is not None:
            raise ConflictError(
                "You have already submitted a review for this manuscript",
                status_code=400,
            )

        payload = {
            "manuscript_id": manuscript_id,
            "reviewer_id": reviewer_id,
            "recommendation": ReviewRecommendation(recommendation).value,
            "comments": comments,
            "strengths": strengths or "",
            "weaknesses": weaknesses or "",
            "suggestions": suggestions or "",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        res = self.client.table("reviews").insert(payload).execute()
        rows = getattr(res, "data", None) or []
        if not rows:
            raise RuntimeError("Failed to record review")
        return Review.from_row(rows[0])

    def count_for(self, manuscript_id: str) -> int:
        res = self.client.table("reviews").select("id", count="exact").eq("manuscript_id", manuscript_id).execute()
        count = getattr(res, "count", None)
        if count is None:
            return len(getattr(res, "data", None) or [])
        return int(count)

    def count_by_reviewer(self, reviewer_id: str) -> int:
        res = self.client.table("reviews").select("id", count="exact").eq("reviewer_id", reviewer_id).execute()
        count = getattr(res, "count", None)
        if count is None:
            return len(getattr(res, "data", None) or [])
        return int(count)

    def list_for(self, manuscript_id: str) -> list[Review]:
        """
        按时间倒序返回稿件的全部审稿意见，并附上审稿人身份信息。
        """
        res = (
            self.client.table("reviews")
            .select("*")
            .eq("manuscript_id", manuscript_id)
            .order("created_at", desc=True)
            .execute()
        )
        reviews = [Review.from_row(r) for r in (getattr(res, "data", None) or [])]
        if self.users is None or not reviews:
            return reviews

        profiles = self.users.find_by_ids(r.reviewer_id for r in reviews)
        for review in reviews:
            profile = profiles.get(review.reviewer_id)
            review.reviewer = profile.summary() if profile else None
        return reviews
