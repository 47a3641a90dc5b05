from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional

from peertrack.core.errors import (
    AuthorizationError,
    NotFoundError,
    StateError,
    ValidationError,
)
from peertrack.core.role_matrix import can_perform
from peertrack.models.manuscript import (
    DECISIONS,
    Manuscript,
    ManuscriptStatus,
    normalize_keywords,
    normalize_status,
)
from peertrack.models.review import Review
from peertrack.models.user import STAFF_ROLES, User, UserRole
from peertrack.schemas.manuscript import ReviewSubmission
from peertrack.services.notification_service import NotificationService
from peertrack.services.review_ledger import ReviewLedger
from peertrack.services.storage_service import ManuscriptStorage
from peertrack.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


class _LockSlot:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class ManuscriptLocks:
    """
    进程内按稿件 ID 的互斥锁。

    中文注释:
    - 只能串行化同一 worker 进程内的请求；多进程/多实例部署下，
      “先查后写”的审稿唯一性与状态升级仍可能竞态（见 ReviewLedger 注释）。
    - 持有/等待者计数归零时移除该稿件的锁，表大小只与并发中的稿件数相关。
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[str, _LockSlot] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    @contextmanager
    def hold(self, manuscript_id: str) -> Iterator[None]:
        key = str(manuscript_id)
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _LockSlot()
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.holders -= 1
                if slot.holders == 0:
                    self._slots.pop(key, None)


@dataclass(frozen=True)
class ManuscriptDraft:
    title: Optional[str] = None
    abstract: Optional[str] = None
    keywords: Any = None
    authors: Optional[str] = None


@dataclass(frozen=True)
class ReviewOutcome:
    review: Review
    manuscript_status: str


def next_status_after_review(current: str, total_reviews: int, total_assigned: int) -> str:
    """
    审稿提交后的状态升级规则：

    - 终态与 DECISION_READY 不再变化；
    - SUBMITTED 先推进到 UNDER_REVIEW；
    - totalReviews >= totalAssignedReviewers 时推进到 DECISION_READY。

    中文注释: 重新分配后分母会变，但分子仍统计该稿件的全部审稿意见，
    可能提前或永远无法触发；这是沿用的既定行为，不在这里“修正”。
    """
    status = current
    if status in ManuscriptStatus.terminal() or status == ManuscriptStatus.DECISION_READY.value:
        return status
    if status == ManuscriptStatus.SUBMITTED.value:
        status = ManuscriptStatus.UNDER_REVIEW.value
    if total_reviews >= total_assigned and ManuscriptStatus.DECISION_READY.value in ManuscriptStatus.allowed_next(status):
        status = ManuscriptStatus.DECISION_READY.value
    return status


class ManuscriptWorkflowService:
    """
    稿件工作流引擎：状态机 + 审稿人分配 + 审稿意见收取 + 终审决定。

    中文注释:
    - 所有校验（输入、实体存在、状态、权限）都在写入前完成；
    - 状态写入成功之后的通知失败只记录日志，不回滚、不向调用方抛出；
    - 写入本身失败（存储异常）直接向上抛出，整个操作失败。
    """

    def __init__(
        self,
        client: Any,
        *,
        users: UserDirectory,
        reviews: ReviewLedger,
        notifications: NotificationService,
        storage: Optional[ManuscriptStorage] = None,
        locks: Optional[ManuscriptLocks] = None,
    ) -> None:
        self.client = client
        self.users = users
        self.reviews = reviews
        self.notifications = notifications
        self.storage = storage
        self.locks = locks

    # ---------------------------------------------------------------- helpers

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _serialized(self, manuscript_id: str):
        if self.locks is None:
            return nullcontext()
        return self.locks.hold(manuscript_id)

    def _authorize(self, actor: Optional[User], action: str, resource: Any = None, *, message: Optional[str] = None) -> None:
        if not can_perform(actor, action, resource):
            role = getattr(getattr(actor, "role", None), "value", None)
            raise AuthorizationError(message or f"User role '{role}' is not authorized to perform {action}")

    def _write(self, manuscript_id: str, updates: dict[str, Any]) -> Manuscript:
        payload = dict(updates)
        payload["updated_at"] = self._now()
        res = self.client.table("manuscripts").update(payload).eq("id", manuscript_id).execute()
        rows = getattr(res, "data", None) or []
        if not rows:
            raise NotFoundError("Manuscript not found")
        return Manuscript.from_row(rows[0])

    def _staff_ids(self, roles: Iterable[UserRole] = STAFF_ROLES) -> list[str]:
        return [u.id for u in self.users.find_by_role(list(roles), active_only=True)]

    def _fan_out(self, label: str, manuscript_id: str, deliveries: list[tuple[Any, str, str]]) -> None:
        """
        deliveries: [(targets, message, type), ...]；targets 可以是单个 id、id 列表或返回 id 列表的函数。

        中文注释: 这里在状态写入之后执行，任何异常都吞掉并记录，绝不回滚已提交的变更。
        """
        for targets, message, kind in deliveries:
            try:
                resolved = targets() if callable(targets) else targets
                if isinstance(resolved, str):
                    self.notifications.notify(resolved, message, manuscript_id=manuscript_id, type=kind)
                else:
                    self.notifications.notify_all(resolved, message, manuscript_id=manuscript_id, type=kind)
            except Exception as e:
                logger.warning("[Workflow] %s notification failed (ignored): manuscript_id=%s error=%s", label, manuscript_id, e)

    def _populate(self, manuscripts: list[Manuscript]) -> list[dict[str, Any]]:
        ids: set[str] = set()
        for m in manuscripts:
            ids.add(m.submitted_by)
            ids.update(m.assigned_reviewers)
        profiles = self.users.find_by_ids(ids) if ids else {}

        out: list[dict[str, Any]] = []
        for m in manuscripts:
            row = m.model_dump(mode="json")
            author = profiles.get(m.submitted_by)
            row["submitted_by"] = author.summary() if author else {"id": m.submitted_by}
            row["assigned_reviewers"] = [
                profiles[r].summary() if r in profiles else {"id": r} for r in m.assigned_reviewers
            ]
            out.append(row)
        return out

    def _select(self, query: Any) -> list[Manuscript]:
        res = query.order("created_at", desc=True).execute()
        return [Manuscript.from_row(r) for r in (getattr(res, "data", None) or [])]

    # ------------------------------------------------------------------ reads

    def get(self, manuscript_id: str) -> Manuscript:
        mid = str(manuscript_id or "").strip()
        if not mid:
            raise NotFoundError("Manuscript not found")
        res = self.client.table("manuscripts").select("*").eq("id", mid).limit(1).execute()
        rows = getattr(res, "data", None) or []
        if not rows:
            raise NotFoundError("Manuscript not found")
        return Manuscript.from_row(rows[0])

    def get_populated(self, manuscript_id: str, actor: User) -> dict[str, Any]:
        self._authorize(actor, "manuscript:view")
        return self._populate([self.get(manuscript_id)])[0]

    def list_all(self, actor: User) -> list[dict[str, Any]]:
        self._authorize(actor, "manuscript:list_all")
        return self._populate(self._select(self.client.table("manuscripts").select("*")))

    def list_for_author(self, actor: User) -> list[dict[str, Any]]:
        self._authorize(actor, "manuscript:list_own")
        manuscripts = self._select(self.client.table("manuscripts").select("*").eq("submitted_by", actor.id))
        return [m.model_dump(mode="json") for m in manuscripts]

    def list_assigned_to(self, actor: User) -> list[dict[str, Any]]:
        self._authorize(actor, "manuscript:list_assigned")
        query = self.client.table("manuscripts").select("*").contains("assigned_reviewers", [actor.id])
        return self._populate(self._select(query))

    def reviews_for(self, manuscript_id: str, actor: User) -> dict[str, Any]:
        self._authorize(actor, "manuscript:list_reviews")
        manuscript = self.get(manuscript_id)
        reviews = self.reviews.list_for(manuscript.id)
        return {
            "reviews": [r.model_dump(mode="json") for r in reviews],
            "totalReviews": len(reviews),
            "assignedReviewers": len(manuscript.assigned_reviewers),
        }

    def author_stats(self, actor: User) -> dict[str, int]:
        self._authorize(actor, "stats:author")
        res = self.client.table("manuscripts").select("id,status").eq("submitted_by", actor.id).execute()
        statuses = [normalize_status(r.get("status")) for r in (getattr(res, "data", None) or [])]
        pending = {ManuscriptStatus.SUBMITTED.value, ManuscriptStatus.DECISION_READY.value}
        return {
            "totalSubmissions": len(statuses),
            "acceptedWorks": statuses.count(ManuscriptStatus.ACCEPTED.value),
            "rejectedWorks": statuses.count(ManuscriptStatus.REJECTED.value),
            "underReview": statuses.count(ManuscriptStatus.UNDER_REVIEW.value),
            "pending": sum(1 for s in statuses if s in pending),
        }

    def reviewer_stats(self, actor: User) -> dict[str, int]:
        self._authorize(actor, "stats:reviewer")
        res = (
            self.client.table("manuscripts")
            .select("id", count="exact")
            .contains("assigned_reviewers", [actor.id])
            .execute()
        )
        total_assigned = getattr(res, "count", None)
        if total_assigned is None:
            total_assigned = len(getattr(res, "data", None) or [])
        completed = self.reviews.count_by_reviewer(actor.id)
        return {
            "totalAssigned": int(total_assigned),
            "completedReviews": completed,
            "pendingReviews": max(int(total_assigned) - completed, 0),
        }

    # ----------------------------------------------------------------- writes

    def submit(
        self,
        draft: ManuscriptDraft,
        author: User,
        *,
        file_name: Optional[str] = None,
        file_content: Optional[bytes] = None,
    ) -> Manuscript:
        self._authorize(author, "manuscript:submit")

        if not file_name or not file_content:
            raise ValidationError("Please upload a manuscript file (PDF or DOCX)")

        title = (draft.title or "").strip()
        abstract = (draft.abstract or "").strip()
        authors = (draft.authors or "").strip()
        keywords = normalize_keywords(draft.keywords)
        if not title or not abstract or not keywords or not authors:
            raise ValidationError("Please provide all required fields: title, abstract, keywords, and authors")

        stored = None
        if self.storage is not None:
            stored = self.storage.save(owner_id=author.id, filename=file_name, content=file_content)
            stored_name, stored_url = stored.file_name, stored.file_url
        else:
            stored_name, stored_url = file_name, None

        now = self._now()
        payload = {
            "title": title,
            "abstract": abstract,
            "keywords": keywords,
            "authors": authors,
            "submitted_by": author.id,
            "assigned_reviewers": [],
            "status": ManuscriptStatus.SUBMITTED.value,
            "file_name": stored_name,
            "file_url": stored_url,
            "created_at": now,
            "updated_at": now,
        }
        try:
            res = self.client.table("manuscripts").insert(payload).execute()
            rows = getattr(res, "data", None) or []
            if not rows:
                raise RuntimeError("Failed to create manuscript")
        except Exception:
            # 中文注释: 稿件未落库，已上传的文件不能留在 bucket 里
            if stored is not None:
                self.storage.discard(stored)
            raise
        manuscript = Manuscript.from_row(rows[0])
        logger.info("[Workflow] manuscript submitted: id=%s author=%s", manuscript.id, author.id)

        author_name = author.full_name or "An author"
        self._fan_out(
            "submit",
            manuscript.id,
            [
                (
                    author.id,
                    f'Your manuscript "{title}" has been submitted successfully and is awaiting review.',
                    "submission",
                ),
                (self._staff_ids, f'New manuscript submission: "{title}" by {author_name}', "submission"),
            ],
        )
        return manuscript

    def assign_reviewers(self, manuscript_id: str, reviewer_ids: Optional[list[str]], editor: User) -> Manuscript:
        self._authorize(editor, "manuscript:assign_reviewers")

        if not isinstance(reviewer_ids, list) or not reviewer_ids:
            raise ValidationError("Please provide an array of reviewer IDs")
        ids = list(dict.fromkeys(str(r).strip() for r in reviewer_ids))
        if any(not r for r in ids):
            raise ValidationError("One or more invalid reviewer IDs or reviewers are not active")

        with self._serialized(manuscript_id):
            manuscript = self.get(manuscript_id)
            if manuscript.status.value not in ManuscriptStatus.assignable():
                raise StateError(f"Cannot assign reviewers to a manuscript in {manuscript.status.value} status")

            reviewers = self.users.find_active_reviewers_by_ids(ids)
            if len(reviewers) != len(ids):
                raise ValidationError("One or more invalid reviewer IDs or reviewers are not active")

            # 中文注释: 覆盖指派名单；已有审稿意见保留（审稿意见不可删除），分母随新名单变化
            updated = self._write(
                manuscript.id,
                {"assigned_reviewers": ids, "status": ManuscriptStatus.UNDER_REVIEW.value},
            )
        logger.info(
            "[Workflow] reviewers assigned: id=%s reviewers=%s by=%s (%s -> %s)",
            updated.id,
            ids,
            editor.id,
            manuscript.status.value,
            updated.status.value,
        )

        editor_name = editor.full_name or "An editor"
        author_name = self.users.display_name(updated.submitted_by, "Unknown author")
        self._fan_out(
            "assign_reviewers",
            updated.id,
            [
                (
                    updated.submitted_by,
                    f'Your manuscript "{updated.title}" has been assigned to reviewers and is now under review.',
                    "assignment",
                ),
                (
                    ids,
                    f'You have been assigned to review the manuscript "{updated.title}" by {author_name}.',
                    "assignment",
                ),
                (
                    self._staff_ids,
                    f'{editor_name} assigned reviewers to manuscript "{updated.title}" by {author_name}.',
                    "assignment",
                ),
            ],
        )
        return updated

    def submit_review(self, manuscript_id: str, reviewer: User, submission: ReviewSubmission) -> ReviewOutcome:
        self._authorize(reviewer, "review:submit")

        with self._serialized(manuscript_id):
            manuscript = self.get(manuscript_id)
            self._authorize(
                reviewer,
                "review:submit",
                manuscript,
                message="You are not assigned to review this manuscript",
            )

            # 先查后插：并发下不是原子的（同进程由上面的锁兜底）
            review = self.reviews.create(
                manuscript.id,
                reviewer.id,
                recommendation=submission.recommendation,
                comments=submission.comments,
                strengths=submission.strengths,
                weaknesses=submission.weaknesses,
                suggestions=submission.suggestions,
            )

            total_reviews = self.reviews.count_for(manuscript.id)
            total_assigned = len(manuscript.assigned_reviewers)
            current = manuscript.status.value
            target = next_status_after_review(current, total_reviews, total_assigned)
            if target != current:
                self._write(manuscript.id, {"status": target})
        logger.info(
            "[Workflow] review submitted: id=%s reviewer=%s reviews=%s/%s status=%s -> %s",
            manuscript.id,
            reviewer.id,
            total_reviews,
            total_assigned,
            current,
            target,
        )

        reviewer_name = reviewer.full_name or "A reviewer"
        author_name = self.users.display_name(manuscript.submitted_by, "Unknown author")
        self._fan_out(
            "submit_review",
            manuscript.id,
            [
                (
                    manuscript.submitted_by,
                    f'A review has been submitted for your manuscript "{manuscript.title}".',
                    "review",
                ),
                (
                    self._staff_ids,
                    f'{reviewer_name} submitted a review for manuscript "{manuscript.title}" by {author_name}.',
                    "review",
                ),
            ],
        )
        return ReviewOutcome(review=review, manuscript_status=target)

    def make_decision(
        self,
        manuscript_id: str,
        decision: Optional[str],
        editor: User,
        *,
        editor_comments: Optional[str] = None,
    ) -> Manuscript:
        self._authorize(editor, "manuscript:decide")

        target = DECISIONS.get(decision) if isinstance(decision, str) else None
        if target is None:
            raise ValidationError("Please provide a valid decision (ACCEPTED or REJECTED)")

        with self._serialized(manuscript_id):
            manuscript = self.get(manuscript_id)
            if manuscript.status != ManuscriptStatus.DECISION_READY:
                raise StateError("Manuscript must be in DECISION_READY status before making a decision")

            updates: dict[str, Any] = {"status": target}
            if editor_comments and editor_comments.strip():
                updates["editor_comments"] = editor_comments.strip()
            updated = self._write(manuscript.id, updates)
        logger.info("[Workflow] decision recorded: id=%s decision=%s by=%s", updated.id, target, editor.id)

        decision_text = "accepted" if target == ManuscriptStatus.ACCEPTED.value else "rejected"
        editor_name = editor.full_name or "An editor"
        author_name = self.users.display_name(updated.submitted_by, "Unknown author")
        self._fan_out(
            "make_decision",
            updated.id,
            [
                (
                    updated.submitted_by,
                    f'Your manuscript "{updated.title}" has been {decision_text}.',
                    "decision",
                ),
                (
                    lambda: self._staff_ids([UserRole.ADMIN]),
                    f'{editor_name} {decision_text} the manuscript "{updated.title}" by {author_name}.',
                    "decision",
                ),
            ],
        )
        return updated

    def set_status(self, manuscript_id: str, status: Optional[str], editor: User) -> Manuscript:
        """
        管理员纠错通道：绕过状态机校验，直接写入任意合法状态。
        """
        self._authorize(editor, "manuscript:set_status")

        valid = {s.value for s in ManuscriptStatus}
        if not isinstance(status, str) or status not in valid:
            raise ValidationError("Please provide a valid status")

        with self._serialized(manuscript_id):
            manuscript = self.get(manuscript_id)
            updated = self._write(manuscript.id, {"status": status})
        logger.info(
            "[Workflow] status override: id=%s %s -> %s by=%s",
            updated.id,
            manuscript.status.value,
            status,
            editor.id,
        )
        return updated
