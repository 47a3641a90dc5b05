import asyncio
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile

from peertrack.core.auth_utils import get_current_user
from peertrack.core.dependencies import get_workflow_service
from peertrack.models.user import User
from peertrack.schemas.envelope import ok
from peertrack.schemas.manuscript import (
    AssignReviewersRequest,
    DecisionRequest,
    ReviewSubmission,
    StatusUpdateRequest,
)
from peertrack.services.manuscript_workflow import ManuscriptDraft, ManuscriptWorkflowService

router = APIRouter(prefix="/manuscripts", tags=["Manuscripts"])

# 中文注释:
# - 权限校验统一在 ManuscriptWorkflowService 内完成（role_matrix.can_perform），路由只负责身份与参数。
# - 写操作通过 asyncio.to_thread 执行：service 是同步 supabase 调用，且内部按稿件加锁，不能阻塞事件循环。


@router.post("/submit", status_code=201)
async def submit_manuscript(
    title: Optional[str] = Form(None),
    abstract: Optional[str] = Form(None),
    keywords: Optional[str] = Form(None),
    authors: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    """作者投稿（multipart：字段 + PDF/DOCX 文件）"""
    content = await file.read() if file is not None else None
    draft = ManuscriptDraft(title=title, abstract=abstract, keywords=keywords, authors=authors)
    manuscript = await asyncio.to_thread(
        workflow.submit,
        draft,
        current_user,
        file_name=file.filename if file is not None else None,
        file_content=content,
    )
    return ok({"manuscript": manuscript.summary()}, "Manuscript submitted successfully")


@router.get("/my-manuscripts")
async def get_my_manuscripts(
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    manuscripts = await asyncio.to_thread(workflow.list_for_author, current_user)
    return ok({"count": len(manuscripts), "manuscripts": manuscripts}, "Manuscripts retrieved successfully")


@router.get("/assigned-to-me")
async def get_assigned_manuscripts(
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    manuscripts = await asyncio.to_thread(workflow.list_assigned_to, current_user)
    return ok(
        {"count": len(manuscripts), "manuscripts": manuscripts},
        "Assigned manuscripts retrieved successfully",
    )


@router.get("/author-stats")
async def get_author_stats(
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    stats = await asyncio.to_thread(workflow.author_stats, current_user)
    return ok(stats, "Author statistics retrieved successfully")


@router.get("/reviewer-stats")
async def get_reviewer_stats(
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    stats = await asyncio.to_thread(workflow.reviewer_stats, current_user)
    return ok(stats, "Reviewer statistics retrieved successfully")


@router.get("")
async def get_all_manuscripts(
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    manuscripts = await asyncio.to_thread(workflow.list_all, current_user)
    return ok({"count": len(manuscripts), "manuscripts": manuscripts}, "All manuscripts retrieved successfully")


@router.get("/{manuscript_id}")
async def get_manuscript(
    manuscript_id: str,
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    manuscript = await asyncio.to_thread(workflow.get_populated, manuscript_id, current_user)
    return ok({"manuscript": manuscript})


@router.put("/{manuscript_id}/assign-reviewers")
async def assign_reviewers(
    manuscript_id: str,
    payload: AssignReviewersRequest = Body(...),
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    updated = await asyncio.to_thread(workflow.assign_reviewers, manuscript_id, payload.reviewer_ids, current_user)
    manuscript = await asyncio.to_thread(workflow.get_populated, updated.id, current_user)
    return ok({"manuscript": manuscript}, "Reviewers assigned successfully")


@router.put("/{manuscript_id}/status")
async def update_manuscript_status(
    manuscript_id: str,
    payload: StatusUpdateRequest = Body(...),
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    updated = await asyncio.to_thread(workflow.set_status, manuscript_id, payload.status, current_user)
    return ok({"manuscript": updated.model_dump(mode="json")}, "Manuscript status updated successfully")


@router.post("/{manuscript_id}/submit-review", status_code=201)
async def submit_review(
    manuscript_id: str,
    payload: ReviewSubmission = Body(...),
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    outcome = await asyncio.to_thread(workflow.submit_review, manuscript_id, current_user, payload)
    return ok(
        {"review": outcome.review.model_dump(mode="json"), "manuscriptStatus": outcome.manuscript_status},
        "Review submitted successfully",
    )


@router.put("/{manuscript_id}/decision")
async def make_decision(
    manuscript_id: str,
    payload: DecisionRequest = Body(...),
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    updated = await asyncio.to_thread(
        workflow.make_decision,
        manuscript_id,
        payload.decision,
        current_user,
        editor_comments=payload.editor_comments,
    )
    verb = "accepted" if payload.decision == "ACCEPTED" else "rejected"
    return ok(
        {
            "manuscript": {
                "id": updated.id,
                "title": updated.title,
                "status": updated.status.value,
                "submitted_by": updated.submitted_by,
            }
        },
        f"Manuscript {verb} successfully",
    )


@router.get("/{manuscript_id}/reviews")
async def get_manuscript_reviews(
    manuscript_id: str,
    current_user: User = Depends(get_current_user),
    workflow: ManuscriptWorkflowService = Depends(get_workflow_service),
):
    reviews = await asyncio.to_thread(workflow.reviews_for, manuscript_id, current_user)
    return ok(reviews, "Reviews fetched successfully")
