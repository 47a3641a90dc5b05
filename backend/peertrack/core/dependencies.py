"""
FastAPI 依赖注入：从 app.state 取出启动时构造好的配置与 client，组装各个 service。

中文注释:
- 配置/client 只在 lifespan 里创建一次（见 main.py），这里不读取环境变量。
- 测试通过 app.dependency_overrides 或直接替换 app.state.supabase 注入 fake。
"""

from fastapi import Depends, Request

from peertrack.core.config import AppConfig
from peertrack.services.manuscript_workflow import ManuscriptLocks, ManuscriptWorkflowService
from peertrack.services.notification_service import NotificationService
from peertrack.services.review_ledger import ReviewLedger
from peertrack.services.storage_service import ManuscriptStorage
from peertrack.services.user_directory import UserDirectory


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_supabase(request: Request):
    return request.app.state.supabase


def get_locks(request: Request) -> ManuscriptLocks | None:
    return getattr(request.app.state, "locks", None)


def get_user_directory(client=Depends(get_supabase)) -> UserDirectory:
    return UserDirectory(client)


def get_notification_service(
    client=Depends(get_supabase),
    config: AppConfig = Depends(get_config),
) -> NotificationService:
    return NotificationService(client, max_workers=config.notification_workers)


def get_review_ledger(
    client=Depends(get_supabase),
    users: UserDirectory = Depends(get_user_directory),
) -> ReviewLedger:
    return ReviewLedger(client, users=users)


def get_storage(
    client=Depends(get_supabase),
    config: AppConfig = Depends(get_config),
) -> ManuscriptStorage:
    return ManuscriptStorage(client, bucket=config.storage_bucket, max_upload_mb=config.max_upload_mb)


def get_workflow_service(
    client=Depends(get_supabase),
    users: UserDirectory = Depends(get_user_directory),
    reviews: ReviewLedger = Depends(get_review_ledger),
    notifications: NotificationService = Depends(get_notification_service),
    storage: ManuscriptStorage = Depends(get_storage),
    locks: ManuscriptLocks | None = Depends(get_locks),
) -> ManuscriptWorkflowService:
    return ManuscriptWorkflowService(
        client,
        users=users,
        reviews=reviews,
        notifications=notifications,
        storage=storage,
        locks=locks,
    )
