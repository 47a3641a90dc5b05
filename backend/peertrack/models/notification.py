from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


NotificationType = Literal["submission", "assignment", "review", "decision", "system"]

MESSAGE_MAX_LENGTH = 500


class Notification(BaseModel):
    """
    通知实体（用于 API 返回）

    中文注释:
    - 只由工作流事件产生；只有接收人自己可以标记已读或删除。
    """

    id: str
    user_id: str
    manuscript_id: Optional[str] = None
    type: NotificationType = "system"
    message: str = Field(..., max_length=MESSAGE_MAX_LENGTH)
    is_read: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationCreate(BaseModel):
    """
    管理员手动创建通知的输入结构
    """

    user_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=MESSAGE_MAX_LENGTH)
    manuscript_id: Optional[str] = None
    type: NotificationType = "system"
