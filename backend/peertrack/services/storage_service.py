from __future__ import annotations

import logging
import re
from typing import Any, Optional
from uuid import uuid4

from peertrack.core.errors import ValidationError
from peertrack.models.manuscript import ManuscriptFile

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(filename: str) -> str:
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "manuscript"


def _extension(filename: str) -> str:
    lowered = filename.lower()
    for ext in ALLOWED_CONTENT_TYPES:
        if lowered.endswith(ext):
            return ext
    return ""


class ManuscriptStorage:
    """
    稿件文件存储（Supabase Storage）。

    中文注释:
    - 只负责“校验 + 落盘 + 返回元数据”，存储引擎本身不在本项目范围。
    - bucket 缺失时做一次性兜底创建，减少本地/演示环境踩坑。
    """

    def __init__(self, client: Any, *, bucket: str, max_upload_mb: int = 20) -> None:
        self.client = client
        self.bucket = bucket
        self.max_bytes = max(1, int(max_upload_mb)) * 1024 * 1024

    def _ensure_bucket_exists(self) -> None:
        storage = getattr(self.client, "storage", None)
        if storage is None or not hasattr(storage, "get_bucket") or not hasattr(storage, "create_bucket"):
            return
        try:
            storage.get_bucket(self.bucket)
            return
        except Exception:
            pass
        try:
            storage.create_bucket(self.bucket, options={"public": False})
        except Exception as e:
            text = str(e).lower()
            if "already" in text or "exists" in text or "duplicate" in text:
                return
            raise

    def validate(self, filename: Optional[str], content: Optional[bytes]) -> str:
        name = str(filename or "").strip()
        if not name or not content:
            raise ValidationError("Please upload a manuscript file (PDF or DOCX)")
        ext = _extension(name)
        if not ext:
            raise ValidationError("Only PDF or DOCX manuscript files are accepted")
        if len(content) > self.max_bytes:
            raise ValidationError(f"Manuscript file exceeds {self.max_bytes // (1024 * 1024)} MB")
        return ext

    def save(self, *, owner_id: str, filename: str, content: bytes) -> ManuscriptFile:
        ext = self.validate(filename, content)
        content_type = ALLOWED_CONTENT_TYPES[ext]
        path = f"manuscripts/{owner_id}/{uuid4().hex}_{_safe_name(filename)}"

        self._ensure_bucket_exists()
        # storage3 期望 header value 为字符串；传 bool 会触发 httpx "Header value must be str or bytes"。
        opts = {"content-type": content_type, "upsert": "false"}
        self.client.storage.from_(self.bucket).upload(path, content, opts)

        return ManuscriptFile(
            file_name=filename,
            file_url=f"{self.bucket}/{path}",
            storage_path=path,
            content_type=content_type,
            size_bytes=len(content),
        )

    def discard(self, stored: ManuscriptFile) -> None:
        """
        删除已上传但未落库的稿件文件。

        中文注释: 只在投稿写库失败时调用；清理失败只记日志，由调用方继续抛出原始异常。
        """
        if not stored.storage_path:
            return
        try:
            self.client.storage.from_(self.bucket).remove([stored.storage_path])
        except Exception as e:
            logger.warning("[Storage] orphan cleanup failed: path=%s error=%s", stored.storage_path, e)
