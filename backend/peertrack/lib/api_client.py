from typing import Any, Callable, Optional

from supabase import Client, create_client

from peertrack.core.config import AppConfig


class LazySupabaseClient:
    """
    延迟初始化 Supabase Client，避免在 import/启动时因为缺少环境变量导致整个应用不可用。

    中文注释:
    - 单元测试会直接注入 fake client，因此这里必须保证“可导入”。
    - 真实运行时，如果缺少 URL/KEY，在第一次访问 client 时抛出清晰错误即可。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)

    def __repr__(self) -> str:
        state = "ready" if self._client is not None else "pending"
        return f"<LazySupabaseClient {self._name} ({state})>"


def build_supabase_client(config: AppConfig) -> Client:
    """
    以 service role 构造后端专用 client。

    中文注释: 角色/归属校验全部在应用层完成（role_matrix），这里不依赖 RLS。
    """

    def _create() -> Client:
        if not config.supabase_url:
            raise RuntimeError("SUPABASE_URL is required")
        if not config.supabase_key:
            raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) is required")
        return create_client(config.supabase_url, config.supabase_key)

    return LazySupabaseClient(_create, name="supabase_admin")  # type: ignore[return-value]
