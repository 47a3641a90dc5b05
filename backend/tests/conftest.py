import itertools
import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Callable, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from main import create_app
from peertrack.core.config import AppConfig
from peertrack.models.user import User, UserRole
from peertrack.services.manuscript_workflow import ManuscriptLocks, ManuscriptWorkflowService
from peertrack.services.notification_service import NotificationService
from peertrack.services.review_ledger import ReviewLedger
from peertrack.services.storage_service import ManuscriptStorage
from peertrack.services.user_directory import UserDirectory

# === 全局测试配置 ===
# 中文注释:
# 1. 用内存版 supabase table API 替代真实 PostgREST，覆盖 select/insert/update/delete 链式调用。
# 2. 失败注入通过 fake_db.fail_when(...) 完成，不需要子类化。
# 3. JWT 使用与 AppConfig 相同的密钥签发。

TEST_JWT_SECRET = "test-secret"


class _FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: list[tuple[str, Callable[[dict], bool]]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count: Optional[str] = None

    # Chain builders
    def select(self, *_cols: Any, count: Optional[str] = None):
        self._op = "select"
        self._count = count
        return self

    def insert(self, payload: Any):
        self._op = "insert"
        self._payload = payload
        return self

    def update(self, payload: dict):
        self._op = "update"
        self._payload = dict(payload)
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, key: str, value: Any):
        self._filters.append((key, lambda r: r.get(key) == value))
        return self

    def in_(self, key: str, values: Any):
        allowed = set(values)
        self._filters.append((key, lambda r: r.get(key) in allowed))
        return self

    def contains(self, key: str, values: Any):
        wanted = list(values)
        self._filters.append((key, lambda r: all(v in (r.get(key) or []) for v in wanted)))
        return self

    def order(self, key: str, desc: bool = False):
        self._order = (key, desc)
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _matches(self, row: dict) -> bool:
        return all(pred(row) for _key, pred in self._filters)

    def execute(self):
        self.db.check_failure(self.table, self._op, self._payload)
        with self.db.lock:
            rows = self.db.tables.setdefault(self.table, [])

            if self._op == "insert":
                items = self._payload if isinstance(self._payload, list) else [self._payload]
                created = []
                for item in items:
                    row = dict(item)
                    row.setdefault("id", str(uuid4()))
                    row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                    row["_seq"] = next(self.db.seq)
                    rows.append(row)
                    created.append(self.db.public(row))
                return SimpleNamespace(data=created, count=None)

            matched = [r for r in rows if self._matches(r)]

            if self._op == "update":
                for r in matched:
                    r.update(self._payload)
                return SimpleNamespace(data=[self.db.public(r) for r in matched], count=None)

            if self._op == "delete":
                for r in matched:
                    rows.remove(r)
                return SimpleNamespace(data=[self.db.public(r) for r in matched], count=None)

            total = len(matched) if self._count else None
            if self._order:
                key, desc = self._order
                matched = sorted(matched, key=lambda r: (str(r.get(key) or ""), r["_seq"]), reverse=desc)
            if self._range:
                start, end = self._range
                matched = matched[start : end + 1]
            if self._limit is not None:
                matched = matched[: self._limit]
            return SimpleNamespace(data=[self.db.public(r) for r in matched], count=total)


class _FakeBucket:
    def __init__(self, storage: "_FakeStorage", name: str) -> None:
        self.storage = storage
        self.name = name

    def upload(self, path: str, content: bytes, opts: dict):
        self.storage.objects[(self.name, path)] = (content, dict(opts))
        return {"Key": f"{self.name}/{path}"}

    def remove(self, paths: list[str]):
        removed = []
        for path in paths:
            if self.storage.objects.pop((self.name, path), None) is not None:
                removed.append({"name": path})
        return removed


class _FakeStorage:
    def __init__(self) -> None:
        self.buckets: set[str] = set()
        self.objects: dict[tuple[str, str], tuple[bytes, dict]] = {}

    def get_bucket(self, name: str):
        if name not in self.buckets:
            raise RuntimeError("Bucket not found")
        return {"name": name}

    def create_bucket(self, name: str, options: Optional[dict] = None):
        self.buckets.add(name)
        return {"name": name}

    def from_(self, name: str) -> _FakeBucket:
        return _FakeBucket(self, name)


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.storage = _FakeStorage()
        self.lock = threading.RLock()
        self.seq = itertools.count()
        self._failures: list[tuple[str, str, Callable[[Any], bool], Exception]] = []

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    @staticmethod
    def public(row: dict) -> dict:
        return {k: v for k, v in row.items() if not k.startswith("_")}

    def rows(self, name: str) -> list[dict]:
        return [self.public(r) for r in self.tables.get(name, [])]

    def fail_when(
        self,
        table: str,
        op: str,
        error: Exception,
        predicate: Callable[[Any], bool] = lambda _payload: True,
    ) -> None:
        self._failures.append((table, op, predicate, error))

    def check_failure(self, table: str, op: str, payload: Any) -> None:
        for t, o, predicate, error in self._failures:
            if t == table and o == op and predicate(payload):
                raise error


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def make_user(fake_db: FakeSupabase) -> Callable[..., User]:
    def _make(role: UserRole, full_name: str = "", *, is_active: bool = True) -> User:
        uid = str(uuid4())
        row = {
            "id": uid,
            "full_name": full_name or f"{role.value.title()} {uid[:4]}",
            "email": f"{role.value}_{uid[:8]}@example.com",
            "role": role.value,
            "is_active": is_active,
            "university": "Test University",
            "department": "Testing",
        }
        fake_db.table("user_profiles").insert(row).execute()
        return User.from_row(row)

    return _make


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(env="test", jwt_secret=TEST_JWT_SECRET, notification_workers=4)


@pytest.fixture
def workflow(fake_db: FakeSupabase, config: AppConfig) -> ManuscriptWorkflowService:
    users = UserDirectory(fake_db)
    return ManuscriptWorkflowService(
        fake_db,
        users=users,
        reviews=ReviewLedger(fake_db, users=users),
        notifications=NotificationService(fake_db, max_workers=config.notification_workers),
        storage=ManuscriptStorage(fake_db, bucket=config.storage_bucket, max_upload_mb=config.max_upload_mb),
        locks=ManuscriptLocks(),
    )


@pytest.fixture
def app(config: AppConfig, fake_db: FakeSupabase):
    return create_app(config, supabase_client=fake_db)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


def generate_test_token(user_id: str, *, expires_in: timedelta = timedelta(hours=1)) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(user: User, *, expires_in: timedelta = timedelta(hours=1)) -> dict[str, str]:
        return {"Authorization": f"Bearer {generate_test_token(user.id, expires_in=expires_in)}"}

    return _headers
