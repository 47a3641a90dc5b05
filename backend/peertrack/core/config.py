import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int, *, minimum: int = 1) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(value, minimum)


def _parse_origins() -> tuple[str, ...]:
    """
    解析允许跨域的前端 Origins。

    - 本地默认: http://localhost:3000
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    for part in many.split(","):
        o = part.strip().rstrip("/")
        if o:
            origins.append(o)

    if not origins:
        origins = ["http://localhost:3000"]

    # 去重保持顺序
    return tuple(dict.fromkeys(origins))


# 仅用于本地开发；生产环境必须显式配置 JWT_SECRET
_DEV_JWT_SECRET = "change-me-in-production"


@dataclass(frozen=True)
class AppConfig:
    """
    进程级配置（启动时构造一次，显式注入到各个 service）。

    中文注释:
    - 业务代码不得直接读取 os.environ；所有环境变量都在这里收口。
    - 单元测试直接构造 AppConfig(...) 即可，不依赖环境。
    """

    env: str = "development"
    supabase_url: str = ""
    supabase_key: str = ""
    jwt_secret: str = _DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    storage_bucket: str = "manuscripts"
    max_upload_mb: int = 20
    notification_workers: int = 8
    serialize_manuscript_writes: bool = True
    frontend_origins: tuple[str, ...] = field(default_factory=lambda: ("http://localhost:3000",))

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def expose_errors(self) -> bool:
        return not self.is_production

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()

        # 兼容历史变量名：优先 service role，缺省回退到 anon key
        supabase_key = (
            os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
            or os.environ.get("SUPABASE_KEY")
            or os.environ.get("SUPABASE_ANON_KEY")
            or ""
        ).strip()

        jwt_secret = (os.environ.get("JWT_SECRET") or "").strip()
        if not jwt_secret:
            if env == "production":
                raise RuntimeError("JWT_SECRET not configured")
            jwt_secret = _DEV_JWT_SECRET

        return AppConfig(
            env=env,
            supabase_url=(os.environ.get("SUPABASE_URL") or "").strip(),
            supabase_key=supabase_key,
            jwt_secret=jwt_secret,
            jwt_algorithm=(os.environ.get("JWT_ALGORITHM") or "HS256").strip(),
            storage_bucket=(os.environ.get("MANUSCRIPT_BUCKET") or "manuscripts").strip(),
            max_upload_mb=_env_int("MAX_UPLOAD_MB", 20),
            notification_workers=_env_int("NOTIFICATION_WORKERS", 8),
            serialize_manuscript_writes=_env_bool("WORKFLOW_SERIALIZE_MANUSCRIPTS", True),
            frontend_origins=_parse_origins(),
        )


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()

        raw_rate = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0").strip()
        try:
            traces_sample_rate = float(raw_rate)
        except ValueError:
            traces_sample_rate = 0.0
        traces_sample_rate = min(max(traces_sample_rate, 0.0), 1.0)

        return SentryConfig(
            enabled=enabled,
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
        )
