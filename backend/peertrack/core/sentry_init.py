from typing import Any

from peertrack.core.config import SentryConfig

FILTERED = "[Filtered]"

# 凭证类字段：无论出现在哪一层都替换
_CREDENTIAL_KEYS = frozenset(
    {"password", "access_token", "refresh_token", "token", "jwt", "authorization", "cookie", "set-cookie"}
)
_SUPABASE_KEYS = frozenset({"supabase_key", "service_role_key"})

# 审稿内容属于保密信息（匿名评审），同样不得上报
_MANUSCRIPT_TEXT_KEYS = frozenset(
    {"abstract", "comments", "strengths", "weaknesses", "suggestions", "editor_comments", "editorComments"}
)

_SENSITIVE_KEYS = {k.lower() for k in _CREDENTIAL_KEYS | _SUPABASE_KEYS | _MANUSCRIPT_TEXT_KEYS}


def _is_sensitive(key: Any) -> bool:
    return str(key).strip().lower() in _SENSITIVE_KEYS


def _scrub(value: Any) -> Any:
    """
    递归替换敏感字段（凭证 + 稿件/审稿正文）。
    """
    if isinstance(value, dict):
        return {str(k): (FILTERED if _is_sensitive(k) else _scrub(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        # 上传的稿件文件
        return FILTERED
    return value


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    # 中文注释: 请求体一律不上传（multipart 稿件、审稿意见 JSON），header 只去掉凭证。
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {k: v for k, v in headers.items() if not _is_sensitive(k)}
        for key in ("cookies", "data", "body"):
            if key in request:
                request[key] = FILTERED

    for section in ("extra", "contexts"):
        if isinstance(event.get(section), dict):
            event[section] = _scrub(event[section])

    return event


def init_sentry(cfg: SentryConfig | None = None) -> bool:
    """
    初始化 Sentry；未配置 DSN 或显式禁用时返回 False。

    中文注释: 调用方负责 try/except，Sentry 初始化失败不得阻塞启动。
    """
    cfg = cfg or SentryConfig.from_env()
    if not (cfg.enabled and cfg.dsn):
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=cfg.dsn,
        environment=cfg.environment,
        traces_sample_rate=cfg.traces_sample_rate,
        integrations=[FastApiIntegration()],
        send_default_pii=False,
        before_send=before_send,
        max_request_body_size="never",
    )
    sentry_sdk.set_tag("service", "peertrack-api")
    return True
