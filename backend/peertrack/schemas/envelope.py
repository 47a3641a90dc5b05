from typing import Any, Optional


def ok(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    """所有接口统一返回结构：{success, message?, data?}"""
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def fail(message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    body.update(extra)
    return body
