import asyncio
import logging
from typing import Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from peertrack.core.config import AppConfig
from peertrack.core.dependencies import get_config, get_user_directory
from peertrack.core.errors import AuthenticationError, AuthorizationError
from peertrack.models.user import User
from peertrack.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

# 中文注释: auto_error=False，缺少凭证时由我们自己抛 AuthenticationError，保证返回统一信封
security = HTTPBearer(auto_error=False)


def decode_access_token(token: str, config: AppConfig) -> dict[str, Any]:
    """
    解码并校验 Bearer JWT，返回 payload。

    中文注释: 令牌签发在外部账号系统完成，这里只做校验；sub 即 user_profiles.id。
    """
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired. Please login again.")
    except JWTError as e:
        logger.info("JWT 验证失败: %s", e)
        raise AuthenticationError("Invalid token")

    if not str(payload.get("sub") or payload.get("id") or "").strip():
        raise AuthenticationError("Invalid token payload")
    return payload


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    config: AppConfig = Depends(get_config),
    users: UserDirectory = Depends(get_user_directory),
) -> User:
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise AuthenticationError("Not authorized. Please login.")

    payload = decode_access_token(credentials.credentials, config)
    user_id = str(payload.get("sub") or payload.get("id")).strip()

    user = await asyncio.to_thread(users.find_by_id, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("Your account has been deactivated")
    return user
