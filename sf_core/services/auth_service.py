"""
认证服务

令牌由外部登录系统签发，这里只负责解码和校验，
create_access_token 供开发和测试使用。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from jose import JWTError, jwt

from sf_core.config import Settings, get_settings
from sf_core.models.enums import UserRole, MANAGER_ROLES
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import UnauthorizedError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Principal:
    """请求主体：令牌里的 {id, role}"""
    id: int
    role: str

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @property
    def is_sales_manager(self) -> bool:
        return self.role == UserRole.SALES_MANAGER


class AuthService:
    """认证服务"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.access_token_expire = timedelta(minutes=self.settings.access_token_expire_minutes)
        self.algorithm = self.settings.algorithm

    def create_access_token(self, data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        """创建访问令牌"""
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or self.access_token_expire)
        to_encode.update({
            "exp": expire,
            "type": "access",
            "jti": str(uuid4()),
        })
        return jwt.encode(to_encode, self.settings.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict:
        """解码JWT令牌"""
        try:
            return jwt.decode(token, self.settings.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise UnauthorizedError(
                code="INVALID_TOKEN",
                detail=f"Token validation failed: {str(e)}"
            )

    def principal_from_token(self, token: str) -> Principal:
        """令牌 -> Principal"""
        payload = self.decode_token(token)

        token_type = payload.get("type")
        if token_type is not None and token_type != "access":
            raise UnauthorizedError(code="INVALID_TOKEN_TYPE", detail="Invalid token type")

        user_id = payload.get("id")
        role = payload.get("role")
        if user_id is None or role is None:
            raise UnauthorizedError(code="INVALID_TOKEN_PAYLOAD", detail="Token payload must carry id and role")

        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            raise UnauthorizedError(code="INVALID_TOKEN_PAYLOAD", detail="Token id must be an integer")

        if role not in {r.value for r in UserRole}:
            raise UnauthorizedError(code="INVALID_TOKEN_PAYLOAD", detail=f"Unknown role: {role}")

        return Principal(id=user_id, role=role)


_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """获取认证服务单例"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
