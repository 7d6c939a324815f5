"""
JWT 인증 미들웨어

FastAPI 의존성 주입을 활용한 JWT 인증을 제공합니다.
사용자 정보는 인증 서비스가 발급한 토큰 클레임(sub, role, name)에서만 가져옵니다.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hashview.utils.security import JWTManager


# HTTP Bearer 토큰 스킴 (Authorization: Bearer <token>)
security = HTTPBearer()


class UserRole:
    """토큰 role 클레임 값"""

    CUSTOMER = "customer"
    BUSINESS_OWNER = "business_owner"
    ADMIN = "admin"


class CurrentUser:
    """토큰에서 복원한 현재 사용자"""

    def __init__(self, id: UUID, role: str, name: Optional[str] = None):
        self.id = id
        self.role = role
        self.name = name

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<CurrentUser(id={self.id}, role={self.role})>"


class AuthenticationError(HTTPException):
    """인증 실패 예외"""

    def __init__(self, detail: str = "인증에 실패했습니다."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """권한 부족 예외"""

    def __init__(self, detail: str = "접근 권한이 없습니다."):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    현재 요청의 사용자 추출

    JWT 토큰을 검증하고 클레임으로 CurrentUser를 만듭니다.

    Raises:
        AuthenticationError: 토큰이 유효하지 않은 경우

    Example:
        ```python
        @router.get("/me")
        async def me(current_user: CurrentUser = Depends(get_current_user)):
            return {"id": str(current_user.id)}
        ```
    """
    try:
        payload = JWTManager.decode_token(credentials.credentials)
    except ValueError as e:
        raise AuthenticationError(detail=str(e))

    # access token만 허용
    if not JWTManager.verify_token_type(payload, "access"):
        raise AuthenticationError(detail="잘못된 토큰 타입입니다.")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError(detail="토큰에서 사용자 정보를 찾을 수 없습니다.")

    try:
        user_uuid = UUID(str(user_id))
    except ValueError:
        raise AuthenticationError(detail="잘못된 사용자 ID 형식입니다.")

    return CurrentUser(
        id=user_uuid,
        role=payload.get("role", UserRole.CUSTOMER),
        name=payload.get("name"),
    )


def require_role(*allowed_roles: str):
    """
    특정 역할을 가진 사용자만 접근 허용하는 의존성 팩토리

    Example:
        ```python
        @router.get("/admin/reviews/flagged")
        async def flagged(current_user: CurrentUser = Depends(require_role("admin"))):
            ...
        ```
    """

    async def role_checker(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                detail=f"이 기능은 {', '.join(allowed_roles)} 역할만 사용할 수 있습니다."
            )
        return current_user

    return role_checker


require_admin = require_role(UserRole.ADMIN)
