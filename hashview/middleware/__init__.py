"""
미들웨어 패키지

JWT 인증 및 역할 기반 접근 제어를 제공합니다.
"""

from hashview.middleware.auth import (
    AuthenticationError,
    AuthorizationError,
    CurrentUser,
    UserRole,
    get_current_user,
    require_admin,
    require_role,
)

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "CurrentUser",
    "UserRole",
    "get_current_user",
    "require_admin",
    "require_role",
]
