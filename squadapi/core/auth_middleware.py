from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from squadapi.core.exceptions import AuthenticationError, AuthorizationError
from squadapi.core.security import decode_access_token
from squadapi.schemas.auth import Caller

# JWT Bearer 토큰 스킴
security = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Caller:
    """필수 사용자 인증 - 유효한 토큰이 필요함"""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    payload = decode_access_token(credentials.credentials)
    return Caller(user_id=payload.sub, is_admin=payload.is_admin)


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    """관리자 권한이 필요한 엔드포인트용 의존성"""
    if not caller.is_admin:
        raise AuthorizationError("Admin access required")
    return caller
