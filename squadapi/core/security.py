from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from pydantic import ValidationError as PydanticValidationError

from squadapi.config import settings
from squadapi.core.exceptions import AuthenticationError
from squadapi.schemas.auth import TokenPayload


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """테스트 및 내부 도구용 토큰 발급 (운영 토큰은 외부 인증 시스템이 발급)"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire})
    return jwt.encode(
        to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def decode_access_token(token: str) -> TokenPayload:
    """JWT 토큰을 검증하고 페이로드를 반환합니다."""
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return TokenPayload.model_validate(payload)
    except (JWTError, PydanticValidationError):
        raise AuthenticationError("Invalid or expired token")
