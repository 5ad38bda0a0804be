from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """외부 인증 시스템이 발급한 JWT 페이로드"""

    sub: str = Field(..., min_length=1, description="플레이어 ID")
    is_admin: bool = False


class Caller(BaseModel):
    """요청자 식별 정보 - 전역 세션 대신 요청마다 명시적으로 전달"""

    user_id: str
    is_admin: bool = False
