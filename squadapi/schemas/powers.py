from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from squadapi.models.powers import PowerType
from squadapi.schemas.common import DeclineReason


class PowerGrantResponse(BaseModel):
    """지급된 파워 정보"""

    id: str = Field(..., description="파워 ID")
    power_type: PowerType = Field(..., description="파워 종류")
    owner_id: str = Field(..., description="소유자 ID")
    squad_id: str = Field(..., description="스쿼드 ID")
    granted_at: datetime
    expires_at: datetime
    consumed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = Field(None, description="부가 정보")

    class Config:
        from_attributes = True


class ActiveTargetResponse(BaseModel):
    """target_lock 조준 관계"""

    id: str
    targeter_id: str
    target_id: str
    squad_id: str
    grant_id: str
    expires_at: datetime
    revoked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PowerConsumeRequest(BaseModel):
    """파워 사용 요청"""

    target_id: Optional[str] = Field(None, description="target_lock 대상 플레이어 ID")
    metadata: Optional[Dict[str, Any]] = Field(None, description="사용 시 기록할 부가 정보")


class PowerConsumeResult(BaseModel):
    """파워 사용 결과"""

    success: bool
    decline_reason: Optional[DeclineReason] = None
    message: str = ""
    grant: Optional[PowerGrantResponse] = None
    target: Optional[ActiveTargetResponse] = None
    chaos_rule: Optional[str] = Field(None, description="chaos_card 로 뽑힌 규칙")


class PowerGrantRequest(BaseModel):
    """관리자 파워 지급 요청"""

    owner_id: str = Field(..., min_length=1, description="지급 대상 플레이어 ID")
    power_type: PowerType
    ttl_hours: Optional[int] = Field(None, gt=0, le=24 * 30, description="유효 시간 (기본값: 종류별)")
    metadata: Optional[Dict[str, Any]] = None


class PowerCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255, description="취소 사유")


class PowerCancelResult(BaseModel):
    """파워 취소 결과 - 반복 취소는 no-op"""

    cancelled: bool = Field(..., description="이번 호출로 취소되었는지 여부")
    already_cancelled: bool = False
    decline_reason: Optional[DeclineReason] = None
    grant: Optional[PowerGrantResponse] = None


class TargetedStatusResponse(BaseModel):
    player_id: str
    squad_id: str
    is_targeted: bool


class PowerListResponse(BaseModel):
    powers: List[PowerGrantResponse]
    total_count: int


class ActiveTargetListResponse(BaseModel):
    targets: List[ActiveTargetResponse]
    total_count: int
