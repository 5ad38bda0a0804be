from pydantic import BaseModel, Field
from typing import Optional
from datetime import date

from squadapi.schemas.common import DeclineReason


class JudgeAssignmentResponse(BaseModel):
    """일일 판사 배정 정보"""

    id: str
    squad_id: str
    user_id: str = Field(..., description="판사 플레이어 ID")
    judge_date: date
    event_id: Optional[str] = None
    bonus_earned: int = 0
    penalty_applied: int = 0
    is_overturned: bool = False

    class Config:
        from_attributes = True


class JudgeAssignRequest(BaseModel):
    """판사 배정 요청 (선정은 외부 스케줄러 담당)"""

    user_id: str = Field(..., min_length=1)
    judge_date: Optional[date] = Field(None, description="기본값: 오늘")
    event_id: Optional[str] = None


class JudgeAdjustmentRequest(BaseModel):
    amount: Optional[int] = Field(None, gt=0, description="기본값: 설정된 보너스/패널티")


class JudgeAdjustmentResult(BaseModel):
    """판사 보너스/패널티 반영 결과"""

    success: bool
    decline_reason: Optional[DeclineReason] = None
    message: str = ""
    amount: int = Field(0, description="실제 반영된 스타 수량")
    assignment: Optional[JudgeAssignmentResponse] = None
