from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from squadapi.models.challenges import ChallengeKind, ChallengeStatus, VoteChoice
from squadapi.schemas.common import DeclineReason


class ChallengeVoteResponse(BaseModel):
    user_id: str
    vote: VoteChoice
    voted_at: datetime

    class Config:
        from_attributes = True


class ChallengeResponse(BaseModel):
    """챌린지 상태 및 집계"""

    id: str = Field(..., description="챌린지 ID")
    squad_id: str
    challenger_id: str
    target_id: str
    kind: ChallengeKind
    related_grant_id: Optional[str] = None
    related_event_id: Optional[str] = None
    reason: Optional[str] = None
    votes_for: int = Field(..., description="찬성 수")
    votes_against: int = Field(..., description="반대 수")
    votes_needed: int = Field(..., description="가결/부결에 필요한 표 수")
    member_count: int = 0
    status: ChallengeStatus
    started_at: datetime
    expires_at: datetime
    resolved_at: Optional[datetime] = None
    result_applied: bool = False

    class Config:
        from_attributes = True


class ChallengeDetailResponse(ChallengeResponse):
    """투표 목록과 요청자의 투표를 포함한 챌린지 상세"""

    votes: List[ChallengeVoteResponse] = Field(default_factory=list)
    my_vote: Optional[VoteChoice] = None


class ChallengeCreateRequest(BaseModel):
    """챌린지 생성 요청"""

    target_id: str = Field(..., min_length=1, description="이의 대상 (판사 또는 파워 사용자)")
    kind: ChallengeKind
    related_grant_id: Optional[str] = Field(None, description="power_activation 대상 파워 ID")
    related_event_id: Optional[str] = Field(None, description="judge_decision 대상 이벤트 ID")
    reason: Optional[str] = Field(None, max_length=500)


class ChallengeVoteRequest(BaseModel):
    vote: VoteChoice


class ChallengeCreateResult(BaseModel):
    success: bool
    decline_reason: Optional[DeclineReason] = None
    message: str = ""
    challenge: Optional[ChallengeResponse] = None


class ChallengeVoteResult(BaseModel):
    success: bool
    decline_reason: Optional[DeclineReason] = None
    message: str = ""
    challenge: Optional[ChallengeResponse] = None


class ChallengeListResponse(BaseModel):
    challenges: List[ChallengeResponse]
    total_count: int
