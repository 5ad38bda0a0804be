from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime

from squadapi.models.stars import StarTransactionKind
from squadapi.schemas.common import DeclineReason


class StarBalanceResponse(BaseModel):
    """스타 잔액 응답"""

    player_id: str = Field(..., description="플레이어 ID")
    squad_id: str = Field(..., description="스쿼드 ID")
    balance: int = Field(0, description="현재 사용 가능한 스타")
    lifetime_earned: int = Field(0, description="누적 적립 스타")

    class Config:
        from_attributes = True


class StarTransactionEntry(BaseModel):
    """스타 원장 항목"""

    id: int = Field(..., description="원장 항목 ID")
    player_id: str
    squad_id: str
    amount: int = Field(..., description="변동량 (양수: 적립, 음수: 차감)")
    balance_after: int = Field(..., description="거래 후 잔액")
    kind: StarTransactionKind = Field(..., description="거래 유형")
    source: str = Field(..., description="거래 출처")
    reference_id: Optional[str] = Field(None, description="참조 ID")
    details: Optional[Dict[str, Any]] = Field(None, description="부가 정보")
    created_at: Optional[datetime] = Field(None, description="생성 시간")

    class Config:
        from_attributes = True


class StarLedgerResponse(BaseModel):
    """스타 원장 조회 응답"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[StarTransactionEntry] = Field(..., description="원장 항목 목록 (최신순)")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class StarTransactionRequest(BaseModel):
    """스타 적립/사용 요청"""

    amount: int = Field(..., gt=0, description="스타 수량")
    source: str = Field(..., min_length=1, max_length=100, description="거래 출처")
    reference_id: Optional[str] = Field(None, max_length=100, description="참조 ID")
    metadata: Optional[Dict[str, Any]] = Field(None, description="부가 정보")


class AdminStarEarnRequest(StarTransactionRequest):
    """관리자 스타 지급 요청"""

    player_id: str = Field(..., min_length=1, description="대상 플레이어 ID")


class StarEarnResult(BaseModel):
    """적립 결과"""

    new_balance: int
    transaction_id: int


class StarSpendResult(BaseModel):
    """사용 결과 - 잔액 부족은 예외가 아닌 success=False"""

    success: bool
    new_balance: int
    transaction_id: Optional[int] = None
    decline_reason: Optional[DeclineReason] = None
    message: str = ""


class StarDeductResult(BaseModel):
    """잔액 한도 내 차감 결과 (판사 패널티 등)"""

    requested: int
    deducted: int
    new_balance: int
    transaction_id: Optional[int] = None


class DailyLoginResult(BaseModel):
    """일일 로그인 보상 결과"""

    already_claimed: bool
    amount: Optional[int] = None
    consecutive_days: Optional[int] = None
    new_balance: Optional[int] = None
    claim_date: date


class StarIntegrityCheckResponse(BaseModel):
    """스타 정합성 검증 응답"""

    status: str = Field(..., description="검증 상태 (OK, MISMATCH)")
    player_id: str
    squad_id: str
    calculated_balance: int = Field(..., description="원장 합계로 계산된 잔액")
    recorded_balance: int = Field(..., description="star_balances 에 기록된 잔액")
    entry_count: int
    broken_entry_id: Optional[int] = Field(None, description="balance_after 체인이 끊긴 항목")
    verified_at: datetime
