"""
스타 API 라우터

사용자용 엔드포인트:
- GET /squads/{squad_id}/stars/balance: 내 스타 잔액
- GET /squads/{squad_id}/stars/transactions: 내 거래 내역 (최신순)
- POST /squads/{squad_id}/stars/spend: 스타 사용
- POST /squads/{squad_id}/stars/daily-login: 일일 로그인 보상 수령
- GET /squads/{squad_id}/stars/integrity: 내 원장 정합성 검증

관리자용 엔드포인트:
- POST /squads/{squad_id}/stars/earn: 스타 지급

잔액 부족 등 비즈니스 거절은 200 응답의 success=False 로 반환됩니다.
"""

import logging

from fastapi import APIRouter, Depends, Path, Query

from squadapi.core.auth_middleware import get_current_caller, require_admin
from squadapi.deps import get_star_service
from squadapi.schemas.auth import Caller
from squadapi.schemas.stars import (
    AdminStarEarnRequest,
    DailyLoginResult,
    StarBalanceResponse,
    StarEarnResult,
    StarIntegrityCheckResponse,
    StarLedgerResponse,
    StarSpendResult,
    StarTransactionRequest,
)
from squadapi.services.star_service import StarService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/squads/{squad_id}/stars", tags=["stars"])


@router.get("/balance", response_model=StarBalanceResponse)
def get_my_balance(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    star_service: StarService = Depends(get_star_service),
) -> StarBalanceResponse:
    """내 스타 잔액 조회 - 거래가 없으면 0"""
    return star_service.get_balance(caller.user_id, squad_id)


@router.get("/transactions", response_model=StarLedgerResponse)
def get_my_transactions(
    squad_id: str = Path(..., description="스쿼드 ID"),
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    caller: Caller = Depends(get_current_caller),
    star_service: StarService = Depends(get_star_service),
) -> StarLedgerResponse:
    """
    내 스타 거래 내역 조회

    Returns:
        StarLedgerResponse: 현재 잔액, 거래 내역(최신순), 전체 건수, 다음 페이지 여부
    """
    return star_service.get_transactions(caller.user_id, squad_id, limit=limit, offset=offset)


@router.post("/spend", response_model=StarSpendResult)
def spend_stars(
    request: StarTransactionRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    star_service: StarService = Depends(get_star_service),
) -> StarSpendResult:
    """
    스타 사용

    잔액이 부족하면 success=False, decline_reason=INSUFFICIENT_BALANCE 를 반환하며
    잔액과 거래 내역은 변경되지 않습니다.
    """
    return star_service.spend(
        caller.user_id,
        squad_id,
        request.amount,
        request.source,
        reference_id=request.reference_id,
        metadata=request.metadata,
    )


@router.post("/daily-login", response_model=DailyLoginResult)
def claim_daily_login(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    star_service: StarService = Depends(get_star_service),
) -> DailyLoginResult:
    """일일 로그인 보상 수령 - 하루 한 번, 7일 주기 보상표"""
    return star_service.daily_login_reward(caller.user_id, squad_id)


@router.get("/integrity", response_model=StarIntegrityCheckResponse)
def verify_my_integrity(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    star_service: StarService = Depends(get_star_service),
) -> StarIntegrityCheckResponse:
    return star_service.verify_integrity(caller.user_id, squad_id)


@router.post("/earn", response_model=StarEarnResult)
def admin_earn_stars(
    request: AdminStarEarnRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    admin: Caller = Depends(require_admin),
    star_service: StarService = Depends(get_star_service),
) -> StarEarnResult:
    """관리자 스타 지급 (이벤트 보상 등)"""
    logger.info(
        f"Admin {admin.user_id} grants {request.amount} stars to {request.player_id} in squad {squad_id}"
    )
    return star_service.earn(
        request.player_id,
        squad_id,
        request.amount,
        request.source,
        reference_id=request.reference_id,
        metadata=request.metadata,
    )
