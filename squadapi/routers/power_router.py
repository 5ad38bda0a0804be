"""
파워 API 라우터

- GET  /squads/{squad_id}/powers/active: 내 사용 가능한 파워
- POST /squads/{squad_id}/powers/{grant_id}/consume: 파워 사용
- GET  /squads/{squad_id}/powers/targeted: 내가 조준당하고 있는지
- GET  /squads/{squad_id}/powers/targets: 스쿼드의 살아있는 조준 목록
- GET  /squads/{squad_id}/powers/history: 스쿼드 파워 이력
- POST /squads/{squad_id}/powers/streak-shield: 연속 기록 보호 자동 사용
- POST /squads/{squad_id}/powers/grant: 파워 지급 (관리자)
- POST /squads/{squad_id}/powers/{grant_id}/cancel: 파워 취소 (관리자)
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from squadapi.core.auth_middleware import get_current_caller, require_admin
from squadapi.core.exceptions import NotFoundError
from squadapi.deps import get_power_service
from squadapi.schemas.auth import Caller
from squadapi.schemas.powers import (
    ActiveTargetListResponse,
    PowerCancelRequest,
    PowerCancelResult,
    PowerConsumeRequest,
    PowerConsumeResult,
    PowerGrantRequest,
    PowerGrantResponse,
    PowerListResponse,
    TargetedStatusResponse,
)
from squadapi.services.power_service import PowerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/squads/{squad_id}/powers", tags=["powers"])


def _ensure_grant_in_squad(power_service: PowerService, squad_id: str, grant_id: str) -> None:
    grant = power_service.get_grant(grant_id)
    if grant is None or grant.squad_id != squad_id:
        raise NotFoundError("Power not found", details={"grant_id": grant_id})


@router.get("/active", response_model=PowerListResponse)
def get_my_active_powers(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    power_service: PowerService = Depends(get_power_service),
) -> PowerListResponse:
    """내 사용 가능한 파워 목록 (만료 임박 순)"""
    powers = power_service.list_active(caller.user_id, squad_id)
    return PowerListResponse(powers=powers, total_count=len(powers))


@router.post("/streak-shield", response_model=PowerConsumeResult)
def protect_my_streak(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    power_service: PowerService = Depends(get_power_service),
) -> PowerConsumeResult:
    """이벤트 불참 시 streak_shield 자동 사용"""
    return power_service.protect_streak(caller.user_id, squad_id)


@router.post("/{grant_id}/consume", response_model=PowerConsumeResult)
def consume_power(
    squad_id: str = Path(..., description="스쿼드 ID"),
    grant_id: str = Path(..., description="파워 ID"),
    request: Optional[PowerConsumeRequest] = None,
    caller: Caller = Depends(get_current_caller),
    power_service: PowerService = Depends(get_power_service),
) -> PowerConsumeResult:
    """
    파워 사용

    - target_lock: target_id 필수, 이미 조준 중이면 TARGET_ALREADY_LOCKED
    - chaos_card: 응답의 chaos_rule 에 뽑힌 규칙
    사용할 수 없는 파워는 success=False 와 decline_reason 으로 응답합니다.
    """
    _ensure_grant_in_squad(power_service, squad_id, grant_id)
    request = request or PowerConsumeRequest()
    return power_service.consume(
        grant_id,
        caller.user_id,
        metadata=request.metadata,
        target_id=request.target_id,
    )


@router.get("/targeted", response_model=TargetedStatusResponse)
def get_my_targeted_status(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    power_service: PowerService = Depends(get_power_service),
) -> TargetedStatusResponse:
    return TargetedStatusResponse(
        player_id=caller.user_id,
        squad_id=squad_id,
        is_targeted=power_service.is_targeted(caller.user_id, squad_id),
    )


@router.get("/targets", response_model=ActiveTargetListResponse)
def list_squad_targets(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    power_service: PowerService = Depends(get_power_service),
) -> ActiveTargetListResponse:
    targets = power_service.list_targets(squad_id)
    return ActiveTargetListResponse(targets=targets, total_count=len(targets))


@router.get("/history", response_model=PowerListResponse)
def get_squad_power_history(
    squad_id: str = Path(..., description="스쿼드 ID"),
    limit: int = Query(50, ge=1, le=100, description="최대 조회 수"),
    caller: Caller = Depends(get_current_caller),
    power_service: PowerService = Depends(get_power_service),
) -> PowerListResponse:
    """스쿼드 파워 이력 (최신순) - 사용/취소/만료 포함"""
    powers = power_service.get_power_history(squad_id, limit=limit)
    return PowerListResponse(powers=powers, total_count=len(powers))


@router.post("/grant", response_model=PowerGrantResponse)
def admin_grant_power(
    request: PowerGrantRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    admin: Caller = Depends(require_admin),
    power_service: PowerService = Depends(get_power_service),
) -> PowerGrantResponse:
    """관리자 파워 지급"""
    logger.info(f"Admin {admin.user_id} grants {request.power_type.value} to {request.owner_id}")
    return power_service.grant_power(
        request.owner_id,
        squad_id,
        request.power_type,
        ttl=timedelta(hours=request.ttl_hours) if request.ttl_hours is not None else None,
        metadata=request.metadata,
    )


@router.post("/{grant_id}/cancel", response_model=PowerCancelResult)
def admin_cancel_power(
    request: PowerCancelRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    grant_id: str = Path(..., description="파워 ID"),
    admin: Caller = Depends(require_admin),
    power_service: PowerService = Depends(get_power_service),
) -> PowerCancelResult:
    """관리자 파워 취소 - 반복 취소는 변경 없이 already_cancelled=True"""
    _ensure_grant_in_squad(power_service, squad_id, grant_id)
    return power_service.cancel(grant_id, admin.user_id, request.reason)
