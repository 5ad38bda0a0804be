"""
판사 API 라우터

- GET  /squads/{squad_id}/judges/today: 오늘의 판사
- POST /squads/{squad_id}/judges: 판사 배정 (관리자, 스케줄러)
- POST /squads/{squad_id}/judges/{assignment_id}/bonus: 판정 유지 보너스 (관리자)
- POST /squads/{squad_id}/judges/{assignment_id}/penalty: 판정 번복 패널티 (관리자)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path

from squadapi.core.auth_middleware import get_current_caller, require_admin
from squadapi.core.exceptions import NotFoundError
from squadapi.deps import get_judge_service
from squadapi.schemas.auth import Caller
from squadapi.schemas.judges import (
    JudgeAdjustmentRequest,
    JudgeAdjustmentResult,
    JudgeAssignmentResponse,
    JudgeAssignRequest,
)
from squadapi.services.judge_service import JudgeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/squads/{squad_id}/judges", tags=["judges"])


@router.get("/today", response_model=JudgeAssignmentResponse)
def get_today_judge(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    judge_service: JudgeService = Depends(get_judge_service),
) -> JudgeAssignmentResponse:
    judge = judge_service.get_today(squad_id)
    if judge is None:
        raise NotFoundError("No judge assigned today", details={"squad_id": squad_id})
    return judge


@router.post("", response_model=JudgeAssignmentResponse)
def assign_judge(
    request: JudgeAssignRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    admin: Caller = Depends(require_admin),
    judge_service: JudgeService = Depends(get_judge_service),
) -> JudgeAssignmentResponse:
    """판사 배정 - 이미 배정된 날짜면 기존 배정 반환"""
    return judge_service.assign(
        squad_id,
        request.user_id,
        judge_date=request.judge_date,
        event_id=request.event_id,
    )


@router.post("/{assignment_id}/bonus", response_model=JudgeAdjustmentResult)
def apply_judge_bonus(
    squad_id: str = Path(..., description="스쿼드 ID"),
    assignment_id: str = Path(..., description="판사 배정 ID"),
    request: Optional[JudgeAdjustmentRequest] = None,
    admin: Caller = Depends(require_admin),
    judge_service: JudgeService = Depends(get_judge_service),
) -> JudgeAdjustmentResult:
    amount = request.amount if request else None
    return judge_service.apply_bonus(assignment_id, amount)


@router.post("/{assignment_id}/penalty", response_model=JudgeAdjustmentResult)
def apply_judge_penalty(
    squad_id: str = Path(..., description="스쿼드 ID"),
    assignment_id: str = Path(..., description="판사 배정 ID"),
    request: Optional[JudgeAdjustmentRequest] = None,
    admin: Caller = Depends(require_admin),
    judge_service: JudgeService = Depends(get_judge_service),
) -> JudgeAdjustmentResult:
    """판정 번복 패널티 - 잔액 한도 내에서만 차감"""
    amount = request.amount if request else None
    return judge_service.apply_penalty(assignment_id, amount)
