"""
챌린지 API 라우터

- POST /squads/{squad_id}/challenges: 챌린지 생성 (도전자 찬성표 자동 기록)
- GET  /squads/{squad_id}/challenges/active: 진행 중인 챌린지
- GET  /squads/{squad_id}/challenges/{challenge_id}: 챌린지 상세 (투표 목록, 내 투표)
- POST /squads/{squad_id}/challenges/{challenge_id}/votes: 투표
- POST /squads/{squad_id}/challenges/{challenge_id}/expire: 마감된 챌린지 만료 처리
"""

import logging

from fastapi import APIRouter, Depends, Path

from squadapi.core.auth_middleware import get_current_caller
from squadapi.core.exceptions import NotFoundError
from squadapi.deps import get_challenge_service
from squadapi.schemas.auth import Caller
from squadapi.schemas.challenges import (
    ChallengeCreateRequest,
    ChallengeCreateResult,
    ChallengeDetailResponse,
    ChallengeListResponse,
    ChallengeResponse,
    ChallengeVoteRequest,
    ChallengeVoteResult,
)
from squadapi.services.challenge_service import ChallengeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/squads/{squad_id}/challenges", tags=["challenges"])


def _ensure_in_squad(challenge, squad_id: str, challenge_id: str):
    if challenge is None or challenge.squad_id != squad_id:
        raise NotFoundError("Challenge not found", details={"challenge_id": challenge_id})
    return challenge


@router.post("", response_model=ChallengeCreateResult)
def create_challenge(
    request: ChallengeCreateRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    challenge_service: ChallengeService = Depends(get_challenge_service),
) -> ChallengeCreateResult:
    """
    챌린지 생성

    - judge_decision: 판사의 판정에 이의 제기 (related_event_id)
    - power_activation: 사용된 파워에 이의 제기 (related_grant_id)
    필요 표 수는 스쿼드 멤버 수의 과반이며 투표 기간은 1시간입니다.
    """
    return challenge_service.create(
        caller.user_id,
        request.target_id,
        squad_id,
        request.kind,
        related_grant_id=request.related_grant_id,
        related_event_id=request.related_event_id,
        reason=request.reason,
    )


@router.get("/active", response_model=ChallengeListResponse)
def get_active_challenges(
    squad_id: str = Path(..., description="스쿼드 ID"),
    caller: Caller = Depends(get_current_caller),
    challenge_service: ChallengeService = Depends(get_challenge_service),
) -> ChallengeListResponse:
    challenges = challenge_service.get_active(squad_id)
    return ChallengeListResponse(challenges=challenges, total_count=len(challenges))


@router.get("/{challenge_id}", response_model=ChallengeDetailResponse)
def get_challenge(
    squad_id: str = Path(..., description="스쿼드 ID"),
    challenge_id: str = Path(..., description="챌린지 ID"),
    caller: Caller = Depends(get_current_caller),
    challenge_service: ChallengeService = Depends(get_challenge_service),
) -> ChallengeDetailResponse:
    challenge = challenge_service.get_challenge(challenge_id, viewer_id=caller.user_id)
    return _ensure_in_squad(challenge, squad_id, challenge_id)


@router.post("/{challenge_id}/votes", response_model=ChallengeVoteResult)
def vote_on_challenge(
    request: ChallengeVoteRequest,
    squad_id: str = Path(..., description="스쿼드 ID"),
    challenge_id: str = Path(..., description="챌린지 ID"),
    caller: Caller = Depends(get_current_caller),
    challenge_service: ChallengeService = Depends(get_challenge_service),
) -> ChallengeVoteResult:
    """
    챌린지 투표 - 1인 1표

    중복 투표, 종료/만료된 챌린지, 스쿼드 비멤버, 챌린지 대상자는 success=False 로 응답합니다.
    """
    _ensure_in_squad(challenge_service.find(challenge_id), squad_id, challenge_id)
    return challenge_service.vote(challenge_id, caller.user_id, request.vote)


@router.post("/{challenge_id}/expire", response_model=ChallengeResponse)
def expire_challenge(
    squad_id: str = Path(..., description="스쿼드 ID"),
    challenge_id: str = Path(..., description="챌린지 ID"),
    caller: Caller = Depends(get_current_caller),
    challenge_service: ChallengeService = Depends(get_challenge_service),
) -> ChallengeResponse:
    """마감 시각이 지난 active 챌린지를 expired 로 전이 (아직 진행 중이면 변경 없음)"""
    _ensure_in_squad(challenge_service.find(challenge_id), squad_id, challenge_id)
    return challenge_service.expire(challenge_id)
