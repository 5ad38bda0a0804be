"""
챌린지 서비스 - 판정/파워 사용에 대한 스쿼드 투표

상태 머신: active -> passed | failed | expired (단방향, 한 번만 전이)

- 필요 표 수: ceil(멤버 수 / 2), 최소 1
- 생성 시 도전자의 찬성표가 자동으로 기록되고 즉시 판정을 시도합니다
- 결과 반영은 result_applied 조건부 UPDATE 를 획득한 호출자만 실행합니다
  - power_activation 가결: 해당 파워 취소
  - judge_decision 가결: 판사 패널티 / 부결: 판사 보너스
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from squadapi.config import Settings, settings as default_settings
from squadapi.database.session import transactional
from squadapi.models.challenges import (
    Challenge,
    ChallengeKind,
    ChallengeStatus,
    VoteChoice,
)
from squadapi.repositories.challenge_repository import ChallengeRepository
from squadapi.schemas.challenges import (
    ChallengeCreateResult,
    ChallengeDetailResponse,
    ChallengeResponse,
    ChallengeVoteResponse,
    ChallengeVoteResult,
)
from squadapi.schemas.common import DeclineReason, decline_message
from squadapi.services.judge_service import JudgeService
from squadapi.services.power_service import PowerService
from squadapi.services.squad_membership_service import SquadMembershipProvider
from squadapi.utils.timezone_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

OVERTURN_REASON = "overturned by vote"


def votes_needed_for(member_count: int) -> int:
    """과반 기준 - ceil(member_count / 2), 최소 1"""
    return max(1, math.ceil(member_count / 2))


class ChallengeService:
    def __init__(
        self,
        db: Session,
        membership: SquadMembershipProvider,
        settings: Optional[Settings] = None,
        power_service: Optional[PowerService] = None,
        judge_service: Optional[JudgeService] = None,
    ):
        self.db = db
        self.membership = membership
        self.settings = settings or default_settings
        self.power_service = power_service or PowerService(db, settings=self.settings)
        self.judge_service = judge_service or JudgeService(db, settings=self.settings)
        self.challenge_repo = ChallengeRepository(db)

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else utc_now()

    @staticmethod
    def _create_declined(reason: DeclineReason) -> ChallengeCreateResult:
        return ChallengeCreateResult(
            success=False, decline_reason=reason, message=decline_message(reason)
        )

    def _vote_declined(
        self, reason: DeclineReason, challenge_id: Optional[str] = None
    ) -> ChallengeVoteResult:
        logger.warning(f"Vote on challenge {challenge_id} declined: {reason.value}")
        return ChallengeVoteResult(
            success=False,
            decline_reason=reason,
            message=decline_message(reason),
            challenge=self.challenge_repo.get_by_id(challenge_id) if challenge_id else None,
        )

    # ------------------------------------------------------------------
    # 생성
    # ------------------------------------------------------------------

    def create(
        self,
        challenger_id: str,
        target_id: str,
        squad_id: str,
        kind: ChallengeKind,
        related_grant_id: Optional[str] = None,
        related_event_id: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ChallengeCreateResult:
        """챌린지 생성 - 도전자의 찬성표를 포함해 생성한 뒤 즉시 판정 시도"""
        now = self._now(now)

        if not self.membership.is_member(squad_id, challenger_id):
            return self._create_declined(DeclineReason.NOT_SQUAD_MEMBER)
        if target_id == challenger_id:
            return self._create_declined(DeclineReason.CANNOT_CHALLENGE_SELF)

        member_count = self.membership.member_count(squad_id)
        votes_needed = votes_needed_for(member_count)

        with transactional(self.db, "create_challenge"):
            if kind == ChallengeKind.POWER_ACTIVATION:
                grant = (
                    self.power_service.powers_repo.get_model(related_grant_id)
                    if related_grant_id
                    else None
                )
                if (
                    grant is None
                    or grant.squad_id != squad_id
                    or grant.owner_id != target_id
                    or grant.consumed_at is None
                ):
                    return self._create_declined(DeclineReason.GRANT_NOT_FOUND)
                if grant.cancelled_at is not None:
                    return self._create_declined(DeclineReason.GRANT_CANCELLED)

            duplicate = self.challenge_repo.find_active_duplicate(
                squad_id, kind, related_grant_id, related_event_id, now
            )
            if duplicate is not None:
                return self._create_declined(DeclineReason.CHALLENGE_ALREADY_ACTIVE)

            challenge = self.challenge_repo.create(
                squad_id=squad_id,
                challenger_id=challenger_id,
                target_id=target_id,
                kind=kind,
                related_grant_id=related_grant_id,
                related_event_id=related_event_id,
                reason=reason,
                votes_for=1,
                votes_against=0,
                votes_needed=votes_needed,
                member_count=member_count,
                started_at=now,
                expires_at=now + timedelta(minutes=self.settings.CHALLENGE_DURATION_MINUTES),
                status=ChallengeStatus.ACTIVE,
                result_applied=False,
            )
            self.challenge_repo.insert_vote(challenge.id, challenger_id, VoteChoice.FOR, now)
            challenge_id = challenge.id

        logger.info(
            f"Challenge {challenge_id} ({kind.value}) created by {challenger_id} "
            f"against {target_id} in squad {squad_id}: needs {votes_needed}/{member_count}"
        )

        # 2인 스쿼드는 도전자 1표로 즉시 가결
        response = self.resolve(challenge_id, now=now)
        return ChallengeCreateResult(success=True, message="Challenge created", challenge=response)

    # ------------------------------------------------------------------
    # 투표
    # ------------------------------------------------------------------

    def vote(
        self,
        challenge_id: str,
        user_id: str,
        choice: VoteChoice,
        now: Optional[datetime] = None,
    ) -> ChallengeVoteResult:
        """
        투표 - 투표 기록과 집계 증가는 하나의 트랜잭션

        마감이 지난 챌린지에 대한 투표는 챌린지를 만료 처리하고 CHALLENGE_EXPIRED 로 거절됩니다.
        마감 시각 정각까지는 투표할 수 있고, 챌린지 대상자는 투표할 수 없습니다.
        """
        now = self._now(now)

        with transactional(self.db, "load_challenge"):
            challenge = self.challenge_repo.get_model(challenge_id)
            if challenge is None:
                return self._vote_declined(DeclineReason.CHALLENGE_NOT_FOUND)
            squad_id = challenge.squad_id
            target_id = challenge.target_id

        if not self.membership.is_member(squad_id, user_id):
            return self._vote_declined(DeclineReason.NOT_SQUAD_MEMBER, challenge_id)
        if user_id == target_id:
            return self._vote_declined(DeclineReason.CANNOT_VOTE_ON_OWN_CHALLENGE, challenge_id)

        with transactional(self.db, "vote_challenge"):
            challenge = self.challenge_repo.get_model(challenge_id)
            if challenge.status != ChallengeStatus.ACTIVE:
                return self._vote_declined(DeclineReason.CHALLENGE_NOT_ACTIVE, challenge_id)
            if ensure_utc(challenge.expires_at) < now:
                self.challenge_repo.mark_expired(challenge_id, now)
                return self._vote_declined(DeclineReason.CHALLENGE_EXPIRED, challenge_id)

            try:
                self.challenge_repo.insert_vote(challenge_id, user_id, choice, now)
            except IntegrityError:
                self.db.rollback()
                return self._vote_declined(DeclineReason.ALREADY_VOTED, challenge_id)

            if not self.challenge_repo.increment_vote(challenge_id, choice, now):
                # 그 사이 다른 요청이 챌린지를 종료/만료함 - 투표 기록도 되돌림
                self.db.rollback()
                current = self.challenge_repo.get_model(challenge_id)
                if current.status == ChallengeStatus.ACTIVE and self.challenge_repo.mark_expired(
                    challenge_id, now
                ):
                    return self._vote_declined(DeclineReason.CHALLENGE_EXPIRED, challenge_id)
                return self._vote_declined(DeclineReason.CHALLENGE_NOT_ACTIVE, challenge_id)

        logger.info(f"{user_id} voted {choice.value} on challenge {challenge_id}")
        response = self.resolve(challenge_id, now=now)
        return ChallengeVoteResult(success=True, message="Vote recorded", challenge=response)

    # ------------------------------------------------------------------
    # 판정 / 만료
    # ------------------------------------------------------------------

    def resolve(self, challenge_id: str, now: Optional[datetime] = None) -> Optional[ChallengeResponse]:
        """
        판정 (멱등)

        1. 찬성 >= 필요 표 수면 passed, 반대 >= 필요 표 수면 failed (조건부 UPDATE)
        2. result_applied 를 획득한 호출자만 결과 반영
        이미 판정된 챌린지에 대한 재호출은 변경 없이 현재 상태를 반환합니다.
        """
        now = self._now(now)

        with transactional(self.db, "resolve_challenge"):
            if self.challenge_repo.get_model(challenge_id) is None:
                return None

            if not self.challenge_repo.mark_passed(challenge_id, now):
                self.challenge_repo.mark_failed(challenge_id, now)

            if self.challenge_repo.claim_result(challenge_id):
                self._apply_result(self.challenge_repo.get_model(challenge_id), now)

            return self.challenge_repo.get_by_id(challenge_id)

    def _apply_result(self, challenge: Challenge, now: datetime) -> None:
        """가결/부결 결과 반영 - resolve 트랜잭션 안에서 실행"""
        logger.info(f"Applying result of challenge {challenge.id}: {challenge.status.value}")

        if challenge.kind == ChallengeKind.POWER_ACTIVATION:
            if challenge.status == ChallengeStatus.PASSED and challenge.related_grant_id:
                self.power_service.cancel(
                    challenge.related_grant_id,
                    challenge.challenger_id,
                    OVERTURN_REASON,
                    now=now,
                    commit=False,
                )
            return

        assignment = self.judge_service.judge_repo.find_for_ruling(
            challenge.squad_id, challenge.target_id, challenge.related_event_id
        )
        if assignment is None:
            logger.warning(
                f"No judge assignment for challenge {challenge.id} "
                f"(judge={challenge.target_id}, event={challenge.related_event_id})"
            )
            return

        if challenge.status == ChallengeStatus.PASSED:
            self.judge_service.apply_penalty(assignment.id, commit=False)
        else:
            self.judge_service.apply_bonus(assignment.id, commit=False)

    def expire(self, challenge_id: str, now: Optional[datetime] = None) -> Optional[ChallengeResponse]:
        """마감이 지난 active 챌린지를 expired 로 전이 (다른 효과 없음)"""
        now = self._now(now)
        with transactional(self.db, "expire_challenge"):
            if self.challenge_repo.get_model(challenge_id) is None:
                return None
            if self.challenge_repo.mark_expired(challenge_id, now):
                logger.info(f"Challenge {challenge_id} expired")
            return self.challenge_repo.get_by_id(challenge_id)

    def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """마감이 지난 모든 active 챌린지 일괄 만료 (배치용)"""
        now = self._now(now)
        with transactional(self.db, "expire_overdue_challenges"):
            count = self.challenge_repo.expire_overdue(now)
        if count:
            logger.info(f"Expired {count} overdue challenges")
        return count

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_active(self, squad_id: str, now: Optional[datetime] = None) -> List[ChallengeResponse]:
        now = self._now(now)
        with transactional(self.db, "get_active_challenges"):
            return self.challenge_repo.to_schemas(self.challenge_repo.list_active(squad_id, now))

    def find(self, challenge_id: str) -> Optional[ChallengeResponse]:
        with transactional(self.db, "find_challenge"):
            return self.challenge_repo.get_by_id(challenge_id)

    def get_challenge(
        self, challenge_id: str, viewer_id: Optional[str] = None
    ) -> Optional[ChallengeDetailResponse]:
        """챌린지 상세 - 투표 목록과 조회자의 투표 포함"""
        with transactional(self.db, "get_challenge"):
            challenge = self.challenge_repo.get_by_id(challenge_id)
            if challenge is None:
                return None
            votes = [
                ChallengeVoteResponse.model_validate(v)
                for v in self.challenge_repo.get_votes(challenge_id)
            ]

        my_vote = next((v.vote for v in votes if v.user_id == viewer_id), None)
        return ChallengeDetailResponse(
            **challenge.model_dump(), votes=votes, my_vote=my_vote
        )
