"""
챌린지 리포지토리

상태 전이(active -> passed/failed/expired)와 결과 반영 플래그(result_applied)는
모두 조건부 UPDATE 로 처리되어 동시 호출 중 하나만 성공합니다.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, desc
from sqlalchemy.orm import Session

from squadapi.models.challenges import (
    Challenge,
    ChallengeKind,
    ChallengeStatus,
    ChallengeVote,
    VoteChoice,
)
from squadapi.repositories.base import BaseRepository
from squadapi.schemas.challenges import ChallengeResponse


class ChallengeRepository(BaseRepository[Challenge, ChallengeResponse]):
    def __init__(self, db: Session):
        super().__init__(Challenge, ChallengeResponse, db)

    def find_active_duplicate(
        self,
        squad_id: str,
        kind: ChallengeKind,
        related_grant_id: Optional[str],
        related_event_id: Optional[str],
        now: datetime,
    ) -> Optional[Challenge]:
        query = self._query().filter(
            Challenge.squad_id == squad_id,
            Challenge.kind == kind,
            Challenge.status == ChallengeStatus.ACTIVE,
            Challenge.expires_at >= now,
        )
        if related_grant_id is None:
            query = query.filter(Challenge.related_grant_id.is_(None))
        else:
            query = query.filter(Challenge.related_grant_id == related_grant_id)
        if related_event_id is None:
            query = query.filter(Challenge.related_event_id.is_(None))
        else:
            query = query.filter(Challenge.related_event_id == related_event_id)
        return query.first()

    def list_active(self, squad_id: str, now: datetime) -> List[Challenge]:
        return (
            self._query()
            .filter(
                Challenge.squad_id == squad_id,
                Challenge.status == ChallengeStatus.ACTIVE,
                Challenge.expires_at >= now,
            )
            .order_by(desc(Challenge.started_at))
            .all()
        )

    # ------------------------------------------------------------------
    # 투표
    # ------------------------------------------------------------------

    def insert_vote(
        self, challenge_id: str, user_id: str, vote: VoteChoice, voted_at: datetime
    ) -> ChallengeVote:
        """투표 기록 - 같은 사용자의 두 번째 투표는 IntegrityError"""
        ballot = ChallengeVote(
            challenge_id=challenge_id, user_id=user_id, vote=vote, voted_at=voted_at
        )
        self.db.add(ballot)
        self.db.flush()
        return ballot

    def increment_vote(self, challenge_id: str, choice: VoteChoice, now: datetime) -> bool:
        """
        (challenge_id, 집계 컬럼) 원자적 증가

        UPDATE challenges SET votes_for = votes_for + 1
        WHERE id = :id AND status = 'active' AND expires_at >= :now
        """
        column = Challenge.votes_for if choice == VoteChoice.FOR else Challenge.votes_against
        updated = (
            self.db.query(Challenge)
            .filter(
                Challenge.id == challenge_id,
                Challenge.status == ChallengeStatus.ACTIVE,
                Challenge.expires_at >= now,
            )
            .update({column: column + 1}, synchronize_session=False)
        )
        return updated == 1

    def get_votes(self, challenge_id: str) -> List[ChallengeVote]:
        return (
            self.db.query(ChallengeVote)
            .filter(ChallengeVote.challenge_id == challenge_id)
            .order_by(ChallengeVote.voted_at)
            .all()
        )

    # ------------------------------------------------------------------
    # 상태 전이
    # ------------------------------------------------------------------

    def _transition(self, challenge_id: str, condition, status: ChallengeStatus, now: datetime) -> bool:
        updated = (
            self.db.query(Challenge)
            .filter(
                Challenge.id == challenge_id,
                Challenge.status == ChallengeStatus.ACTIVE,
                condition,
            )
            .update(
                {Challenge.status: status, Challenge.resolved_at: now},
                synchronize_session=False,
            )
        )
        return updated == 1

    def mark_passed(self, challenge_id: str, now: datetime) -> bool:
        return self._transition(
            challenge_id, Challenge.votes_for >= Challenge.votes_needed, ChallengeStatus.PASSED, now
        )

    def mark_failed(self, challenge_id: str, now: datetime) -> bool:
        return self._transition(
            challenge_id,
            Challenge.votes_against >= Challenge.votes_needed,
            ChallengeStatus.FAILED,
            now,
        )

    def mark_expired(self, challenge_id: str, now: datetime) -> bool:
        return self._transition(
            challenge_id, Challenge.expires_at < now, ChallengeStatus.EXPIRED, now
        )

    def expire_overdue(self, now: datetime) -> int:
        return (
            self.db.query(Challenge)
            .filter(
                and_(
                    Challenge.status == ChallengeStatus.ACTIVE,
                    Challenge.expires_at < now,
                )
            )
            .update(
                {Challenge.status: ChallengeStatus.EXPIRED, Challenge.resolved_at: now},
                synchronize_session=False,
            )
        )

    def claim_result(self, challenge_id: str) -> bool:
        """
        결과 반영 권한 획득 - 정확히 한 호출자만 True

        UPDATE challenges SET result_applied = true
        WHERE id = :id AND result_applied = false AND status IN ('passed', 'failed')
        """
        updated = (
            self.db.query(Challenge)
            .filter(
                Challenge.id == challenge_id,
                Challenge.result_applied.is_(False),
                Challenge.status.in_([ChallengeStatus.PASSED, ChallengeStatus.FAILED]),
            )
            .update({Challenge.result_applied: True}, synchronize_session=False)
        )
        return updated == 1
