import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.schema import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from squadapi.models.base import BaseModel, JSONType, new_uuid


class ChallengeKind(str, enum.Enum):
    JUDGE_DECISION = "judge_decision"
    POWER_ACTIVATION = "power_activation"


class ChallengeStatus(str, enum.Enum):
    ACTIVE = "active"
    PASSED = "passed"
    FAILED = "failed"
    EXPIRED = "expired"


class VoteChoice(str, enum.Enum):
    FOR = "for"
    AGAINST = "against"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Challenge(BaseModel):
    """
    판정/파워 사용에 대한 이의 제기 투표

    status 는 active 에서 passed/failed/expired 중 하나로 정확히 한 번만 전이합니다.
    result_applied 는 결과 반영(파워 취소, 판사 보너스/패널티)이 한 번만 실행되도록 보호합니다.
    """

    __tablename__ = "challenges"
    __table_args__ = (
        Index("idx_challenges_squad_status", "squad_id", "status"),
        Index("idx_challenges_active_expiry", "status", "expires_at"),
        Index("idx_challenges_grant", "related_grant_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)
    challenger_id: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[ChallengeKind] = mapped_column(
        Enum(ChallengeKind, values_callable=_values), nullable=False
    )
    related_grant_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    related_event_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    votes_for: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    votes_against: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    votes_needed: Mapped[int] = mapped_column(Integer, nullable=False)
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[ChallengeStatus] = mapped_column(
        Enum(ChallengeStatus, values_callable=_values),
        nullable=False,
        default=ChallengeStatus.ACTIVE,
    )
    result_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    details: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)


class ChallengeVote(BaseModel):
    """챌린지 투표 - 챌린지당 사용자 1표"""

    __tablename__ = "challenge_votes"
    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_vote_per_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    challenge_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    vote: Mapped[VoteChoice] = mapped_column(
        Enum(VoteChoice, values_callable=_values), nullable=False
    )
    voted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
