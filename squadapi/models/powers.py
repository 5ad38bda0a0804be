"""
파워(Power) 데이터 모델

- power_grants: 플레이어에게 지급된 1회용, 기간 한정 규칙 변경권
- active_targets: target_lock 사용으로 생성되는 "조준" 관계
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from squadapi.models.base import BaseModel, JSONType, new_uuid


class PowerType(str, enum.Enum):
    DOUBLE_CHANCE = "double_chance"  # 다음 이벤트 승리 확률 2배
    TARGET_LOCK = "target_lock"  # 다른 플레이어 1명 조준
    CHAOS_CARD = "chaos_card"  # 이번 이벤트에 무작위 규칙 적용
    STREAK_SHIELD = "streak_shield"  # 연속 참여 기록 1회 보호


class PowerGrant(BaseModel):
    """
    지급된 파워

    상태 전이:
    - consumed_at: 소유자가 사용한 시각 (한번 기록되면 되돌리지 않음)
    - cancelled_at: 관리자/챌린지에 의해 취소된 시각 (사용과 구분되는 감사 기록)
    - 만료 후에도 감사 목적으로 삭제하지 않음
    """

    __tablename__ = "power_grants"
    __table_args__ = (
        Index("idx_power_grants_owner_squad_expires", "owner_id", "squad_id", "expires_at"),
        Index("idx_power_grants_squad_type_expires", "squad_id", "power_type", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    power_type: Mapped[PowerType] = mapped_column(
        Enum(PowerType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)

    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # target_lock: target_user_id / chaos_card: rule / 지급 사유 등
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)


class ActiveTarget(BaseModel):
    """
    target_lock 조준 관계

    slot_key 는 살아있는 동안 "<squad_id>:<targeter_id>" 값을 가지며 유니크 제약으로
    조준자당 1개의 활성 조준만 허용합니다. 만료/취소 시 NULL 로 비워집니다.
    """

    __tablename__ = "active_targets"
    __table_args__ = (
        CheckConstraint("targeter_id <> target_id", name="ck_active_target_no_self"),
        Index("idx_active_targets_target", "target_id", "squad_id", "expires_at"),
        Index("idx_active_targets_targeter", "targeter_id", "squad_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    targeter_id: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[str] = mapped_column(Text, nullable=False)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)
    grant_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    slot_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
