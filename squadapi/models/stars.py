"""
스타(Star) 화폐 데이터 모델

스쿼드별 플레이어 잔액(star_balances)과 모든 거래를 기록하는 원장(star_transactions),
일일 로그인 보상 수령 기록(daily_login_claims)을 정의합니다.
잔액 변경은 반드시 원장 기록과 같은 트랜잭션에서 이루어집니다.
"""

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.schema import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from squadapi.models.base import BaseModel, JSONType, new_uuid


class StarTransactionKind(str, enum.Enum):
    EARN = "earn"
    SPEND = "spend"
    BONUS = "bonus"
    REFUND = "refund"


class StarBalance(BaseModel):
    """
    (플레이어, 스쿼드) 단위 현재 잔액

    - 첫 거래 시 지연 생성되며 삭제되지 않음
    - balance >= 0 은 DB 체크 제약으로도 보장
    - lifetime_earned 는 적립(earn/bonus/refund)에만 증가
    """

    __tablename__ = "star_balances"
    __table_args__ = (
        UniqueConstraint("player_id", "squad_id", name="uq_star_balance_player_squad"),
        CheckConstraint("balance >= 0", name="ck_star_balance_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    player_id: Mapped[str] = mapped_column(Text, nullable=False)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class StarTransaction(BaseModel):
    """
    스타 원장 - 불변(Immutable) 거래 기록

    1. 한번 생성된 레코드는 수정되지 않음
    2. balance_after = 직전 잔액 + amount
    3. 잔액 변경과 같은 트랜잭션에서 기록됨
    """

    __tablename__ = "star_transactions"
    __table_args__ = (
        Index("idx_star_transactions_player", "player_id", "squad_id", "created_at"),
        Index("idx_star_transactions_source", "source", "created_at"),
    )

    # 원장 순서 = id 순서 (자동 증가)
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    player_id: Mapped[str] = mapped_column(Text, nullable=False)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)

    # 양수면 적립, 음수면 차감
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[StarTransactionKind] = mapped_column(
        Enum(StarTransactionKind, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    # 거래 출처 (예: "daily_login", "event_first_place", "shop_purchase")
    source: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)


class DailyLoginClaim(BaseModel):
    """일일 로그인 보상 수령 기록 - (플레이어, 스쿼드, 날짜)당 1건"""

    __tablename__ = "daily_login_claims"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "squad_id", "claim_date", name="uq_daily_login_claim"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    player_id: Mapped[str] = mapped_column(Text, nullable=False)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    consecutive_days: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
