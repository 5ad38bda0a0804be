"""
스타 리포지토리 - 잔액/원장 데이터 접근

핵심 특징:
- 잔액 변경은 모두 조건부 UPDATE (balance = balance + :amount) 로 수행하며
  Python 에서 읽고-계산하고-쓰는 방식은 사용하지 않습니다
- 차감은 WHERE balance >= :amount 조건으로 음수 잔액을 원천 차단합니다
- 원장(star_transactions)은 잔액 변경과 같은 트랜잭션에서 기록됩니다
- commit 은 서비스 계층의 트랜잭션 경계가 담당합니다 (여기서는 flush 까지만)
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from squadapi.models.stars import (
    DailyLoginClaim,
    StarBalance,
    StarTransaction,
    StarTransactionKind,
)
from squadapi.repositories.base import BaseRepository
from squadapi.schemas.stars import StarBalanceResponse, StarTransactionEntry


class StarsRepository(BaseRepository[StarTransaction, StarTransactionEntry]):
    def __init__(self, db: Session):
        super().__init__(StarTransaction, StarTransactionEntry, db)

    def _balance_filter(self, player_id: str, squad_id: str):
        return self.db.query(StarBalance).filter(
            StarBalance.player_id == player_id,
            StarBalance.squad_id == squad_id,
        )

    def get_balance(self, player_id: str, squad_id: str) -> StarBalanceResponse:
        """현재 잔액 조회 - 행이 없으면 0"""
        row = (
            self.db.query(StarBalance.balance, StarBalance.lifetime_earned)
            .filter(
                StarBalance.player_id == player_id,
                StarBalance.squad_id == squad_id,
            )
            .first()
        )
        if row is None:
            return StarBalanceResponse(player_id=player_id, squad_id=squad_id)
        return StarBalanceResponse(
            player_id=player_id,
            squad_id=squad_id,
            balance=row.balance,
            lifetime_earned=row.lifetime_earned,
        )

    def _current_balance(self, player_id: str, squad_id: str) -> int:
        value = (
            self.db.query(StarBalance.balance)
            .filter(
                StarBalance.player_id == player_id,
                StarBalance.squad_id == squad_id,
            )
            .scalar()
        )
        return value or 0

    def _increment(self, player_id: str, squad_id: str, amount: int) -> int:
        """조건부 증가 - 갱신된 행 수 반환"""
        return self._balance_filter(player_id, squad_id).update(
            {
                StarBalance.balance: StarBalance.balance + amount,
                StarBalance.lifetime_earned: StarBalance.lifetime_earned + amount,
            },
            synchronize_session=False,
        )

    def _append(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        kind: StarTransactionKind,
        source: str,
        reference_id: Optional[str],
        details: Optional[Dict[str, Any]],
    ) -> StarTransaction:
        balance_after = self._current_balance(player_id, squad_id)
        return self.create(
            player_id=player_id,
            squad_id=squad_id,
            amount=amount,
            balance_after=balance_after,
            kind=kind,
            source=source,
            reference_id=reference_id,
            details=details,
        )

    def award_stars(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        kind: StarTransactionKind = StarTransactionKind.EARN,
        reference_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> StarTransaction:
        """
        스타 적립 (earn/bonus/refund)

        1. 조건부 증가 UPDATE
        2. 행이 없으면 잔액 행 생성 (동시 생성 경합 시 증가로 재시도)
        3. 증가 후 잔액으로 원장 기록
        """
        if self._increment(player_id, squad_id, amount) == 0:
            try:
                with self.db.begin_nested():
                    self.db.add(
                        StarBalance(
                            player_id=player_id,
                            squad_id=squad_id,
                            balance=amount,
                            lifetime_earned=amount,
                        )
                    )
            except IntegrityError:
                # 다른 트랜잭션이 먼저 행을 만들었음
                self._increment(player_id, squad_id, amount)

        return self._append(player_id, squad_id, amount, kind, source, reference_id, details)

    def spend_stars(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[StarTransaction]:
        """
        스타 차감 - 잔액 부족이면 None (잔액과 원장 모두 변경 없음)
        """
        updated = (
            self._balance_filter(player_id, squad_id)
            .filter(StarBalance.balance >= amount)
            .update(
                {StarBalance.balance: StarBalance.balance - amount},
                synchronize_session=False,
            )
        )
        if updated == 0:
            return None

        return self._append(
            player_id,
            squad_id,
            -amount,
            StarTransactionKind.SPEND,
            source,
            reference_id,
            details,
        )

    def deduct_clamped(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Optional[StarTransaction]]:
        """
        잔액 한도 내 차감 - min(amount, balance) 만큼만 차감

        Returns:
            (실제 차감량, 원장 항목 또는 None)
        """
        balance = (
            self.db.query(StarBalance.balance)
            .filter(
                StarBalance.player_id == player_id,
                StarBalance.squad_id == squad_id,
            )
            .with_for_update()
            .scalar()
        )
        if not balance or balance <= 0:
            return 0, None

        deducted = min(amount, balance)
        transaction = self.spend_stars(
            player_id, squad_id, deducted, source, reference_id, details
        )
        if transaction is None:
            return 0, None
        return deducted, transaction

    def get_transactions(
        self, player_id: str, squad_id: str, limit: int = 50, offset: int = 0
    ) -> Tuple[List[StarTransactionEntry], int]:
        """원장 조회 (최신순) - (항목, 전체 수)"""
        query = self.db.query(StarTransaction).filter(
            StarTransaction.player_id == player_id,
            StarTransaction.squad_id == squad_id,
        )
        total = query.count()
        rows = query.order_by(desc(StarTransaction.id)).offset(offset).limit(limit).all()
        return self.to_schemas(rows), total

    def get_chain(self, player_id: str, squad_id: str) -> List[StarTransaction]:
        """정합성 검증용 전체 원장 (오래된 순)"""
        return (
            self.db.query(StarTransaction)
            .filter(
                StarTransaction.player_id == player_id,
                StarTransaction.squad_id == squad_id,
            )
            .order_by(StarTransaction.id)
            .all()
        )

    # ------------------------------------------------------------------
    # 일일 로그인 보상
    # ------------------------------------------------------------------

    def get_claim(
        self, player_id: str, squad_id: str, claim_date: date
    ) -> Optional[DailyLoginClaim]:
        return (
            self.db.query(DailyLoginClaim)
            .filter(
                DailyLoginClaim.player_id == player_id,
                DailyLoginClaim.squad_id == squad_id,
                DailyLoginClaim.claim_date == claim_date,
            )
            .first()
        )

    def get_last_claim_before(
        self, player_id: str, squad_id: str, claim_date: date
    ) -> Optional[DailyLoginClaim]:
        return (
            self.db.query(DailyLoginClaim)
            .filter(
                DailyLoginClaim.player_id == player_id,
                DailyLoginClaim.squad_id == squad_id,
                DailyLoginClaim.claim_date < claim_date,
            )
            .order_by(desc(DailyLoginClaim.claim_date))
            .first()
        )

    def insert_claim(
        self,
        player_id: str,
        squad_id: str,
        claim_date: date,
        consecutive_days: int,
        amount: int,
    ) -> DailyLoginClaim:
        """수령 기록 생성 - 같은 날 중복이면 IntegrityError"""
        claim = DailyLoginClaim(
            player_id=player_id,
            squad_id=squad_id,
            claim_date=claim_date,
            consecutive_days=consecutive_days,
            amount=amount,
        )
        self.db.add(claim)
        self.db.flush()
        return claim
