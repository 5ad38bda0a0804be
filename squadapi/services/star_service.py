from datetime import date, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from squadapi.config import Settings, settings as default_settings
from squadapi.core.exceptions import ValidationError
from squadapi.database.session import transactional
from squadapi.models.stars import StarTransactionKind
from squadapi.repositories.stars_repository import StarsRepository
from squadapi.schemas.common import DeclineReason, decline_message
from squadapi.schemas.stars import (
    DailyLoginResult,
    StarBalanceResponse,
    StarDeductResult,
    StarEarnResult,
    StarIntegrityCheckResponse,
    StarLedgerResponse,
    StarSpendResult,
)
from squadapi.utils.timezone_utils import local_today, utc_now

logger = logging.getLogger(__name__)

DAILY_LOGIN_SOURCE = "daily_login"


def reward_for_day(consecutive_days: int, schedule: List[int]) -> int:
    """연속 출석 일수에 따른 보상 - 7일 주기로 반복 (8일째는 1일째 보상)"""
    if consecutive_days < 1:
        raise ValueError("consecutive_days must be >= 1")
    return schedule[(consecutive_days - 1) % len(schedule)]


class StarService:
    """스타(스쿼드 화폐) 관련 비즈니스 로직을 담당하는 서비스"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings
        self.stars_repo = StarsRepository(db)

    @staticmethod
    def _validate(amount: int, source: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "Amount must be a positive integer", details={"amount": amount}
            )
        if not source or not source.strip():
            raise ValidationError("Source is required")

    def get_balance(self, player_id: str, squad_id: str) -> StarBalanceResponse:
        """현재 잔액 조회 - 거래가 없으면 0"""
        with transactional(self.db, "get_balance"):
            return self.stars_repo.get_balance(player_id, squad_id)

    def get_transactions(
        self, player_id: str, squad_id: str, limit: int = 50, offset: int = 0
    ) -> StarLedgerResponse:
        """스타 거래 내역 조회 (최신순)

        Args:
            player_id: 플레이어 ID
            squad_id: 스쿼드 ID
            limit: 페이지 크기 (최대 LEDGER_PAGE_MAX)
            offset: 오프셋
        """
        limit = max(1, min(limit, self.settings.LEDGER_PAGE_MAX))
        offset = max(0, offset)

        with transactional(self.db, "get_transactions"):
            entries, total = self.stars_repo.get_transactions(
                player_id, squad_id, limit=limit, offset=offset
            )
            balance = self.stars_repo.get_balance(player_id, squad_id).balance

        return StarLedgerResponse(
            balance=balance,
            entries=entries,
            total_count=total,
            has_next=offset + len(entries) < total,
        )

    def _award(
        self,
        kind: StarTransactionKind,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str],
        metadata: Optional[Dict[str, Any]],
        commit: bool,
    ) -> StarEarnResult:
        self._validate(amount, source)

        with transactional(self.db, f"stars_{kind.value}", commit=commit):
            transaction = self.stars_repo.award_stars(
                player_id,
                squad_id,
                amount,
                source,
                kind=kind,
                reference_id=reference_id,
                details=metadata,
            )
            result = StarEarnResult(
                new_balance=transaction.balance_after, transaction_id=transaction.id
            )

        logger.info(
            f"{kind.value} {amount} stars for {player_id} in squad {squad_id} "
            f"({source}), balance={result.new_balance}"
        )
        return result

    def earn(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> StarEarnResult:
        """스타 적립 - 잔액 증가와 원장 기록을 하나의 트랜잭션으로 처리"""
        return self._award(
            StarTransactionKind.EARN,
            player_id,
            squad_id,
            amount,
            source,
            reference_id,
            metadata,
            commit,
        )

    def award_bonus(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> StarEarnResult:
        return self._award(
            StarTransactionKind.BONUS,
            player_id,
            squad_id,
            amount,
            source,
            reference_id,
            metadata,
            commit,
        )

    def refund(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> StarEarnResult:
        """취소된 구매 등의 환불"""
        return self._award(
            StarTransactionKind.REFUND,
            player_id,
            squad_id,
            amount,
            source,
            reference_id,
            metadata,
            commit,
        )

    def spend(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> StarSpendResult:
        """스타 사용

        잔액 부족은 예외가 아니라 success=False, decline_reason=INSUFFICIENT_BALANCE 로
        반환하며 잔액과 원장은 변경되지 않습니다.
        """
        self._validate(amount, source)

        with transactional(self.db, "stars_spend", commit=commit):
            transaction = self.stars_repo.spend_stars(
                player_id,
                squad_id,
                amount,
                source,
                reference_id=reference_id,
                details=metadata,
            )
            if transaction is None:
                balance = self.stars_repo.get_balance(player_id, squad_id).balance
                logger.warning(
                    f"Spend declined for {player_id} in squad {squad_id}: "
                    f"requested={amount}, balance={balance}"
                )
                return StarSpendResult(
                    success=False,
                    new_balance=balance,
                    decline_reason=DeclineReason.INSUFFICIENT_BALANCE,
                    message=decline_message(DeclineReason.INSUFFICIENT_BALANCE),
                )

            result = StarSpendResult(
                success=True,
                new_balance=transaction.balance_after,
                transaction_id=transaction.id,
                message="Stars spent",
            )

        logger.info(
            f"Spent {amount} stars for {player_id} in squad {squad_id} ({source})"
        )
        return result

    def deduct_clamped(
        self,
        player_id: str,
        squad_id: str,
        amount: int,
        source: str,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> StarDeductResult:
        """잔액 한도 내 차감 - 잔액은 0 아래로 내려가지 않음 (판사 패널티)"""
        self._validate(amount, source)

        with transactional(self.db, "stars_deduct_clamped", commit=commit):
            deducted, transaction = self.stars_repo.deduct_clamped(
                player_id,
                squad_id,
                amount,
                source,
                reference_id=reference_id,
                details=metadata,
            )
            new_balance = (
                transaction.balance_after
                if transaction is not None
                else self.stars_repo.get_balance(player_id, squad_id).balance
            )

        if deducted < amount:
            logger.info(
                f"Clamped deduction for {player_id} in squad {squad_id}: "
                f"requested={amount}, deducted={deducted}"
            )
        return StarDeductResult(
            requested=amount,
            deducted=deducted,
            new_balance=new_balance,
            transaction_id=transaction.id if transaction is not None else None,
        )

    def daily_login_reward(
        self, player_id: str, squad_id: str, today: Optional[date] = None
    ) -> DailyLoginResult:
        """일일 로그인 보상 수령

        보상표 {10, 15, 20, 25, 35, 40, 50} 을 연속 출석 일수 기준 7일 주기로 지급합니다.
        어제 수령 기록이 있으면 연속 일수 +1, 아니면 1부터 다시 시작합니다.
        같은 날 두 번째 요청(동시 요청 포함)은 already_claimed=True 로 반환됩니다.
        """
        if today is None:
            today = local_today(self.settings.TIMEZONE)

        with transactional(self.db, "daily_login_reward"):
            if self.stars_repo.get_claim(player_id, squad_id, today) is not None:
                return DailyLoginResult(already_claimed=True, claim_date=today)

            previous = self.stars_repo.get_last_claim_before(player_id, squad_id, today)
            if previous is not None and previous.claim_date == today - timedelta(days=1):
                consecutive_days = previous.consecutive_days + 1
            else:
                consecutive_days = 1

            amount = reward_for_day(consecutive_days, self.settings.DAILY_LOGIN_REWARDS)

            try:
                claim = self.stars_repo.insert_claim(
                    player_id, squad_id, today, consecutive_days, amount
                )
            except IntegrityError:
                # 동시 요청이 먼저 수령함
                self.db.rollback()
                return DailyLoginResult(already_claimed=True, claim_date=today)

            transaction = self.stars_repo.award_stars(
                player_id,
                squad_id,
                amount,
                DAILY_LOGIN_SOURCE,
                reference_id=f"{DAILY_LOGIN_SOURCE}:{today.isoformat()}",
                details={"consecutive_days": consecutive_days},
            )
            claim.transaction_id = transaction.id

        logger.info(
            f"Daily login reward for {player_id} in squad {squad_id}: "
            f"day {consecutive_days}, +{amount}"
        )
        return DailyLoginResult(
            already_claimed=False,
            amount=amount,
            consecutive_days=consecutive_days,
            new_balance=transaction.balance_after,
            claim_date=today,
        )

    def verify_integrity(self, player_id: str, squad_id: str) -> StarIntegrityCheckResponse:
        """원장 합계와 기록된 잔액, balance_after 체인을 검증"""
        with transactional(self.db, "verify_integrity"):
            chain = self.stars_repo.get_chain(player_id, squad_id)
            recorded = self.stars_repo.get_balance(player_id, squad_id).balance

        running = 0
        broken_entry_id = None
        for entry in chain:
            running += entry.amount
            if broken_entry_id is None and entry.balance_after != running:
                broken_entry_id = entry.id

        status = "OK" if running == recorded and broken_entry_id is None else "MISMATCH"
        if status != "OK":
            logger.warning(
                f"Star ledger mismatch for {player_id} in squad {squad_id}: "
                f"calculated={running}, recorded={recorded}, broken_entry={broken_entry_id}"
            )

        return StarIntegrityCheckResponse(
            status=status,
            player_id=player_id,
            squad_id=squad_id,
            calculated_balance=running,
            recorded_balance=recorded,
            entry_count=len(chain),
            broken_entry_id=broken_entry_id,
            verified_at=utc_now(),
        )
