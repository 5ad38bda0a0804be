from datetime import date
from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from squadapi.config import Settings, settings as default_settings
from squadapi.core.exceptions import ValidationError
from squadapi.database.session import transactional
from squadapi.repositories.judge_repository import JudgeRepository
from squadapi.schemas.common import DeclineReason, decline_message
from squadapi.schemas.judges import JudgeAdjustmentResult, JudgeAssignmentResponse
from squadapi.services.star_service import StarService
from squadapi.utils.timezone_utils import local_today

logger = logging.getLogger(__name__)

JUDGE_BONUS_SOURCE = "judge_bonus"
JUDGE_PENALTY_SOURCE = "judge_penalty"


class JudgeService:
    """일일 판사 배정과 판정 결과(보너스/패널티) 반영"""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        star_service: Optional[StarService] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.star_service = star_service or StarService(db, settings=self.settings)
        self.judge_repo = JudgeRepository(db)

    def _today(self, today: Optional[date]) -> date:
        return today or local_today(self.settings.TIMEZONE)

    def get_today(
        self, squad_id: str, today: Optional[date] = None
    ) -> Optional[JudgeAssignmentResponse]:
        """오늘의 판사 조회 - 없으면 None"""
        with transactional(self.db, "get_today_judge"):
            return self.judge_repo.to_schema(
                self.judge_repo.get_for_day(squad_id, self._today(today))
            )

    def assign(
        self,
        squad_id: str,
        user_id: str,
        judge_date: Optional[date] = None,
        event_id: Optional[str] = None,
    ) -> JudgeAssignmentResponse:
        """
        판사 배정 - (스쿼드, 날짜)당 1명

        이미 배정된 경우 기존 배정을 그대로 반환합니다. 판사 선정 자체는
        외부 스케줄러가 담당합니다.
        """
        judge_date = self._today(judge_date)

        with transactional(self.db, "assign_judge"):
            existing = self.judge_repo.get_for_day(squad_id, judge_date)
            if existing is not None:
                return self.judge_repo.to_schema(existing)
            try:
                assignment = self.judge_repo.create(
                    squad_id=squad_id,
                    user_id=user_id,
                    judge_date=judge_date,
                    event_id=event_id,
                )
            except IntegrityError:
                # 동시 배정 - 먼저 생성된 배정을 반환
                self.db.rollback()
                return self.judge_repo.to_schema(
                    self.judge_repo.get_for_day(squad_id, judge_date)
                )
            response = self.judge_repo.to_schema(assignment)

        logger.info(f"Assigned judge {user_id} to squad {squad_id} for {judge_date}")
        return response

    def find_for_ruling(
        self, squad_id: str, judge_id: str, event_id: Optional[str] = None
    ) -> Optional[JudgeAssignmentResponse]:
        with transactional(self.db, "find_judge_for_ruling"):
            return self.judge_repo.to_schema(
                self.judge_repo.find_for_ruling(squad_id, judge_id, event_id)
            )

    def _declined(self, reason: DeclineReason, assignment_id: str) -> JudgeAdjustmentResult:
        logger.warning(f"Judge adjustment declined for {assignment_id}: {reason.value}")
        return JudgeAdjustmentResult(
            success=False,
            decline_reason=reason,
            message=decline_message(reason),
            assignment=self.judge_repo.get_by_id(assignment_id),
        )

    def apply_bonus(
        self, assignment_id: str, amount: Optional[int] = None, commit: bool = True
    ) -> JudgeAdjustmentResult:
        """판정 유지 보너스 - 한 번만, 번복되지 않은 판정에만 지급"""
        if amount is None:
            amount = self.settings.JUDGE_BONUS_STARS
        if amount <= 0:
            raise ValidationError("Bonus amount must be positive")

        with transactional(self.db, "apply_judge_bonus", commit=commit):
            assignment = self.judge_repo.get_model(assignment_id)
            if assignment is None:
                return self._declined(DeclineReason.ASSIGNMENT_NOT_FOUND, assignment_id)

            if not self.judge_repo.mark_bonus(assignment_id, amount):
                return self._declined(DeclineReason.ADJUSTMENT_ALREADY_APPLIED, assignment_id)

            self.star_service.award_bonus(
                assignment.user_id,
                assignment.squad_id,
                amount,
                JUDGE_BONUS_SOURCE,
                reference_id=assignment_id,
                commit=False,
            )
            result = JudgeAdjustmentResult(
                success=True,
                message="Judge bonus applied",
                amount=amount,
                assignment=self.judge_repo.get_by_id(assignment_id),
            )

        logger.info(f"Judge bonus {amount} applied to {assignment_id}")
        return result

    def apply_penalty(
        self, assignment_id: str, amount: Optional[int] = None, commit: bool = True
    ) -> JudgeAdjustmentResult:
        """판정 번복 패널티 - 한 번만, 잔액 한도 내에서 차감"""
        if amount is None:
            amount = self.settings.JUDGE_PENALTY_STARS
        if amount <= 0:
            raise ValidationError("Penalty amount must be positive")

        with transactional(self.db, "apply_judge_penalty", commit=commit):
            assignment = self.judge_repo.get_model(assignment_id)
            if assignment is None:
                return self._declined(DeclineReason.ASSIGNMENT_NOT_FOUND, assignment_id)

            if not self.judge_repo.mark_overturned(assignment_id, amount):
                return self._declined(DeclineReason.ADJUSTMENT_ALREADY_APPLIED, assignment_id)

            deduction = self.star_service.deduct_clamped(
                assignment.user_id,
                assignment.squad_id,
                amount,
                JUDGE_PENALTY_SOURCE,
                reference_id=assignment_id,
                commit=False,
            )
            if deduction.deducted != amount:
                self.judge_repo.set_penalty_amount(assignment_id, deduction.deducted)

            result = JudgeAdjustmentResult(
                success=True,
                message="Judge penalty applied",
                amount=deduction.deducted,
                assignment=self.judge_repo.get_by_id(assignment_id),
            )

        logger.info(
            f"Judge penalty applied to {assignment_id}: requested={amount}, deducted={deduction.deducted}"
        )
        return result
