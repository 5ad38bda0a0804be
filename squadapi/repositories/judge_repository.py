from datetime import date
from typing import Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from squadapi.models.judges import JudgeAssignment
from squadapi.repositories.base import BaseRepository
from squadapi.schemas.judges import JudgeAssignmentResponse


class JudgeRepository(BaseRepository[JudgeAssignment, JudgeAssignmentResponse]):
    """일일 판사 배정 리포지토리 - 보너스/패널티는 조건부 UPDATE 로 한 번만 기록"""

    def __init__(self, db: Session):
        super().__init__(JudgeAssignment, JudgeAssignmentResponse, db)

    def get_for_day(self, squad_id: str, judge_date: date) -> Optional[JudgeAssignment]:
        return (
            self._query()
            .filter(
                JudgeAssignment.squad_id == squad_id,
                JudgeAssignment.judge_date == judge_date,
            )
            .first()
        )

    def find_for_ruling(
        self, squad_id: str, judge_id: str, event_id: Optional[str] = None
    ) -> Optional[JudgeAssignment]:
        """판정을 내린 판사의 배정 (이벤트가 주어지면 해당 이벤트, 아니면 가장 최근)"""
        query = self._query().filter(
            JudgeAssignment.squad_id == squad_id,
            JudgeAssignment.user_id == judge_id,
        )
        if event_id is not None:
            query = query.filter(JudgeAssignment.event_id == event_id)
        return query.order_by(desc(JudgeAssignment.judge_date)).first()

    def mark_bonus(self, assignment_id: str, amount: int) -> bool:
        """보너스 기록 - 아직 보너스가 없고 판정이 유지된 경우에만"""
        updated = (
            self.db.query(JudgeAssignment)
            .filter(
                JudgeAssignment.id == assignment_id,
                JudgeAssignment.bonus_earned == 0,
                JudgeAssignment.is_overturned.is_(False),
            )
            .update({JudgeAssignment.bonus_earned: amount}, synchronize_session=False)
        )
        return updated == 1

    def mark_overturned(self, assignment_id: str, amount: int) -> bool:
        """판정 번복 기록 - 아직 번복되지 않은 경우에만"""
        updated = (
            self.db.query(JudgeAssignment)
            .filter(
                JudgeAssignment.id == assignment_id,
                JudgeAssignment.is_overturned.is_(False),
            )
            .update(
                {
                    JudgeAssignment.is_overturned: True,
                    JudgeAssignment.penalty_applied: amount,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def set_penalty_amount(self, assignment_id: str, amount: int) -> None:
        self.db.query(JudgeAssignment).filter(JudgeAssignment.id == assignment_id).update(
            {JudgeAssignment.penalty_applied: amount}, synchronize_session=False
        )
