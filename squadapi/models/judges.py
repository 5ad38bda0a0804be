from datetime import date
from typing import Optional

from sqlalchemy import Boolean, Date, Integer, String, Text
from sqlalchemy.schema import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from squadapi.models.base import BaseModel, new_uuid


class JudgeAssignment(BaseModel):
    """스쿼드의 일일 판사 - 스쿼드/날짜당 1명"""

    __tablename__ = "squad_judges"
    __table_args__ = (
        UniqueConstraint("squad_id", "judge_date", name="uq_squad_judge_per_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    squad_id: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    judge_date: Mapped[date] = mapped_column(Date, nullable=False)
    event_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # 판정이 유지되면 보너스, 뒤집히면 패널티
    bonus_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    penalty_applied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_overturned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
