"""
파워 리포지토리 - power_grants / active_targets 데이터 접근

사용(consume)과 취소(cancel)는 조건부 UPDATE 한 번으로 처리되어
동시 요청 중 정확히 하나만 성공합니다.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, asc, desc, or_
from sqlalchemy.orm import Session

from squadapi.models.powers import ActiveTarget, PowerGrant, PowerType
from squadapi.repositories.base import BaseRepository
from squadapi.schemas.powers import ActiveTargetResponse, PowerGrantResponse


def target_slot_key(squad_id: str, targeter_id: str) -> str:
    return f"{squad_id}:{targeter_id}"


class PowersRepository(BaseRepository[PowerGrant, PowerGrantResponse]):
    def __init__(self, db: Session):
        super().__init__(PowerGrant, PowerGrantResponse, db)

    def _usable(self, now: datetime):
        return and_(
            PowerGrant.consumed_at.is_(None),
            PowerGrant.cancelled_at.is_(None),
            PowerGrant.expires_at > now,
        )

    def create_grant(
        self,
        owner_id: str,
        squad_id: str,
        power_type: PowerType,
        granted_at: datetime,
        expires_at: datetime,
        details: Optional[Dict[str, Any]] = None,
    ) -> PowerGrant:
        return self.create(
            owner_id=owner_id,
            squad_id=squad_id,
            power_type=power_type,
            granted_at=granted_at,
            expires_at=expires_at,
            details=details,
        )

    def list_usable(
        self,
        owner_id: str,
        squad_id: str,
        now: datetime,
        power_type: Optional[PowerType] = None,
    ) -> List[PowerGrant]:
        """소유자의 사용 가능한 파워 (만료 임박 순)"""
        query = self._query().filter(
            PowerGrant.owner_id == owner_id,
            PowerGrant.squad_id == squad_id,
            self._usable(now),
        )
        if power_type is not None:
            query = query.filter(PowerGrant.power_type == power_type)
        return query.order_by(asc(PowerGrant.expires_at), asc(PowerGrant.granted_at)).all()

    def has_usable(
        self, owner_id: str, squad_id: str, power_type: PowerType, now: datetime
    ) -> bool:
        return (
            self.db.query(PowerGrant.id)
            .filter(
                PowerGrant.owner_id == owner_id,
                PowerGrant.squad_id == squad_id,
                PowerGrant.power_type == power_type,
                self._usable(now),
            )
            .first()
            is not None
        )

    def mark_consumed(
        self,
        grant_id: str,
        owner_id: str,
        now: datetime,
        details: Optional[Dict[str, Any]],
    ) -> bool:
        """
        조건부 사용 처리

        UPDATE power_grants SET consumed_at = :now
        WHERE id = :id AND owner_id = :owner
          AND consumed_at IS NULL AND cancelled_at IS NULL AND expires_at > :now
        """
        updated = (
            self.db.query(PowerGrant)
            .filter(
                PowerGrant.id == grant_id,
                PowerGrant.owner_id == owner_id,
                self._usable(now),
            )
            .update(
                {PowerGrant.consumed_at: now, PowerGrant.details: details},
                synchronize_session=False,
            )
        )
        return updated == 1

    def mark_cancelled(
        self, grant_id: str, cancelled_by: str, reason: str, now: datetime
    ) -> bool:
        """취소 처리 - 이미 취소된 경우 0건 (반복 호출 no-op)"""
        updated = (
            self.db.query(PowerGrant)
            .filter(PowerGrant.id == grant_id, PowerGrant.cancelled_at.is_(None))
            .update(
                {
                    PowerGrant.cancelled_at: now,
                    PowerGrant.cancelled_by: cancelled_by,
                    PowerGrant.cancel_reason: reason,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def get_history(self, squad_id: str, limit: int = 50) -> List[PowerGrant]:
        return (
            self._query()
            .filter(PowerGrant.squad_id == squad_id)
            .order_by(desc(PowerGrant.granted_at))
            .limit(limit)
            .all()
        )


class ActiveTargetRepository(BaseRepository[ActiveTarget, ActiveTargetResponse]):
    def __init__(self, db: Session):
        super().__init__(ActiveTarget, ActiveTargetResponse, db)

    def _live(self, now: datetime):
        return and_(ActiveTarget.revoked_at.is_(None), ActiveTarget.expires_at > now)

    def get_live_for_targeter(
        self, targeter_id: str, squad_id: str, now: datetime
    ) -> Optional[ActiveTarget]:
        return (
            self._query()
            .filter(
                ActiveTarget.targeter_id == targeter_id,
                ActiveTarget.squad_id == squad_id,
                self._live(now),
            )
            .first()
        )

    def release_stale_slot(self, targeter_id: str, squad_id: str, now: datetime) -> int:
        """만료/해제된 조준의 슬롯을 비워 새 조준이 가능하도록 함"""
        return (
            self.db.query(ActiveTarget)
            .filter(
                ActiveTarget.slot_key == target_slot_key(squad_id, targeter_id),
                or_(ActiveTarget.expires_at <= now, ActiveTarget.revoked_at.isnot(None)),
            )
            .update({ActiveTarget.slot_key: None}, synchronize_session=False)
        )

    def insert_target(
        self,
        targeter_id: str,
        target_id: str,
        squad_id: str,
        grant_id: str,
        expires_at: datetime,
    ) -> ActiveTarget:
        """조준 생성 - 살아있는 슬롯이 있으면 IntegrityError"""
        return self.create(
            targeter_id=targeter_id,
            target_id=target_id,
            squad_id=squad_id,
            grant_id=grant_id,
            expires_at=expires_at,
            slot_key=target_slot_key(squad_id, targeter_id),
        )

    def revoke_for_grant(self, grant_id: str, now: datetime) -> int:
        return (
            self.db.query(ActiveTarget)
            .filter(ActiveTarget.grant_id == grant_id, ActiveTarget.revoked_at.is_(None))
            .update(
                {ActiveTarget.revoked_at: now, ActiveTarget.slot_key: None},
                synchronize_session=False,
            )
        )

    def is_targeted(self, player_id: str, squad_id: str, now: datetime) -> bool:
        return (
            self.db.query(ActiveTarget.id)
            .filter(
                ActiveTarget.target_id == player_id,
                ActiveTarget.squad_id == squad_id,
                self._live(now),
            )
            .first()
            is not None
        )

    def list_live(self, squad_id: str, now: datetime) -> List[ActiveTarget]:
        return (
            self._query()
            .filter(ActiveTarget.squad_id == squad_id, self._live(now))
            .order_by(asc(ActiveTarget.expires_at))
            .all()
        )
