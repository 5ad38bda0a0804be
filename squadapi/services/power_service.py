"""
파워 서비스

지급된 파워의 조회, 사용(consume), 취소(cancel)와 target_lock 이 만드는
조준 관계(active_targets)를 관리합니다.

파워 종류별 효과:
- double_chance: 다음 이벤트 승리 확률 2배 (사용 기록만)
- target_lock: 다른 플레이어 1명을 24시간 조준 (조준자당 1명, 변경 불가)
- chaos_card: 이번 이벤트에 무작위 규칙 적용 (뽑힌 규칙을 메타데이터에 기록)
- streak_shield: 불참 시 연속 기록 1회 보호 (protect_streak 로 자동 사용)
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from squadapi.config import Settings, settings as default_settings
from squadapi.core.exceptions import ValidationError
from squadapi.database.session import transactional
from squadapi.models.powers import ActiveTarget, PowerGrant, PowerType
from squadapi.repositories.powers_repository import (
    ActiveTargetRepository,
    PowersRepository,
)
from squadapi.schemas.common import DeclineReason, decline_message
from squadapi.schemas.powers import (
    ActiveTargetResponse,
    PowerCancelResult,
    PowerConsumeResult,
    PowerGrantResponse,
)
from squadapi.utils.timezone_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

CHAOS_RULES = (
    "DOUBLE_POINTS",
    "REVERSE_ORDER",
    "SPEED_ROUND",
    "MYSTERY_PENALTY",
    "POWER_SURGE",
    "IMMUNITY_BREAK",
    "BONUS_XP",
    "WILDCARD",
)


class PowerService:
    """파워 지급/사용/취소 비즈니스 로직"""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.rng = rng or random.Random()
        self.powers_repo = PowersRepository(db)
        self.targets_repo = ActiveTargetRepository(db)

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else utc_now()

    def default_ttl(self, power_type: PowerType) -> timedelta:
        hours = {
            PowerType.DOUBLE_CHANCE: self.settings.DOUBLE_CHANCE_TTL_HOURS,
            PowerType.TARGET_LOCK: self.settings.TARGET_LOCK_GRANT_TTL_HOURS,
            PowerType.CHAOS_CARD: self.settings.CHAOS_CARD_TTL_HOURS,
            PowerType.STREAK_SHIELD: self.settings.STREAK_SHIELD_TTL_HOURS,
        }[power_type]
        return timedelta(hours=hours)

    def _decline(self, reason: DeclineReason, **kwargs) -> PowerConsumeResult:
        return PowerConsumeResult(
            success=False, decline_reason=reason, message=decline_message(reason), **kwargs
        )

    @staticmethod
    def _classify(
        grant: Optional[PowerGrant], caller_id: str, now: datetime
    ) -> Optional[DeclineReason]:
        """사용 불가 사유 판별 - 사용 가능하면 None"""
        if grant is None:
            return DeclineReason.GRANT_NOT_FOUND
        if grant.owner_id != caller_id:
            return DeclineReason.NOT_GRANT_OWNER
        if grant.consumed_at is not None:
            return DeclineReason.ALREADY_USED
        if grant.cancelled_at is not None:
            return DeclineReason.GRANT_CANCELLED
        if ensure_utc(grant.expires_at) <= now:
            return DeclineReason.GRANT_EXPIRED
        return None

    # ------------------------------------------------------------------
    # 지급
    # ------------------------------------------------------------------

    def grant_power(
        self,
        owner_id: str,
        squad_id: str,
        power_type: PowerType,
        ttl: Optional[timedelta] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> PowerGrantResponse:
        """파워 지급 (보상 교환, 관리자 지급 등 외부 지급 경로)"""
        now = self._now(now)
        if ttl is None:
            ttl = self.default_ttl(power_type)
        if ttl <= timedelta(0):
            raise ValidationError("TTL must be positive")

        with transactional(self.db, "grant_power"):
            grant = self.powers_repo.create_grant(
                owner_id=owner_id,
                squad_id=squad_id,
                power_type=power_type,
                granted_at=now,
                expires_at=now + ttl,
                details=metadata,
            )
            response = self.powers_repo.to_schema(grant)

        logger.info(
            f"Granted {power_type.value} to {owner_id} in squad {squad_id} "
            f"(expires {response.expires_at.isoformat()})"
        )
        return response

    def award_underdog_power(
        self,
        player_id: str,
        squad_id: str,
        event_id: str,
        now: Optional[datetime] = None,
    ) -> PowerGrantResponse:
        """꼴찌에게 무작위 파워 지급"""
        power_type = self.rng.choice(list(PowerType))
        return self.grant_power(
            player_id,
            squad_id,
            power_type,
            metadata={
                "source_event_id": event_id,
                "awarded_reason": "last_place_finish",
            },
            now=now,
        )

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_grant(self, grant_id: str) -> Optional[PowerGrantResponse]:
        with transactional(self.db, "get_power_grant"):
            return self.powers_repo.get_by_id(grant_id)

    def list_active(
        self, player_id: str, squad_id: str, now: Optional[datetime] = None
    ) -> List[PowerGrantResponse]:
        """플레이어 본인의 사용 가능한 파워 목록 (만료 임박 순)"""
        now = self._now(now)
        with transactional(self.db, "list_active_powers"):
            grants = self.powers_repo.list_usable(player_id, squad_id, now)
            return self.powers_repo.to_schemas(grants)

    def has_unused_power(
        self,
        player_id: str,
        squad_id: str,
        power_type: PowerType,
        now: Optional[datetime] = None,
    ) -> bool:
        now = self._now(now)
        with transactional(self.db, "has_unused_power"):
            return self.powers_repo.has_usable(player_id, squad_id, power_type, now)

    def is_targeted(
        self, player_id: str, squad_id: str, now: Optional[datetime] = None
    ) -> bool:
        """살아있는 조준의 대상인지 여부 (만료 시각은 절대 기준)"""
        now = self._now(now)
        with transactional(self.db, "is_targeted"):
            return self.targets_repo.is_targeted(player_id, squad_id, now)

    def list_targets(
        self, squad_id: str, now: Optional[datetime] = None
    ) -> List[ActiveTargetResponse]:
        now = self._now(now)
        with transactional(self.db, "list_targets"):
            return self.targets_repo.to_schemas(self.targets_repo.list_live(squad_id, now))

    def get_power_history(self, squad_id: str, limit: int = 50) -> List[PowerGrantResponse]:
        """스쿼드의 전체 파워 이력 (최신순, 감사용)"""
        limit = max(1, min(limit, self.settings.LEDGER_PAGE_MAX))
        with transactional(self.db, "get_power_history"):
            return self.powers_repo.to_schemas(self.powers_repo.get_history(squad_id, limit))

    # ------------------------------------------------------------------
    # 조준
    # ------------------------------------------------------------------

    def _lock_target(
        self,
        targeter_id: str,
        target_id: str,
        squad_id: str,
        grant_id: str,
        ttl: timedelta,
        now: datetime,
    ) -> Optional[ActiveTarget]:
        """조준 생성 - 이미 살아있는 조준이 있으면 None

        슬롯 정리와 INSERT 는 savepoint 안에서 실행되므로 실패해도 바깥 트랜잭션은 그대로 남습니다.
        """
        if self.targets_repo.get_live_for_targeter(targeter_id, squad_id, now) is not None:
            return None

        try:
            with self.db.begin_nested():
                self.targets_repo.release_stale_slot(targeter_id, squad_id, now)
                return self.targets_repo.insert_target(
                    targeter_id, target_id, squad_id, grant_id, now + ttl
                )
        except IntegrityError:
            # 동시 요청이 먼저 슬롯을 차지함
            return None

    def create_target(
        self,
        targeter_id: str,
        target_id: str,
        squad_id: str,
        grant_id: str,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Optional[ActiveTargetResponse]:
        """조준 관계 생성

        조준자는 한 번에 한 명만 조준할 수 있으며, 살아있는 조준이 있으면 None 을 반환합니다.
        commit=False 로 호출자의 트랜잭션에 합류한 경우 거절되어도 호출자의 변경 사항은 유지됩니다.
        """
        now = self._now(now)
        if not target_id or target_id == targeter_id:
            raise ValidationError("A player cannot target themselves")
        if ttl is None:
            ttl = timedelta(hours=self.settings.TARGET_LOCK_TTL_HOURS)
        if ttl <= timedelta(0):
            raise ValidationError("TTL must be positive")

        with transactional(self.db, "create_target", commit=commit):
            target = self._lock_target(targeter_id, target_id, squad_id, grant_id, ttl, now)
            if target is None:
                logger.warning(
                    f"Target lock declined: {targeter_id} already has a live target in squad {squad_id}"
                )
                return None
            return self.targets_repo.to_schema(target)

    # ------------------------------------------------------------------
    # 사용 / 취소
    # ------------------------------------------------------------------

    def consume(
        self,
        grant_id: str,
        caller_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        target_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PowerConsumeResult:
        """
        파워 사용 - 동시 요청 중 정확히 하나만 성공

        1. 사용 가능 여부 판별 (소유자, 미사용, 미취소, 미만료)
        2. 조건부 UPDATE 로 consumed_at 기록 (0건이면 재조회 후 사유 판별)
        3. 종류별 효과를 같은 트랜잭션에서 처리
           - target_lock: 조준 생성 (이미 조준 중이면 전체 롤백, 파워는 그대로 사용 가능)
           - chaos_card: 무작위 규칙 추첨
        """
        now = self._now(now)
        metadata = dict(metadata or {})

        with transactional(self.db, "consume_power"):
            grant = self.powers_repo.get_model(grant_id)
            reason = self._classify(grant, caller_id, now)
            if reason is not None:
                logger.warning(f"Power {grant_id} consume declined for {caller_id}: {reason.value}")
                return self._decline(reason)

            power_type = grant.power_type
            details = dict(grant.details or {})
            details.update(metadata)
            details["used_timestamp"] = now.isoformat()

            chaos_rule = None
            target_user_id = None
            if power_type == PowerType.TARGET_LOCK:
                target_user_id = target_id or metadata.get("target_user_id")
                if not target_user_id or target_user_id == caller_id:
                    return self._decline(DeclineReason.INVALID_TARGET)
                details["target_user_id"] = target_user_id
            elif power_type == PowerType.CHAOS_CARD:
                chaos_rule = self.rng.choice(CHAOS_RULES)
                details["chaos_rule"] = chaos_rule

            if not self.powers_repo.mark_consumed(grant_id, caller_id, now, details):
                # 경합에서 진 경우 - 최신 상태로 사유 판별
                reason = self._classify(self.powers_repo.get_model(grant_id), caller_id, now)
                reason = reason or DeclineReason.ALREADY_USED
                logger.warning(f"Power {grant_id} consume lost race for {caller_id}: {reason.value}")
                return self._decline(reason)

            target = None
            if power_type == PowerType.TARGET_LOCK:
                target = self._lock_target(
                    caller_id,
                    target_user_id,
                    grant.squad_id,
                    grant_id,
                    timedelta(hours=self.settings.TARGET_LOCK_TTL_HOURS),
                    now,
                )
                if target is None:
                    self.db.rollback()
                    logger.warning(
                        f"Power {grant_id} consume declined for {caller_id}: target already locked"
                    )
                    return self._decline(DeclineReason.TARGET_ALREADY_LOCKED)

            result = PowerConsumeResult(
                success=True,
                message="Power activated",
                grant=self.powers_repo.get_by_id(grant_id),
                target=self.targets_repo.to_schema(target),
                chaos_rule=chaos_rule,
            )

        logger.info(f"Power {grant_id} ({power_type.value}) consumed by {caller_id}")
        return result

    def protect_streak(
        self, player_id: str, squad_id: str, now: Optional[datetime] = None
    ) -> PowerConsumeResult:
        """불참 시 streak_shield 자동 사용 - 만료 임박한 것부터"""
        now = self._now(now)
        with transactional(self.db, "find_streak_shield"):
            shield_ids = [
                g.id
                for g in self.powers_repo.list_usable(
                    player_id, squad_id, now, power_type=PowerType.STREAK_SHIELD
                )
            ]

        for shield_id in shield_ids:
            result = self.consume(
                shield_id,
                player_id,
                metadata={"auto_activated": True, "reason": "missed_event"},
                now=now,
            )
            if result.success:
                return result

        return self._decline(DeclineReason.NO_USABLE_POWER)

    def cancel(
        self,
        grant_id: str,
        cancelled_by: str,
        reason: str,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> PowerCancelResult:
        """
        파워 취소 (관리자, 챌린지 가결)

        사용(consumed_at)과 구분되는 cancelled_at/cancelled_by/cancel_reason 을 기록합니다.
        이미 취소된 파워에 대한 반복 호출은 변경 없이 already_cancelled=True 를 반환합니다.
        target_lock 취소 시 조준 관계도 해제됩니다.
        """
        now = self._now(now)

        with transactional(self.db, "cancel_power", commit=commit):
            grant = self.powers_repo.get_model(grant_id)
            if grant is None:
                return PowerCancelResult(
                    cancelled=False, decline_reason=DeclineReason.GRANT_NOT_FOUND
                )

            cancelled = self.powers_repo.mark_cancelled(grant_id, cancelled_by, reason, now)
            if cancelled and grant.power_type == PowerType.TARGET_LOCK:
                self.targets_repo.revoke_for_grant(grant_id, now)

            result = PowerCancelResult(
                cancelled=cancelled,
                already_cancelled=not cancelled,
                grant=self.powers_repo.get_by_id(grant_id),
            )

        if cancelled:
            logger.info(f"Power {grant_id} cancelled by {cancelled_by}: {reason}")
        return result
