from datetime import timedelta

import pytest

from squadapi.core.exceptions import ValidationError
from squadapi.models.powers import PowerType
from squadapi.schemas.common import DeclineReason
from squadapi.services.power_service import CHAOS_RULES

from tests.conftest import SQUAD_ID, T0


class TestPowerQueries:
    """파워 지급/조회 테스트"""

    def test_list_active_returns_only_owner_powers(self, power_service):
        """본인 소유의 사용 가능한 파워만 조회되는지 테스트"""
        # Given
        power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)
        power_service.grant_power("bob", SQUAD_ID, PowerType.CHAOS_CARD, now=T0)

        # When
        powers = power_service.list_active("alice", SQUAD_ID, now=T0)

        # Then
        assert len(powers) == 1
        assert powers[0].owner_id == "alice"
        assert powers[0].power_type == PowerType.DOUBLE_CHANCE

    def test_list_active_orders_by_soonest_expiry_and_hides_expired(self, power_service):
        """만료 임박 순 정렬과 만료된 파워 제외 테스트"""
        # Given
        power_service.grant_power("alice", SQUAD_ID, PowerType.STREAK_SHIELD, now=T0)
        power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)

        # When
        now_powers = power_service.list_active("alice", SQUAD_ID, now=T0)
        later_powers = power_service.list_active(
            "alice", SQUAD_ID, now=T0 + timedelta(hours=25)
        )

        # Then
        assert [p.power_type for p in now_powers] == [
            PowerType.DOUBLE_CHANCE,
            PowerType.STREAK_SHIELD,
        ]
        assert [p.power_type for p in later_powers] == [PowerType.STREAK_SHIELD]

    def test_has_unused_power(self, power_service):
        """종류별 미사용 파워 보유 여부 테스트"""
        # Given
        power_service.grant_power("alice", SQUAD_ID, PowerType.CHAOS_CARD, now=T0)

        # Then
        assert power_service.has_unused_power("alice", SQUAD_ID, PowerType.CHAOS_CARD, now=T0)
        assert not power_service.has_unused_power(
            "alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0
        )

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(hours=-1)])
    def test_grant_rejects_non_positive_ttl(self, power_service, ttl):
        """0 이하의 TTL 은 기본값으로 바뀌지 않고 거부되는지 테스트"""
        with pytest.raises(ValidationError):
            power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, ttl=ttl, now=T0)

        assert power_service.list_active("alice", SQUAD_ID, now=T0) == []

    def test_grant_without_ttl_uses_type_default(self, power_service):
        """TTL 생략 시 파워 종류별 기본 TTL 적용 테스트"""
        # When
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.STREAK_SHIELD, now=T0)

        # Then
        assert grant.expires_at - grant.granted_at == power_service.default_ttl(
            PowerType.STREAK_SHIELD
        )

    def test_underdog_power_records_source_event(self, power_service):
        """꼴찌 보상 파워에 원인 이벤트가 기록되는지 테스트"""
        # When
        grant = power_service.award_underdog_power("erin", SQUAD_ID, "event-9", now=T0)

        # Then
        assert grant.owner_id == "erin"
        assert grant.details == {
            "source_event_id": "event-9",
            "awarded_reason": "last_place_finish",
        }

    def test_history_is_newest_first(self, power_service):
        """스쿼드 파워 이력이 최신순인지 테스트"""
        # Given
        power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)
        power_service.grant_power(
            "bob", SQUAD_ID, PowerType.CHAOS_CARD, now=T0 + timedelta(minutes=5)
        )

        # When
        history = power_service.get_power_history(SQUAD_ID)

        # Then
        assert [g.owner_id for g in history] == ["bob", "alice"]

    def test_get_grant(self, power_service):
        """ID 로 파워 단건 조회 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)

        # Then
        assert power_service.get_grant(grant.id).squad_id == SQUAD_ID
        assert power_service.get_grant("missing") is None


class TestConsume:
    """파워 사용 테스트"""

    def test_double_chance_consumed_once(self, power_service):
        """같은 파워는 한 번만 사용되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)

        # When
        first = power_service.consume(grant.id, "alice", now=T0 + timedelta(minutes=1))
        second = power_service.consume(grant.id, "alice", now=T0 + timedelta(minutes=2))

        # Then
        assert first.success is True
        assert first.grant.consumed_at is not None
        assert first.grant.details["used_timestamp"] == (T0 + timedelta(minutes=1)).isoformat()
        assert second.success is False
        assert second.decline_reason == DeclineReason.ALREADY_USED

    def test_consume_by_non_owner_is_declined(self, power_service):
        """소유자가 아닌 사용자의 사용이 거절되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)

        # When
        result = power_service.consume(grant.id, "bob", now=T0)

        # Then
        assert result.decline_reason == DeclineReason.NOT_GRANT_OWNER
        assert power_service.has_unused_power(
            "alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0
        )

    def test_consume_unknown_grant(self, power_service):
        """존재하지 않는 파워 사용 테스트"""
        result = power_service.consume("missing", "alice", now=T0)

        assert result.decline_reason == DeclineReason.GRANT_NOT_FOUND

    def test_consume_expired_grant(self, power_service):
        """만료 시각 이후의 사용이 거절되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)

        # When
        result = power_service.consume(grant.id, "alice", now=T0 + timedelta(hours=24))

        # Then
        assert result.decline_reason == DeclineReason.GRANT_EXPIRED

    def test_consume_cancelled_grant(self, power_service):
        """취소된 파워의 사용이 거절되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)
        power_service.cancel(grant.id, "admin", "abuse", now=T0)

        # When
        result = power_service.consume(grant.id, "alice", now=T0)

        # Then
        assert result.decline_reason == DeclineReason.GRANT_CANCELLED

    def test_chaos_card_records_drawn_rule(self, power_service):
        """chaos_card 사용 시 뽑힌 규칙이 기록되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.CHAOS_CARD, now=T0)

        # When
        result = power_service.consume(grant.id, "alice", now=T0)

        # Then
        assert result.success is True
        assert result.chaos_rule in CHAOS_RULES
        assert result.grant.details["chaos_rule"] == result.chaos_rule

    def test_caller_metadata_is_kept(self, power_service):
        """지급 시 메타데이터와 사용 시 메타데이터가 함께 남는지 테스트"""
        # Given
        grant = power_service.grant_power(
            "alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, metadata={"source": "shop"}, now=T0
        )

        # When
        result = power_service.consume(grant.id, "alice", metadata={"event_id": "e-1"}, now=T0)

        # Then
        assert result.grant.details["source"] == "shop"
        assert result.grant.details["event_id"] == "e-1"

    def test_consume_losing_race_is_declined_as_already_used(self, power_service, monkeypatch):
        """판별 후 다른 요청이 먼저 사용하면 ALREADY_USED 로 거절되고 승자의 기록이 남는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)
        mark_consumed = power_service.powers_repo.mark_consumed

        def consumed_by_other_request(grant_id, owner_id, now, details):
            mark_consumed(grant_id, owner_id, now, {"device": "other"})
            return False

        monkeypatch.setattr(power_service.powers_repo, "mark_consumed", consumed_by_other_request)

        # When
        result = power_service.consume(grant.id, "alice", metadata={"device": "mine"}, now=T0)

        # Then
        assert result.success is False
        assert result.decline_reason == DeclineReason.ALREADY_USED
        assert power_service.get_grant(grant.id).details == {"device": "other"}


class TestTargetLock:
    """target_lock - 조준자당 살아있는 조준 1개"""

    def test_target_lives_for_24_hours(self, power_service):
        """조준은 사용 시점부터 24시간 유지되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)

        # When
        result = power_service.consume(grant.id, "alice", target_id="bob", now=T0)

        # Then
        assert result.success is True
        assert result.target.target_id == "bob"
        assert result.grant.details["target_user_id"] == "bob"
        assert power_service.is_targeted(
            "bob", SQUAD_ID, now=T0 + timedelta(hours=23, minutes=59)
        )
        assert not power_service.is_targeted(
            "bob", SQUAD_ID, now=T0 + timedelta(hours=24, minutes=1)
        )

    @pytest.mark.parametrize("target_id", [None, "alice"])
    def test_invalid_target_leaves_grant_unused(self, power_service, target_id):
        """대상이 없거나 자기 자신이면 거절되고 파워는 남는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)

        # When
        result = power_service.consume(grant.id, "alice", target_id=target_id, now=T0)

        # Then
        assert result.decline_reason == DeclineReason.INVALID_TARGET
        assert power_service.has_unused_power(
            "alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0
        )

    def test_second_lock_declined_while_first_is_live(self, power_service):
        """살아있는 조준이 있으면 두 번째 target_lock 이 거절되고 파워는 남는지 테스트"""
        # Given
        first = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)
        second = power_service.grant_power(
            "alice", SQUAD_ID, PowerType.TARGET_LOCK, ttl=timedelta(hours=48), now=T0
        )
        power_service.consume(first.id, "alice", target_id="bob", now=T0)

        # When
        declined = power_service.consume(
            second.id, "alice", target_id="carol", now=T0 + timedelta(hours=1)
        )

        # Then
        assert declined.success is False
        assert declined.decline_reason == DeclineReason.TARGET_ALREADY_LOCKED
        assert not power_service.is_targeted("carol", SQUAD_ID, now=T0 + timedelta(hours=1))
        remaining = power_service.list_active("alice", SQUAD_ID, now=T0 + timedelta(hours=1))
        assert [g.id for g in remaining] == [second.id]

    def test_new_lock_allowed_after_previous_expires(self, power_service):
        """이전 조준이 만료되면 새 조준이 가능한지 테스트"""
        # Given
        first = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)
        second = power_service.grant_power(
            "alice", SQUAD_ID, PowerType.TARGET_LOCK, ttl=timedelta(hours=48), now=T0
        )
        power_service.consume(first.id, "alice", target_id="bob", now=T0)
        later = T0 + timedelta(hours=25)

        # When
        result = power_service.consume(second.id, "alice", target_id="carol", now=later)

        # Then
        assert result.success is True
        assert power_service.is_targeted("carol", SQUAD_ID, now=later)
        assert [t.target_id for t in power_service.list_targets(SQUAD_ID, now=later)] == [
            "carol"
        ]

    def test_create_target_rejects_self(self, power_service):
        """자기 자신을 조준하면 ValidationError 테스트"""
        with pytest.raises(ValidationError):
            power_service.create_target("alice", "alice", SQUAD_ID, "grant-x", now=T0)

    def test_create_target_rejects_non_positive_ttl(self, power_service):
        """조준 TTL 이 0 이면 ValidationError 테스트"""
        with pytest.raises(ValidationError):
            power_service.create_target(
                "alice", "bob", SQUAD_ID, "grant-x", ttl=timedelta(0), now=T0
            )

    def test_create_target_returns_none_when_locked(self, power_service):
        """살아있는 조준이 있으면 create_target 이 None 을 반환하는지 테스트"""
        # Given
        created = power_service.create_target("alice", "bob", SQUAD_ID, "grant-1", now=T0)

        # When
        again = power_service.create_target("alice", "carol", SQUAD_ID, "grant-2", now=T0)

        # Then
        assert created.target_id == "bob"
        assert again is None

    def test_declined_create_target_keeps_callers_transaction(
        self, db, power_service, star_service
    ):
        """commit=False 로 합류한 create_target 이 거절되어도 호출자의 변경은 유지되는지 테스트"""
        # Given
        power_service.create_target("alice", "bob", SQUAD_ID, "grant-1", now=T0)
        star_service.earn("carol", SQUAD_ID, 50, "event_reward", commit=False)

        # When
        declined = power_service.create_target(
            "alice", "carol", SQUAD_ID, "grant-2", now=T0, commit=False
        )
        db.commit()

        # Then
        assert declined is None
        assert star_service.get_balance("carol", SQUAD_ID).balance == 50
        assert [t.target_id for t in power_service.list_targets(SQUAD_ID, now=T0)] == ["bob"]

    def test_slot_conflict_rolls_back_only_the_savepoint(
        self, db, power_service, star_service, monkeypatch
    ):
        """슬롯 INSERT 가 충돌해도 savepoint 만 되돌리고 호출자의 변경은 유지되는지 테스트"""
        # Given
        power_service.create_target("alice", "bob", SQUAD_ID, "grant-1", now=T0)
        star_service.earn("carol", SQUAD_ID, 50, "event_reward", commit=False)
        # 다른 요청이 아직 커밋하지 않아 살아있는 조준이 보이지 않는 상황
        monkeypatch.setattr(
            power_service.targets_repo, "get_live_for_targeter", lambda *args: None
        )

        # When
        declined = power_service.create_target(
            "alice", "carol", SQUAD_ID, "grant-2", now=T0, commit=False
        )
        db.commit()

        # Then
        assert declined is None
        assert star_service.get_balance("carol", SQUAD_ID).balance == 50
        assert [t.target_id for t in power_service.list_targets(SQUAD_ID, now=T0)] == ["bob"]


class TestCancel:
    """파워 취소 테스트"""

    def test_cancel_is_idempotent_and_releases_target(self, power_service):
        """반복 취소는 변경이 없고 target_lock 취소 시 조준이 해제되는지 테스트"""
        # Given
        grant = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)
        power_service.consume(grant.id, "alice", target_id="bob", now=T0)

        # When
        first = power_service.cancel(grant.id, "admin", "misuse", now=T0 + timedelta(hours=1))
        second = power_service.cancel(grant.id, "admin", "misuse", now=T0 + timedelta(hours=2))

        # Then
        assert first.cancelled is True
        assert first.grant.cancelled_by == "admin"
        assert first.grant.cancel_reason == "misuse"
        assert second.cancelled is False
        assert second.already_cancelled is True
        assert second.grant.cancelled_at == first.grant.cancelled_at
        assert not power_service.is_targeted("bob", SQUAD_ID, now=T0 + timedelta(hours=2))

    def test_cancelled_lock_frees_the_slot(self, power_service):
        """취소된 조준의 슬롯은 새 조준에 재사용되는지 테스트"""
        # Given
        first = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)
        second = power_service.grant_power("alice", SQUAD_ID, PowerType.TARGET_LOCK, now=T0)
        power_service.consume(first.id, "alice", target_id="bob", now=T0)
        power_service.cancel(first.id, "admin", "misuse", now=T0 + timedelta(minutes=10))

        # When
        result = power_service.consume(
            second.id, "alice", target_id="carol", now=T0 + timedelta(minutes=20)
        )

        # Then
        assert result.success is True

    def test_cancel_unknown_grant(self, power_service):
        """존재하지 않는 파워 취소 테스트"""
        result = power_service.cancel("missing", "admin", "typo", now=T0)

        assert result.cancelled is False
        assert result.decline_reason == DeclineReason.GRANT_NOT_FOUND


class TestStreakShield:
    """streak_shield 자동 사용 테스트"""

    def test_protect_streak_consumes_shield(self, power_service):
        """불참 시 streak_shield 가 자동으로 사용되는지 테스트"""
        # Given
        power_service.grant_power("alice", SQUAD_ID, PowerType.STREAK_SHIELD, now=T0)

        # When
        result = power_service.protect_streak("alice", SQUAD_ID, now=T0 + timedelta(days=1))

        # Then
        assert result.success is True
        assert result.grant.details["auto_activated"] is True
        assert not power_service.has_unused_power(
            "alice", SQUAD_ID, PowerType.STREAK_SHIELD, now=T0 + timedelta(days=1)
        )

    def test_protect_streak_without_shield(self, power_service):
        """streak_shield 가 없으면 NO_USABLE_POWER 로 거절되는지 테스트"""
        result = power_service.protect_streak("alice", SQUAD_ID, now=T0)

        assert result.success is False
        assert result.decline_reason == DeclineReason.NO_USABLE_POWER
