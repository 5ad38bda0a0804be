from datetime import date, timedelta

import pytest

from squadapi.models.challenges import ChallengeKind, ChallengeStatus, VoteChoice
from squadapi.models.powers import PowerType
from squadapi.schemas.common import DeclineReason
from squadapi.services.challenge_service import (
    OVERTURN_REASON,
    ChallengeService,
    votes_needed_for,
)
from squadapi.services.squad_membership_service import StaticSquadMembership

from tests.conftest import SQUAD_ID, T0


def minutes(n: int):
    return T0 + timedelta(minutes=n)


# power_challenge 는 minutes(1) 에 생성되므로 마감은 minutes(61)
DEADLINE = minutes(61)


@pytest.fixture
def used_grant(power_service):
    """bob 이 사용한 double_chance"""
    grant = power_service.grant_power("bob", SQUAD_ID, PowerType.DOUBLE_CHANCE, now=T0)
    power_service.consume(grant.id, "bob", now=T0)
    return grant


@pytest.fixture
def power_challenge(challenge_service, used_grant):
    """alice 가 bob 의 파워 사용에 제기한 챌린지"""
    result = challenge_service.create(
        "alice",
        "bob",
        SQUAD_ID,
        ChallengeKind.POWER_ACTIVATION,
        related_grant_id=used_grant.id,
        reason="looked unfair",
        now=minutes(1),
    )
    return result.challenge


@pytest.mark.parametrize(
    "member_count,expected",
    [(0, 1), (1, 1), (2, 1), (3, 2), (4, 2), (5, 3), (10, 5)],
)
def test_votes_needed_is_half_rounded_up(member_count, expected):
    """필요 표 수는 멤버 수의 절반 올림, 최소 1"""
    assert votes_needed_for(member_count) == expected


class TestCreateChallenge:
    """챌린지 생성 테스트"""

    def test_create_records_challenger_vote(self, challenge_service, power_challenge):
        """생성 시 도전자의 찬성표가 자동 기록되는지 테스트"""
        # When
        detail = challenge_service.get_challenge(power_challenge.id, viewer_id="alice")

        # Then
        assert power_challenge.status == ChallengeStatus.ACTIVE
        assert power_challenge.votes_for == 1
        assert power_challenge.votes_against == 0
        assert power_challenge.votes_needed == 3
        assert power_challenge.member_count == 5
        assert [v.user_id for v in detail.votes] == ["alice"]
        assert detail.my_vote == VoteChoice.FOR

    def test_non_member_cannot_challenge(self, challenge_service, used_grant):
        """스쿼드 비멤버의 생성 요청이 거절되는지 테스트"""
        # When
        result = challenge_service.create(
            "mallory",
            "bob",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=used_grant.id,
            now=minutes(1),
        )

        # Then
        assert result.success is False
        assert result.decline_reason == DeclineReason.NOT_SQUAD_MEMBER

    def test_cannot_challenge_self(self, challenge_service, used_grant):
        """자기 자신에 대한 챌린지가 거절되는지 테스트"""
        # When
        result = challenge_service.create(
            "bob",
            "bob",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=used_grant.id,
            now=minutes(1),
        )

        # Then
        assert result.decline_reason == DeclineReason.CANNOT_CHALLENGE_SELF

    def test_unused_grant_cannot_be_challenged(self, challenge_service, power_service):
        """아직 사용되지 않은 파워는 챌린지할 수 없는지 테스트"""
        # Given
        grant = power_service.grant_power("bob", SQUAD_ID, PowerType.CHAOS_CARD, now=T0)

        # When
        result = challenge_service.create(
            "alice",
            "bob",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=grant.id,
            now=minutes(1),
        )

        # Then
        assert result.decline_reason == DeclineReason.GRANT_NOT_FOUND

    def test_grant_must_belong_to_target(self, challenge_service, used_grant):
        """챌린지 대상이 파워 소유자가 아니면 거절되는지 테스트"""
        # When
        result = challenge_service.create(
            "alice",
            "carol",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=used_grant.id,
            now=minutes(1),
        )

        # Then
        assert result.decline_reason == DeclineReason.GRANT_NOT_FOUND

    def test_duplicate_active_challenge_is_declined(
        self, challenge_service, used_grant, power_challenge
    ):
        """같은 파워에 진행 중인 챌린지가 있으면 거절되는지 테스트"""
        # When
        result = challenge_service.create(
            "carol",
            "bob",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=used_grant.id,
            now=minutes(2),
        )

        # Then
        assert result.decline_reason == DeclineReason.CHALLENGE_ALREADY_ACTIVE

    def test_duplicate_is_declined_at_exact_deadline(
        self, challenge_service, used_grant, power_challenge
    ):
        """마감 시각 정각에는 기존 챌린지가 아직 진행 중이라 중복 생성이 거절되는지 테스트"""
        # When
        result = challenge_service.create(
            "carol",
            "bob",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=used_grant.id,
            now=DEADLINE,
        )

        # Then
        assert result.decline_reason == DeclineReason.CHALLENGE_ALREADY_ACTIVE

    def test_two_member_squad_passes_immediately(self, db, power_service, used_grant):
        """2인 스쿼드는 도전자 1표로 즉시 가결되는지 테스트"""
        # Given
        service = ChallengeService(
            db,
            StaticSquadMembership({SQUAD_ID: ["alice", "bob"]}),
            power_service=power_service,
        )

        # When
        result = service.create(
            "alice",
            "bob",
            SQUAD_ID,
            ChallengeKind.POWER_ACTIVATION,
            related_grant_id=used_grant.id,
            now=minutes(1),
        )

        # Then
        assert result.challenge.votes_needed == 1
        assert result.challenge.status == ChallengeStatus.PASSED
        assert result.challenge.result_applied is True
        assert power_service.powers_repo.get_by_id(used_grant.id).cancelled_at is not None


class TestVoting:
    """챌린지 투표 테스트"""

    def test_majority_for_passes_and_cancels_power(
        self, challenge_service, power_service, used_grant, power_challenge
    ):
        """과반 찬성 시 가결되고 파워가 취소되는지 테스트"""
        # Given
        challenge_service.vote(power_challenge.id, "carol", VoteChoice.FOR, now=minutes(2))

        # When
        result = challenge_service.vote(
            power_challenge.id, "dave", VoteChoice.FOR, now=minutes(3)
        )

        # Then
        assert result.success is True
        assert result.challenge.status == ChallengeStatus.PASSED
        assert result.challenge.votes_for == 3
        assert result.challenge.result_applied is True
        grant = power_service.powers_repo.get_by_id(used_grant.id)
        assert grant.cancelled_at is not None
        assert grant.cancelled_by == "alice"
        assert grant.cancel_reason == OVERTURN_REASON

    def test_vote_after_resolution_is_declined(self, challenge_service, power_challenge):
        """판정이 끝난 챌린지에 대한 투표가 거절되는지 테스트"""
        # Given
        challenge_service.vote(power_challenge.id, "carol", VoteChoice.FOR, now=minutes(2))
        challenge_service.vote(power_challenge.id, "dave", VoteChoice.FOR, now=minutes(3))

        # When
        late = challenge_service.vote(
            power_challenge.id, "erin", VoteChoice.AGAINST, now=minutes(4)
        )

        # Then
        assert late.success is False
        assert late.decline_reason == DeclineReason.CHALLENGE_NOT_ACTIVE
        assert late.challenge.votes_for == 3
        assert late.challenge.votes_against == 0

    def test_resolve_is_idempotent(
        self, challenge_service, power_service, used_grant, power_challenge
    ):
        """이미 판정된 챌린지의 재판정은 결과를 다시 반영하지 않는지 테스트"""
        # Given
        challenge_service.vote(power_challenge.id, "carol", VoteChoice.FOR, now=minutes(2))
        challenge_service.vote(power_challenge.id, "dave", VoteChoice.FOR, now=minutes(3))
        cancelled_at = power_service.powers_repo.get_by_id(used_grant.id).cancelled_at

        # When
        again = challenge_service.resolve(power_challenge.id, now=minutes(10))

        # Then
        assert again.status == ChallengeStatus.PASSED
        grant = power_service.powers_repo.get_by_id(used_grant.id)
        assert grant.cancelled_at == cancelled_at

    def test_majority_against_fails_and_keeps_power(
        self, challenge_service, power_service, used_grant, power_challenge
    ):
        """과반 반대 시 부결되고 파워는 유지되는지 테스트"""
        # When
        for i, voter in enumerate(["carol", "dave", "erin"]):
            result = challenge_service.vote(
                power_challenge.id, voter, VoteChoice.AGAINST, now=minutes(2 + i)
            )

        # Then
        assert result.challenge.status == ChallengeStatus.FAILED
        assert result.challenge.votes_against == 3
        assert power_service.powers_repo.get_by_id(used_grant.id).cancelled_at is None

    def test_second_vote_by_same_user_is_declined(self, challenge_service, power_challenge):
        """같은 사용자의 두 번째 투표가 거절되는지 테스트 (도전자 포함)"""
        # Given
        challenge_service.vote(power_challenge.id, "carol", VoteChoice.FOR, now=minutes(2))

        # When
        again = challenge_service.vote(
            power_challenge.id, "carol", VoteChoice.AGAINST, now=minutes(3)
        )
        challenger = challenge_service.vote(
            power_challenge.id, "alice", VoteChoice.FOR, now=minutes(3)
        )

        # Then
        assert again.decline_reason == DeclineReason.ALREADY_VOTED
        assert challenger.decline_reason == DeclineReason.ALREADY_VOTED
        assert again.challenge.votes_for == 2
        assert again.challenge.votes_against == 0

    def test_target_cannot_vote_on_own_challenge(self, challenge_service, power_challenge):
        """챌린지 대상자는 자신에 대한 챌린지에 투표할 수 없는지 테스트"""
        # When
        result = challenge_service.vote(
            power_challenge.id, "bob", VoteChoice.AGAINST, now=minutes(2)
        )

        # Then
        assert result.success is False
        assert result.decline_reason == DeclineReason.CANNOT_VOTE_ON_OWN_CHALLENGE
        assert result.challenge.votes_against == 0
        assert [v.user_id for v in challenge_service.challenge_repo.get_votes(power_challenge.id)] == [
            "alice"
        ]

    def test_non_member_vote_is_declined(self, challenge_service, power_challenge):
        """스쿼드 비멤버의 투표가 거절되는지 테스트"""
        # When
        result = challenge_service.vote(
            power_challenge.id, "mallory", VoteChoice.FOR, now=minutes(2)
        )

        # Then
        assert result.decline_reason == DeclineReason.NOT_SQUAD_MEMBER

    def test_vote_on_unknown_challenge(self, challenge_service):
        """존재하지 않는 챌린지에 대한 투표 테스트"""
        # When
        result = challenge_service.vote("missing", "alice", VoteChoice.FOR, now=T0)

        # Then
        assert result.decline_reason == DeclineReason.CHALLENGE_NOT_FOUND

    def test_vote_at_exact_deadline_is_accepted(self, challenge_service, power_challenge):
        """마감 시각 정각의 투표는 유효한지 테스트"""
        # When
        result = challenge_service.vote(power_challenge.id, "carol", VoteChoice.FOR, now=DEADLINE)

        # Then
        assert result.success is True
        assert result.challenge.status == ChallengeStatus.ACTIVE
        assert result.challenge.votes_for == 2

    def test_vote_after_deadline_expires_challenge(self, challenge_service, power_challenge):
        """마감이 지난 뒤의 투표는 챌린지를 만료시키고 거절되는지 테스트"""
        # When
        result = challenge_service.vote(
            power_challenge.id, "carol", VoteChoice.FOR, now=DEADLINE + timedelta(seconds=1)
        )

        # Then
        assert result.decline_reason == DeclineReason.CHALLENGE_EXPIRED
        assert result.challenge.status == ChallengeStatus.EXPIRED
        assert result.challenge.votes_for == 1


class TestExpiry:
    """챌린지 만료 테스트"""

    def test_expire_before_deadline_keeps_challenge_active(
        self, challenge_service, power_challenge
    ):
        """마감 전 만료 요청은 변경 없이 active 로 남는지 테스트"""
        # When
        result = challenge_service.expire(power_challenge.id, now=minutes(30))

        # Then
        assert result.status == ChallengeStatus.ACTIVE

    def test_expire_at_exact_deadline_keeps_challenge_active(
        self, challenge_service, power_challenge
    ):
        """마감 시각 정각에는 아직 만료되지 않는지 테스트"""
        # When
        result = challenge_service.expire(power_challenge.id, now=DEADLINE)
        overdue = challenge_service.expire_overdue(now=DEADLINE)

        # Then
        assert result.status == ChallengeStatus.ACTIVE
        assert overdue == 0
        assert [c.id for c in challenge_service.get_active(SQUAD_ID, now=DEADLINE)] == [
            power_challenge.id
        ]

    def test_expire_after_deadline(
        self, challenge_service, power_service, used_grant, power_challenge
    ):
        """마감이 지나면 expired 로 전이되고 결과는 반영되지 않는지 테스트"""
        # When
        result = challenge_service.expire(
            power_challenge.id, now=DEADLINE + timedelta(seconds=1)
        )

        # Then
        assert result.status == ChallengeStatus.EXPIRED
        assert result.result_applied is False
        assert power_service.powers_repo.get_by_id(used_grant.id).cancelled_at is None

    def test_expire_overdue_and_active_listing(self, challenge_service, power_challenge):
        """일괄 만료 후 진행 중인 목록에서 빠지는지 테스트"""
        # Given
        before = challenge_service.get_active(SQUAD_ID, now=minutes(5))

        # When
        expired = challenge_service.expire_overdue(now=minutes(120))

        # Then
        assert [c.id for c in before] == [power_challenge.id]
        assert expired == 1
        assert challenge_service.get_active(SQUAD_ID, now=minutes(5)) == []


class TestJudgeDecisionChallenge:
    """판사 판정 챌린지 - 가결 시 패널티, 부결 시 보너스"""

    @pytest.fixture
    def ruling(self, judge_service, star_service):
        star_service.earn("bob", SQUAD_ID, 10, "event_reward")
        return judge_service.assign(
            SQUAD_ID, "bob", judge_date=date(2026, 1, 5), event_id="event-1"
        )

    def _challenge(self, challenge_service):
        return challenge_service.create(
            "alice",
            "bob",
            SQUAD_ID,
            ChallengeKind.JUDGE_DECISION,
            related_event_id="event-1",
            now=minutes(1),
        ).challenge

    def test_overturned_ruling_applies_clamped_penalty(
        self, challenge_service, judge_service, star_service, ruling
    ):
        """번복된 판정은 잔액 한도 내에서 패널티가 차감되는지 테스트"""
        # Given
        challenge = self._challenge(challenge_service)

        # When
        challenge_service.vote(challenge.id, "carol", VoteChoice.FOR, now=minutes(2))
        challenge_service.vote(challenge.id, "dave", VoteChoice.FOR, now=minutes(3))
        challenge_service.resolve(challenge.id, now=minutes(4))

        # Then
        assignment = judge_service.judge_repo.get_by_id(ruling.id)
        assert assignment.is_overturned is True
        assert assignment.penalty_applied == 10
        assert star_service.get_balance("bob", SQUAD_ID).balance == 0
        latest = star_service.get_transactions("bob", SQUAD_ID).entries[0]
        assert latest.amount == -10
        assert latest.source == "judge_penalty"

    def test_upheld_ruling_earns_bonus(
        self, challenge_service, judge_service, star_service, ruling
    ):
        """유지된 판정은 판사 보너스가 지급되는지 테스트"""
        # Given
        challenge = self._challenge(challenge_service)

        # When
        for i, voter in enumerate(["carol", "dave", "erin"]):
            challenge_service.vote(challenge.id, voter, VoteChoice.AGAINST, now=minutes(2 + i))

        # Then
        assignment = judge_service.judge_repo.get_by_id(ruling.id)
        assert assignment.bonus_earned == 10
        assert assignment.is_overturned is False
        assert star_service.get_balance("bob", SQUAD_ID).balance == 20

    def test_judge_cannot_vote_on_own_ruling(self, challenge_service, ruling):
        """판사는 자신의 판정에 대한 챌린지에 투표할 수 없는지 테스트"""
        # Given
        challenge = self._challenge(challenge_service)

        # When
        result = challenge_service.vote(challenge.id, "bob", VoteChoice.AGAINST, now=minutes(2))

        # Then
        assert result.decline_reason == DeclineReason.CANNOT_VOTE_ON_OWN_CHALLENGE
        assert result.challenge.votes_against == 0
