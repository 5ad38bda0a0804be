from enum import Enum


class DeclineReason(str, Enum):
    """비즈니스 규칙에 의한 거절 사유 (인프라 오류와 구분되는 결과 값)"""

    # Stars
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Powers
    GRANT_NOT_FOUND = "GRANT_NOT_FOUND"
    NOT_GRANT_OWNER = "NOT_GRANT_OWNER"
    ALREADY_USED = "ALREADY_USED"
    GRANT_EXPIRED = "GRANT_EXPIRED"
    GRANT_CANCELLED = "GRANT_CANCELLED"
    INVALID_TARGET = "INVALID_TARGET"
    TARGET_ALREADY_LOCKED = "TARGET_ALREADY_LOCKED"
    NO_USABLE_POWER = "NO_USABLE_POWER"

    # Challenges
    ALREADY_VOTED = "ALREADY_VOTED"
    CHALLENGE_NOT_FOUND = "CHALLENGE_NOT_FOUND"
    CHALLENGE_NOT_ACTIVE = "CHALLENGE_NOT_ACTIVE"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    CHALLENGE_ALREADY_ACTIVE = "CHALLENGE_ALREADY_ACTIVE"
    CANNOT_CHALLENGE_SELF = "CANNOT_CHALLENGE_SELF"
    CANNOT_VOTE_ON_OWN_CHALLENGE = "CANNOT_VOTE_ON_OWN_CHALLENGE"
    NOT_SQUAD_MEMBER = "NOT_SQUAD_MEMBER"

    # Judges
    ASSIGNMENT_NOT_FOUND = "ASSIGNMENT_NOT_FOUND"
    ADJUSTMENT_ALREADY_APPLIED = "ADJUSTMENT_ALREADY_APPLIED"


DECLINE_MESSAGES = {
    DeclineReason.INSUFFICIENT_BALANCE: "Insufficient stars",
    DeclineReason.GRANT_NOT_FOUND: "Power not found",
    DeclineReason.NOT_GRANT_OWNER: "You do not own this power",
    DeclineReason.ALREADY_USED: "Power has already been used",
    DeclineReason.GRANT_EXPIRED: "This power has expired",
    DeclineReason.GRANT_CANCELLED: "This power has been cancelled",
    DeclineReason.INVALID_TARGET: "A target_lock needs another player as target",
    DeclineReason.TARGET_ALREADY_LOCKED: "You already have a live target",
    DeclineReason.NO_USABLE_POWER: "No usable power of this type",
    DeclineReason.ALREADY_VOTED: "You already voted on this challenge",
    DeclineReason.CHALLENGE_NOT_FOUND: "Challenge not found",
    DeclineReason.CHALLENGE_NOT_ACTIVE: "Challenge is no longer active",
    DeclineReason.CHALLENGE_EXPIRED: "Challenge has expired",
    DeclineReason.CHALLENGE_ALREADY_ACTIVE: "An active challenge already exists for this ruling",
    DeclineReason.CANNOT_CHALLENGE_SELF: "You cannot challenge yourself",
    DeclineReason.CANNOT_VOTE_ON_OWN_CHALLENGE: "You cannot vote on a challenge targeting you",
    DeclineReason.NOT_SQUAD_MEMBER: "You are not a member of this squad",
    DeclineReason.ASSIGNMENT_NOT_FOUND: "Judge assignment not found",
    DeclineReason.ADJUSTMENT_ALREADY_APPLIED: "Adjustment was already applied",
}


def decline_message(reason: DeclineReason) -> str:
    return DECLINE_MESSAGES.get(reason, reason.value)
