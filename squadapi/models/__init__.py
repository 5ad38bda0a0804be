from .base import Base
from .stars import StarBalance, StarTransaction, StarTransactionKind, DailyLoginClaim
from .powers import PowerGrant, PowerType, ActiveTarget
from .challenges import (
    Challenge,
    ChallengeKind,
    ChallengeStatus,
    ChallengeVote,
    VoteChoice,
)
from .judges import JudgeAssignment

__all__ = [
    "Base",
    "StarBalance",
    "StarTransaction",
    "StarTransactionKind",
    "DailyLoginClaim",
    "PowerGrant",
    "PowerType",
    "ActiveTarget",
    "Challenge",
    "ChallengeKind",
    "ChallengeStatus",
    "ChallengeVote",
    "VoteChoice",
    "JudgeAssignment",
]
