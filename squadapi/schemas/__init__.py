from .common import DeclineReason
from .stars import StarBalanceResponse, StarLedgerResponse, StarSpendResult
from .powers import PowerGrantResponse, PowerConsumeResult, ActiveTargetResponse
from .challenges import ChallengeResponse, ChallengeCreateResult, ChallengeVoteResult
from .judges import JudgeAssignmentResponse, JudgeAdjustmentResult
from .health import HealthCheckResponse
