import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from squadapi.config import settings
from squadapi.database.session import get_db_context
from squadapi.logging_config import setup_logging
from squadapi.services.challenge_service import ChallengeService
from squadapi.services.squad_membership_service import HttpSquadMembershipClient


def expire_challenges() -> int:
    """마감이 지난 active 챌린지 일괄 만료 (cron 용)"""
    setup_logging(settings.LOG_LEVEL)
    with get_db_context() as db:
        service = ChallengeService(db, HttpSquadMembershipClient(settings))
        count = service.expire_overdue()
    print(f"Expired {count} overdue challenges")
    return count


if __name__ == "__main__":
    expire_challenges()
