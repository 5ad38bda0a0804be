import random

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from squadapi.config import Settings
from squadapi.database.session import get_db

# Services
from squadapi.services.challenge_service import ChallengeService
from squadapi.services.judge_service import JudgeService
from squadapi.services.power_service import PowerService
from squadapi.services.squad_membership_service import SquadMembershipProvider
from squadapi.services.star_service import StarService


def get_settings(request: Request) -> Settings:
    return request.app.container.config.config()


def get_squad_membership(request: Request) -> SquadMembershipProvider:
    return request.app.container.integrations.squad_membership()


def get_rng(request: Request) -> random.Random:
    return request.app.container.integrations.rng()


def get_star_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> StarService:
    return StarService(db=db, settings=settings)


def get_power_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    rng: random.Random = Depends(get_rng),
) -> PowerService:
    return PowerService(db=db, settings=settings, rng=rng)


def get_judge_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> JudgeService:
    return JudgeService(db=db, settings=settings)


def get_challenge_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    membership: SquadMembershipProvider = Depends(get_squad_membership),
    rng: random.Random = Depends(get_rng),
) -> ChallengeService:
    return ChallengeService(
        db=db,
        membership=membership,
        settings=settings,
        power_service=PowerService(db=db, settings=settings, rng=rng),
        judge_service=JudgeService(db=db, settings=settings),
    )
