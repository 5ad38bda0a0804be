import random

from dependency_injector import containers, providers

from squadapi.config import Settings
from squadapi.services.squad_membership_service import HttpSquadMembershipClient


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class IntegrationModule(containers.DeclarativeContainer):
    """Process-wide collaborators shared by request-scoped services."""

    config = providers.DependenciesContainer()

    squad_membership = providers.Singleton(
        HttpSquadMembershipClient, settings=config.config
    )
    rng = providers.Singleton(random.Random)


class Container(containers.DeclarativeContainer):
    """Application container."""

    config = providers.Container(ConfigModule)
    integrations = providers.Container(IntegrationModule, config=config)
