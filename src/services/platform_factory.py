"""Factory for creating hosting platform clients from configuration."""

from ..config.settings import Settings
from ..models import RepoTarget
from ..protocols.platform_protocol import HostingPlatformProtocol
from .github_platform import GitHubPlatform
from .orchestrator import PlatformFactory


def create_platform(target: RepoTarget, settings: Settings) -> HostingPlatformProtocol:
    """
    Create the platform client for one monitored repository.

    Args:
        target: Repository the client is bound to
        settings: Application settings (timeouts, retry policy, issue labels)

    Returns:
        HostingPlatformProtocol implementation
    """
    return GitHubPlatform(
        repository=target.repository,
        token=target.token,
        api_url=target.api_url,
        timeout=settings.REQUEST_TIMEOUT,
        max_attempts=settings.MAX_ATTEMPTS,
        backoff_multiplier=settings.BACKOFF_MULTIPLIER,
        backoff_max=settings.BACKOFF_MAX_SECONDS,
        issue_labels=settings.ISSUE_LABELS,
    )


def platform_factory_from_settings(settings: Settings) -> PlatformFactory:
    """
    Bind the settings so the orchestrator can build clients per repository.

    Args:
        settings: Application settings

    Returns:
        Callable taking a RepoTarget and returning its platform client
    """

    def factory(target: RepoTarget) -> HostingPlatformProtocol:
        return create_platform(target, settings)

    return factory
