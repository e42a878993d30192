from functools import lru_cache
from typing import Any, List

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.exceptions import ConfigurationError
from src.models.repo_target import (
    DEFAULT_EXCLUDE_PATHS,
    DEFAULT_EXTENSIONS,
    DEFAULT_INCLUDE_PATHS,
    RepoTarget,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    A single monitored repository can be configured with the DIAGRAM_* variables.
    Several repositories are configured with REPO_TARGETS, a JSON list of
    RepoTarget objects; targets that omit api_url or token inherit
    GITHUB_API_URL and GITHUB_TOKEN.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Hosting platform
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TOKEN: str = ""
    WEBHOOK_SECRET: str = ""  # Signatures are not checked when empty
    REQUEST_TIMEOUT: float = 10.0

    # Single-repository shorthand
    DIAGRAM_REPO: str = ""
    DIAGRAM_BRANCH: str = "main"
    DIAGRAM_INCLUDE_PATHS: List[str] = list(DEFAULT_INCLUDE_PATHS)
    DIAGRAM_EXCLUDE_PATHS: List[str] = list(DEFAULT_EXCLUDE_PATHS)
    DIAGRAM_EXTENSIONS: List[str] = list(DEFAULT_EXTENSIONS)

    # Multi-repository configuration, overrides the shorthand when set.
    # Entries are validated as RepoTarget objects by repo_targets()
    REPO_TARGETS: List[Any] = []

    # Pipeline behaviour
    QUEUE_MAX_DEPTH: int = 32
    MAX_ATTEMPTS: int = 5
    BACKOFF_MULTIPLIER: float = 0.5
    BACKOFF_MAX_SECONDS: float = 8.0
    PROCESSED_COMMITS_LIMIT: int = 1024
    ISSUE_LABELS: List[str] = ["diagram-validation", "automated-issue"]

    # Local mirrors used to replay commits
    LOCAL_CLONE_ROOT: str = "./repos"

    LOG_LEVEL: str = "INFO"

    def repo_targets(self) -> List[RepoTarget]:
        """Resolve the configured repositories, raising ConfigurationError when unusable."""
        if self.REPO_TARGETS:
            entries = []
            for entry in self.REPO_TARGETS:
                if not isinstance(entry, dict):
                    raise ConfigurationError(
                        f"REPO_TARGETS entries must be JSON objects, got {entry!r}"
                    )
                # Targets without their own api_url or token inherit the global ones
                entries.append(
                    {"api_url": self.GITHUB_API_URL, "token": self.GITHUB_TOKEN, **entry}
                )
        elif self.DIAGRAM_REPO:
            entries = [
                {
                    "repository": self.DIAGRAM_REPO,
                    "api_url": self.GITHUB_API_URL,
                    "branch": self.DIAGRAM_BRANCH,
                    "include_paths": tuple(self.DIAGRAM_INCLUDE_PATHS),
                    "exclude_paths": tuple(self.DIAGRAM_EXCLUDE_PATHS),
                    "extensions": tuple(self.DIAGRAM_EXTENSIONS),
                    "token": self.GITHUB_TOKEN,
                }
            ]
        else:
            raise ConfigurationError(
                "No repository configured: set DIAGRAM_REPO or REPO_TARGETS"
            )

        try:
            targets = [RepoTarget.model_validate(entry) for entry in entries]
        except ValidationError as e:
            raise ConfigurationError(f"Invalid repository configuration: {e}") from e

        names = [target.repository for target in targets]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate repositories in configuration: {names}")
        return targets


@lru_cache
def get_settings() -> Settings:
    return Settings()
