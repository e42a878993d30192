"""Models for the application."""

from .repo_target import RepoTarget

__all__ = ["RepoTarget"]
