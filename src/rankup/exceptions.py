# src/rankup/exceptions.py

"""Custom exception hierarchy for RankUp.

This module provides a structured exception hierarchy that enables:
1. Proper HTTP status code mapping in API endpoints
2. Detailed error context for logging and debugging
3. Clear distinction between recoverable provider failures and hard errors
"""

from __future__ import annotations


class RankUpError(Exception):
    """Base exception for all RankUp errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional context for logging/debugging
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Resource Not Found Errors (HTTP 404)
# =============================================================================


class ResourceNotFoundError(RankUpError):
    """Base class for resource not found errors."""

    pass


class UserNotFoundError(ResourceNotFoundError):
    """Raised when a user ID does not exist."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            message=f"User {user_id} not found",
            details={"user_id": user_id},
        )


class PartyNotFoundError(ResourceNotFoundError):
    """Raised when a party ID does not exist."""

    def __init__(self, party_id: int) -> None:
        super().__init__(
            message=f"Party with ID {party_id} not found",
            details={"party_id": party_id},
        )


# =============================================================================
# Precondition Errors (HTTP 412)
# =============================================================================


class PreconditionError(RankUpError):
    """Base class for errors caused by missing caller-side setup."""

    pass


class AccountNotLinkedError(PreconditionError):
    """Raised when a user has no external account linked for a game.

    Never retried: nothing changes until the user links an account.
    """

    def __init__(self, user_id: str, game: str) -> None:
        super().__init__(
            message=f"No {game} account linked. Please link your account first.",
            details={"user_id": user_id, "game": game},
        )


# =============================================================================
# Stats Provider Errors (recovered by the stats cache when possible)
# =============================================================================


class ProviderError(RankUpError):
    """Base class for failures talking to a third-party stats provider."""

    def __init__(
        self, message: str, game: str, status_code: int | None = None
    ) -> None:
        details: dict = {"game": game}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message=message, details=details)
        self.game = game
        self.status_code = status_code


class ProviderUnavailableError(ProviderError):
    """Network failure, rate limit (429) or server error (5xx)."""

    pass


class ProviderAccountNotFoundError(ProviderError):
    """The provider does not know the linked account (404)."""

    pass


class ProviderAuthError(ProviderError):
    """The provider rejected our API key (401/403)."""

    pass


class StatsUnavailableError(RankUpError):
    """Raised when the provider failed and no cached stats exist at all.

    This is the degraded-data path: there is nothing to show, and a default
    value would be fabricated data.
    """

    def __init__(self, user_id: str, game: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to fetch {game} stats. Please try again later.",
            details={"user_id": user_id, "game": game, "reason": reason},
        )


# =============================================================================
# Notification Errors
# =============================================================================


class PushDeliveryError(RankUpError):
    """Raised by the push client when a whole batch could not be delivered."""

    def __init__(self, message: str, batch_size: int) -> None:
        super().__init__(message=message, details={"batch_size": batch_size})
