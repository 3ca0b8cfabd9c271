# src/rankup/clients/base.py

"""Shared plumbing for third-party stats provider clients."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any, Protocol

import httpx

from rankup.exceptions import (
    ProviderAccountNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderUnavailableError,
)
from rankup.schemas.common import Game

logger = logging.getLogger(__name__)

PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))


class StatsProvider(Protocol):
    """Anything that can fetch normalized stats for a linked account.

    The returned dict always carries ``current_rank`` (rank label) and
    ``points`` (in-tier progress); everything else is game-specific detail.
    """

    async def fetch(self, account: Mapping[str, Any], game: Game) -> dict[str, Any]:
        ...


def check_response(response: httpx.Response, game: Game, context: str) -> None:
    """Translate a non-2xx provider response into a ProviderError."""
    status = response.status_code
    if status < 400:
        return

    logger.warning(
        "Provider returned an error",
        extra={"game": game.value, "context": context, "status_code": status},
    )
    if status == 404:
        raise ProviderAccountNotFoundError(
            f"Account not found ({context})", game.value, status
        )
    if status in (401, 403):
        raise ProviderAuthError(
            f"API key is invalid or expired ({context})", game.value, status
        )
    if status == 429:
        raise ProviderUnavailableError(
            f"Rate limit exceeded ({context})", game.value, status
        )
    raise ProviderUnavailableError(
        f"Provider error {status} ({context})", game.value, status
    )


@asynccontextmanager
async def provider_call(game: Game, context: str) -> AsyncIterator[None]:
    """Map transport failures and malformed payloads to ProviderError."""
    try:
        yield
    except ProviderError:
        raise
    except httpx.TimeoutException as e:
        raise ProviderUnavailableError(f"Timed out ({context})", game.value) from e
    except httpx.HTTPError as e:
        raise ProviderUnavailableError(
            f"Network error ({context}): {e}", game.value
        ) from e
    except (KeyError, TypeError, ValueError) as e:
        raise ProviderUnavailableError(
            f"Unexpected payload ({context}): {e}", game.value
        ) from e


def win_rate(wins: int, total_games: int) -> float:
    """Win percentage rounded to 2 decimals; 0 when no games were played."""
    if total_games <= 0:
        return 0.0
    return round(wins / total_games * 100, 2)


class CompositeStatsProvider:
    """Routes each fetch to the provider registered for the game."""

    def __init__(self, providers: Mapping[Game, StatsProvider]):
        self._providers = dict(providers)

    async def fetch(self, account: Mapping[str, Any], game: Game) -> dict[str, Any]:
        provider = self._providers.get(Game(game))
        if provider is None:
            raise ProviderUnavailableError(
                f"No stats provider configured for {game}", Game(game).value
            )
        return await provider.fetch(account, game)
