# src/rankup/clients/expo_push.py

"""Push delivery through the Expo push notification service."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from rankup.exceptions import PushDeliveryError

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_ACCESS_TOKEN = os.getenv("EXPO_ACCESS_TOKEN", "")

# Expo accepts at most 100 messages per request.
PUSH_BATCH_SIZE = 100

DEAD_ADDRESS_ERRORS = frozenset({"DeviceNotRegistered"})

_TOKEN_PATTERN = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[.+\]$")


def is_push_token(token: str | None) -> bool:
    """Whether ``token`` looks like an Expo push token."""
    return bool(token) and bool(_TOKEN_PATTERN.match(token))  # type: ignore[arg-type]


@dataclass(frozen=True)
class PushMessage:
    to: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "sound": "default",
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "badge": 1,
            "priority": "high",
        }


@dataclass(frozen=True)
class PushTicket:
    """Delivery result for one message, in request order."""

    status: str
    message: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def is_dead_address(self) -> bool:
        """The address will never accept pushes again and should be dropped."""
        return not self.ok and self.error in DEAD_ADDRESS_ERRORS

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PushTicket":
        details = payload.get("details") or {}
        return cls(
            status=payload.get("status", "error"),
            message=payload.get("message"),
            error=details.get("error"),
        )


class PushClient(Protocol):
    async def send(self, messages: list[PushMessage]) -> list[PushTicket]:
        ...


class ExpoPushClient:
    """Sends one batch per call; the caller chunks to PUSH_BATCH_SIZE."""

    def __init__(
        self,
        url: str = EXPO_PUSH_URL,
        access_token: str = EXPO_ACCESS_TOKEN,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url
        self._access_token = access_token
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, messages: list[PushMessage]) -> list[PushTicket]:
        if not messages:
            return []
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        try:
            response = await self._client.post(
                self._url,
                json=[m.to_payload() for m in messages],
                headers=headers,
            )
            response.raise_for_status()
            tickets = response.json()["data"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise PushDeliveryError(
                f"Push batch failed: {e}", batch_size=len(messages)
            ) from e

        if len(tickets) != len(messages):
            raise PushDeliveryError(
                f"Expected {len(messages)} tickets, got {len(tickets)}",
                batch_size=len(messages),
            )
        return [PushTicket.from_payload(t) for t in tickets]
