# src/rankup/services/notification_dispatcher.py

"""Turns leaderboard events into push messages and in-app notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rankup.clients.expo_push import (
    PUSH_BATCH_SIZE,
    PushClient,
    PushMessage,
    PushTicket,
    is_push_token,
)
from rankup.db import models
from rankup.exceptions import PushDeliveryError
from rankup.ranking.types import Direction, NotificationEvent

logger = logging.getLogger(__name__)

APP_TITLE = "RankUp"
LEADERBOARD_NOTIFICATION = "leaderboard"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PushRequest:
    """A push to one user, before their address has been resolved."""

    recipient_user_id: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    # 'leaderboard' pushes honour the user's mute preference
    category: str = LEADERBOARD_NOTIFICATION


@dataclass(frozen=True)
class DispatchResult:
    recipient_user_id: str
    status: DeliveryStatus
    reason: str | None = None
    event: NotificationEvent | None = None


def _party_suffix(event: NotificationEvent) -> str:
    return f" in {event.party_name}" if event.party_name else ""


def render_event(event: NotificationEvent) -> tuple[str, str]:
    """Derive the push title and body for an event."""
    where = _party_suffix(event)
    if event.direction == Direction.NEW_ENTRY:
        return ("Leaderboard update", f"You're #{event.new_rank}{where}!")
    if event.direction == Direction.MOVED_UP:
        return (
            "You moved up!",
            f"You climbed from #{event.old_rank} to #{event.new_rank}{where}.",
        )
    if event.cause_display_name:
        return (
            "You've been overtaken",
            f"{event.cause_display_name} passed you. "
            f"You're now #{event.new_rank}{where}.",
        )
    return ("Leaderboard update", f"You dropped to #{event.new_rank}{where}.")


def event_payload(event: NotificationEvent) -> dict[str, Any]:
    return {
        "type": LEADERBOARD_NOTIFICATION,
        "direction": event.direction.value,
        "party_id": event.party_id,
        "party_name": event.party_name,
        "subject_user_id": event.subject_user_id,
        "subject_display_name": event.subject_display_name,
        "new_rank": event.new_rank,
        "old_rank": event.old_rank,
        "cause_user_id": event.cause_user_id,
        "cause_display_name": event.cause_display_name,
    }


def event_dedup_key(event: NotificationEvent) -> str:
    recipient, subject, new_rank = event.dedup_key
    return (
        f"{LEADERBOARD_NOTIFICATION}:{event.party_id}:{recipient}:{subject}:"
        f"{event.old_rank}:{new_rank}"
    )


class NotificationDispatcher:
    """Best-effort delivery: every call returns results and never raises."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        push_client: PushClient,
        batch_size: int = PUSH_BATCH_SIZE,
        clock: Callable[[], datetime] = models.utcnow,
    ):
        self._session_factory = session_factory
        self._push_client = push_client
        self._batch_size = batch_size
        self._clock = clock

    async def dispatch(
        self, events: Sequence[NotificationEvent]
    ) -> list[DispatchResult]:
        """
        Push every event to its recipient and record it in-app.

        Returns one result per event, in order. In-app records are written
        whatever happened to the push.
        """
        if not events:
            return []

        requests = []
        for event in events:
            title, body = render_event(event)
            requests.append(
                PushRequest(
                    recipient_user_id=event.recipient_user_id,
                    title=title,
                    body=body,
                    data=event_payload(event),
                )
            )

        try:
            results = await self.dispatch_messages(requests)
        except Exception as e:
            logger.error(
                "Push dispatch failed", extra={"error": str(e)}, exc_info=True
            )
            results = [
                DispatchResult(r.recipient_user_id, DeliveryStatus.FAILED, "dispatch error")
                for r in requests
            ]

        await self.record(
            [
                (
                    e.recipient_user_id,
                    LEADERBOARD_NOTIFICATION,
                    event_dedup_key(e),
                    event_payload(e),
                )
                for e in events
            ]
        )
        return [
            DispatchResult(r.recipient_user_id, r.status, r.reason, event=e)
            for r, e in zip(results, events)
        ]

    async def dispatch_messages(
        self, requests: Sequence[PushRequest]
    ) -> list[DispatchResult]:
        """Resolve addresses, send in batches and retire dead addresses."""
        results: list[DispatchResult | None] = [None] * len(requests)

        try:
            users = await self._load_users({r.recipient_user_id for r in requests})
        except Exception as e:
            logger.error("Could not resolve push addresses", extra={"error": str(e)})
            return [
                DispatchResult(
                    r.recipient_user_id, DeliveryStatus.FAILED, "store error"
                )
                for r in requests
            ]

        outgoing: list[tuple[int, PushMessage]] = []
        for index, request in enumerate(requests):
            user = users.get(request.recipient_user_id)
            skip_reason = self._skip_reason(request, user)
            if skip_reason:
                logger.info(
                    "Skipping push",
                    extra={"user_id": request.recipient_user_id, "reason": skip_reason},
                )
                results[index] = DispatchResult(
                    request.recipient_user_id, DeliveryStatus.SKIPPED, skip_reason
                )
                continue
            outgoing.append(
                (
                    index,
                    PushMessage(
                        to=user.push_token,  # type: ignore[arg-type]
                        title=request.title,
                        body=request.body,
                        data=request.data,
                    ),
                )
            )

        dead_tokens: dict[str, str] = {}
        for start in range(0, len(outgoing), self._batch_size):
            chunk = outgoing[start : start + self._batch_size]
            tickets = await self._send_chunk([m for _, m in chunk])

            for (index, message), ticket in zip(chunk, tickets):
                request = requests[index]
                if ticket is None:
                    results[index] = DispatchResult(
                        request.recipient_user_id, DeliveryStatus.FAILED, "batch failed"
                    )
                elif ticket.ok:
                    results[index] = DispatchResult(
                        request.recipient_user_id, DeliveryStatus.SENT
                    )
                else:
                    logger.warning(
                        "Push ticket error",
                        extra={
                            "user_id": request.recipient_user_id,
                            "error": ticket.error,
                            "detail": ticket.message,
                        },
                    )
                    if ticket.is_dead_address:
                        dead_tokens[request.recipient_user_id] = message.to
                    results[index] = DispatchResult(
                        request.recipient_user_id,
                        DeliveryStatus.FAILED,
                        ticket.error or ticket.message,
                    )

        if dead_tokens:
            await self._retire_tokens(dead_tokens)

        sent = sum(1 for r in results if r and r.status == DeliveryStatus.SENT)
        logger.info(
            "Push dispatch finished",
            extra={
                "requested": len(requests),
                "sent": sent,
                "retired": len(dead_tokens),
            },
        )
        return [r for r in results if r is not None]

    async def record(
        self, notifications: Sequence[tuple[str, str, str, dict[str, Any]]]
    ) -> int:
        """
        Create in-app notification records, skipping ones that already exist.

        Each item is ``(user_id, type, dedup_key, payload)``. Returns the number
        of records created.
        """
        created = 0
        for user_id, notification_type, dedup_key, payload in notifications:
            try:
                async with self._session_factory() as db:
                    existing = await db.execute(
                        select(models.Notification.id).where(
                            models.Notification.user_id == user_id,
                            models.Notification.dedup_key == dedup_key,
                        )
                    )
                    if existing.scalar_one_or_none() is not None:
                        continue
                    db.add(
                        models.Notification(
                            user_id=user_id,
                            type=notification_type,
                            dedup_key=dedup_key,
                            payload=payload,
                            created_at=self._clock(),
                        )
                    )
                    await db.commit()
                    created += 1
            except IntegrityError:
                # Written concurrently by a redelivered signal.
                continue
            except Exception as e:
                logger.error(
                    "Failed to write in-app notification",
                    extra={"user_id": user_id, "error": str(e)},
                    exc_info=True,
                )
        return created

    def _skip_reason(
        self, request: PushRequest, user: models.User | None
    ) -> str | None:
        if user is None:
            return "user not found"
        if not user.push_token:
            return "no push token"
        if not is_push_token(user.push_token):
            return "invalid push token"
        muted = not user.wants_leaderboard_pushes()
        if request.category == LEADERBOARD_NOTIFICATION and muted:
            return "muted"
        return None

    async def _send_chunk(self, messages: list[PushMessage]) -> list[PushTicket | None]:
        try:
            return list(await self._push_client.send(messages))
        except PushDeliveryError as e:
            logger.error("Error sending push batch", extra=e.details, exc_info=True)
        except Exception as e:
            logger.error(
                "Unexpected error sending push batch",
                extra={"batch_size": len(messages), "error": str(e)},
                exc_info=True,
            )
        return [None] * len(messages)

    async def _load_users(self, user_ids: set[str]) -> dict[str, models.User]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(models.User).where(models.User.id.in_(user_ids))
            )
            return {u.id: u for u in result.scalars().all()}

    async def _retire_tokens(self, dead_tokens: dict[str, str]) -> None:
        """Clear dead addresses, unless the user has since registered a new one."""
        try:
            async with self._session_factory() as db:
                for user_id, token in dead_tokens.items():
                    user = await db.get(models.User, user_id)
                    if user is None or user.push_token != token:
                        continue
                    logger.info(
                        "Removing invalid push token", extra={"user_id": user_id}
                    )
                    user.push_token = None
                    user.push_token_updated_at = self._clock()
                await db.commit()
        except Exception as e:
            logger.error(
                "Failed to clear invalid push tokens",
                extra={"user_ids": sorted(dead_tokens), "error": str(e)},
                exc_info=True,
            )
