"""Delivery dispatcher.

Renders one notification per batch and fans it out to every destination.
Destinations are isolated from each other: a failing destination is retried
and then marked failed, while the rest of the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from core.config import DeliveryConfig
from core.games import Game
from core.models import (
    CandidateCode,
    DeliveryOutcome,
    DeliveryStatus,
    Notification,
    NotificationRequest,
)
from core.ports import NotifierPort, RendererPort

LOGGER = logging.getLogger(__name__)


class DeliveryDispatcher:
    """Sends rendered notifications with bounded, immediate retries."""

    def __init__(
        self,
        renderer: RendererPort,
        notifier: NotifierPort,
        config: DeliveryConfig = DeliveryConfig(),
    ) -> None:
        if config.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._renderer = renderer
        self._notifier = notifier
        self._max_attempts = config.max_attempts

    async def deliver(
        self,
        game: Game,
        new_codes: Iterable[CandidateCode],
        destinations: Iterable[str],
    ) -> list[DeliveryOutcome]:
        """Deliver one batch of codes to every destination; never raises."""

        codes = list(new_codes)
        targets = list(destinations)
        if not codes:
            return []
        if not targets:
            LOGGER.info("No destinations registered for %s", game.value)
            return []

        try:
            notification = self._renderer.render(NotificationRequest.from_candidates(game, codes))
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            LOGGER.exception("Rendering %s notification failed; nothing sent", game.value)
            return [
                DeliveryOutcome(destination=destination, status=DeliveryStatus.FAILED, attempts=0, error=error)
                for destination in targets
            ]

        outcomes = await asyncio.gather(
            *(self._deliver_one(game, destination, notification) for destination in targets)
        )

        sent = sum(1 for outcome in outcomes if outcome.status is DeliveryStatus.SENT)
        LOGGER.info(
            "Delivered %s %s code(s): sent=%s failed=%s",
            len(codes),
            game.value,
            sent,
            len(outcomes) - sent,
        )
        return list(outcomes)

    async def _deliver_one(
        self,
        game: Game,
        destination: str,
        notification: Notification,
    ) -> DeliveryOutcome:
        last_error = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._notifier.send(destination, notification)
            except Exception as exc:
                last_error = str(exc) or exc.__class__.__name__
                LOGGER.warning(
                    "Send to %s failed (attempt %s/%s): %s",
                    destination,
                    attempt,
                    self._max_attempts,
                    last_error,
                )
                continue
            LOGGER.info("Sent %s codes to %s", game.value, destination)
            return DeliveryOutcome(destination=destination, status=DeliveryStatus.SENT, attempts=attempt)

        LOGGER.error(
            "Giving up on %s for %s after %s attempts",
            destination,
            game.value,
            self._max_attempts,
        )
        return DeliveryOutcome(
            destination=destination,
            status=DeliveryStatus.FAILED,
            attempts=self._max_attempts,
            error=last_error,
        )
