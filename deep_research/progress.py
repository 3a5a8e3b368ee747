"""Append-only progress log and cooperative cancellation for a research run."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from deep_research.models import AgentPersona, ResearchUpdate, UpdateType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResearchCancelled(Exception):
    """Raised at a suspension point once the run's cancellation signal is set."""


class UpdateLog:
    """Ordered record of every progress update emitted during one run.

    Ids come from a single counter and are assigned in the same synchronous
    step as the append, so the log order is the emission order even when
    searches run concurrently on the event loop.
    """

    def __init__(
        self,
        on_update: Callable[[ResearchUpdate], None] | None = None,
        start_id: int = 0,
    ) -> None:
        self._updates: list[ResearchUpdate] = []
        self._next_id = start_id
        self._on_update = on_update

    def emit(
        self,
        update_type: UpdateType,
        content: str | list[str],
        persona: AgentPersona | None = None,
    ) -> ResearchUpdate:
        update = ResearchUpdate(id=self._next_id, type=update_type, content=content, persona=persona)
        self._next_id += 1
        self._updates.append(update)
        logger.debug("Update %d [%s]%s", update.id, update.type.value, f" {persona.value}" if persona else "")
        if self._on_update:
            self._on_update(update)
        return update

    @property
    def updates(self) -> tuple[ResearchUpdate, ...]:
        return tuple(self._updates)

    def of_type(self, update_type: UpdateType) -> list[ResearchUpdate]:
        return [u for u in self._updates if u.type is update_type]

    def __len__(self) -> int:
        return len(self._updates)


class CancellationToken:
    """Cancellation signal shared by every suspending call of one run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ResearchCancelled("The research process was cancelled.")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await a call, abandoning it as soon as the signal is set.

        Checks the signal before and after the call.

        Raises:
            ResearchCancelled: If the signal is set before, during or after the call.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ResearchCancelled("The research process was cancelled.")
        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()
        if not call.done():
            call.cancel()
            await asyncio.wait({call})
            raise ResearchCancelled("The research process was cancelled.")
        result = call.result()
        self.raise_if_cancelled()
        return result
