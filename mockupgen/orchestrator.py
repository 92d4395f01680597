"""
orchestrator.py — Four-slot generation state machine.

Per slot:   PENDING → LOADING → SUCCEEDED | FAILED
            SUCCEEDED | FAILED → LOADING   (redo, or a new batch)

start_batch() dispatches the four requests one at a time, in position order,
with a fixed pacing sleep between them (Gemini image quota is tight).
redo_slot() re-arms a single slot and dispatches at once, alongside whatever
else is running.

Every outcome is applied only if the slot still carries the identity the
request was issued under. Superseded requests are not cancelled on the wire;
their results are simply dropped when they arrive.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Coroutine, List, Optional, Set, Tuple

from .errors import GenerationError, UnknownGenerationError
from .generator import MockupGenerator
from .prompts import MockupCategory
from .slots import GenerationRequest, ResultSlot, SlotStatus

logger = logging.getLogger(__name__)

DEFAULT_SLOT_COUNT     = 4
DEFAULT_PACING_SECONDS = 1.0

SlotListener = Callable[[Tuple[ResultSlot, ...]], None]
SleepFn = Callable[[float], Awaitable[None]]


class SlotOrchestrator:
    """Owns the current batch of result slots and every request feeding it."""

    def __init__(
        self,
        generator: MockupGenerator,
        slot_count: int = DEFAULT_SLOT_COUNT,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.generator = generator
        self.slot_count = slot_count
        self.pacing_seconds = pacing_seconds
        self._sleep = sleep
        self._slots: Tuple[ResultSlot, ...] = ()
        self._identities = itertools.count(1)
        self._batch_counter = 0
        self._listeners: List[SlotListener] = []
        self._tasks: Set[asyncio.Task] = set()

    # ── Read side ─────────────────────────────────────────────────────────────

    @property
    def slots(self) -> Tuple[ResultSlot, ...]:
        return self._slots

    @property
    def has_started(self) -> bool:
        return bool(self._slots)

    @property
    def is_generating(self) -> bool:
        return any(s.is_busy for s in self._slots)

    def slot(self, position: int) -> Optional[ResultSlot]:
        if 0 <= position < len(self._slots):
            return self._slots[position]
        return None

    def succeeded(self) -> List[ResultSlot]:
        return [s for s in self._slots if s.succeeded]

    def subscribe(self, listener: SlotListener) -> Callable[[], None]:
        """Register a re-render callback; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def wait_idle(self) -> None:
        """Wait until every batch and redo started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Entry points ──────────────────────────────────────────────────────────

    def start_batch(
        self,
        source_image: Optional[str],
        category: MockupCategory,
        description: str = "",
    ) -> Optional[asyncio.Task]:
        """Replace all slots with a fresh batch and start dispatching it."""
        if not source_image:
            return None

        self._batch_counter += 1
        batch_id = self._batch_counter
        fresh = tuple(
            ResultSlot(identity=self._next_identity(), position=i, status=SlotStatus.PENDING)
            for i in range(self.slot_count)
        )
        self._publish(fresh)
        request = GenerationRequest(
            source_image=source_image, category=category, description=description
        )
        tickets = tuple((s.position, s.identity) for s in fresh)
        logger.info("Batch %d started — %d slots, %s", batch_id, len(fresh), request.category.value)
        return self._spawn(self._run_batch(batch_id, tickets, request), f"mockup-batch-{batch_id}")

    def redo_slot(
        self,
        position: int,
        source_image: Optional[str],
        category: MockupCategory,
        description: str = "",
    ) -> Optional[asyncio.Task]:
        """Re-arm one slot under a new identity and dispatch it immediately."""
        if not source_image or self.slot(position) is None:
            return None

        identity = self._next_identity()
        self._set_slot(
            position,
            ResultSlot(identity=identity, position=position, status=SlotStatus.LOADING),
        )
        request = GenerationRequest(
            source_image=source_image, category=category, description=description
        )
        logger.info("Redo slot %d (identity %d)", position, identity)
        return self._spawn(self._dispatch(position, identity, request), f"mockup-redo-{identity}")

    # ── Internals ─────────────────────────────────────────────────────────────

    def _next_identity(self) -> int:
        return next(self._identities)

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_current(self, position: int, identity: int) -> bool:
        current = self.slot(position)
        return current is not None and current.identity == identity

    def _publish(self, slots: Tuple[ResultSlot, ...]) -> None:
        self._slots = slots
        for listener in list(self._listeners):
            try:
                listener(slots)
            except Exception:
                logger.exception("Slot listener failed")

    def _set_slot(self, position: int, slot: ResultSlot) -> None:
        updated = list(self._slots)
        updated[position] = slot
        self._publish(tuple(updated))

    def _apply(
        self,
        position: int,
        identity: int,
        transform: Callable[[ResultSlot], ResultSlot],
    ) -> bool:
        """Apply transform to the slot only if identity still matches."""
        if not self._is_current(position, identity):
            logger.debug("Dropping stale outcome for slot %d (identity %d)", position, identity)
            return False
        self._set_slot(position, transform(self._slots[position]))
        return True

    async def _run_batch(
        self,
        batch_id: int,
        tickets: Tuple[Tuple[int, int], ...],
        request: GenerationRequest,
    ) -> None:
        dispatched = 0
        for position, identity in tickets:
            if batch_id != self._batch_counter:
                logger.info("Batch %d superseded — stopping dispatch", batch_id)
                return
            if not self._is_current(position, identity):
                # a redo already took this slot over
                continue
            if dispatched:
                await self._sleep(self.pacing_seconds)
                if not self._is_current(position, identity):
                    continue
            self._apply(position, identity, ResultSlot.loading)
            await self._dispatch(position, identity, request)
            dispatched += 1
        logger.info("Batch %d finished dispatching (%d requests)", batch_id, dispatched)

    async def _dispatch(self, position: int, identity: int, request: GenerationRequest) -> None:
        try:
            image = await self.generator.generate(
                request.source_image, request.category, request.description
            )
        except GenerationError as exc:
            self._fail(position, identity, exc)
        except Exception as exc:
            logger.exception("Unexpected generator failure on slot %d", position)
            self._fail(position, identity, UnknownGenerationError(f"{type(exc).__name__}: {exc}"))
        else:
            if self._apply(position, identity, lambda s: s.with_image(image)):
                logger.info("Slot %d ready (identity %d)", position, identity)

    def _fail(self, position: int, identity: int, exc: GenerationError) -> None:
        if self._apply(position, identity, lambda s: s.with_error(exc.user_message, exc.kind)):
            logger.warning("Slot %d failed (%s): %s", position, exc.kind.value, exc)
