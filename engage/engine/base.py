from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from engage.engine.pending import OperationKind, PendingRegistry
from engage.errors import RejectedConcurrent, RemoteFailure
from engage.schemas.common import ActionResult, ActionStatus, UserError

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT", bound=BaseModel)
PushT = TypeVar("PushT", bound=BaseModel)

Observer = Callable[[Any], None]


class OptimisticController(Generic[StateT, PushT]):
    """Client-visible state for one entity with an optimistic toggle.

    The only writers are ``apply`` (local transition or merged push) and
    ``rollback`` (full replace with the pre-mutation snapshot). Pushes that
    arrive while the toggle is in flight are buffered and merged once it
    settles.
    """

    kind: OperationKind

    def __init__(
        self,
        entity_id: str,
        initial: StateT,
        *,
        registry: PendingRegistry | None = None,
        on_change: Observer | None = None,
    ) -> None:
        self.entity_id = entity_id
        self._state = initial
        self._registry = registry if registry is not None else PendingRegistry()
        self._observers: list[Observer] = [on_change] if on_change is not None else []
        self._buffered: PushT | None = None
        self._last_version: int | None = None

    @property
    def state(self) -> StateT:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._registry.is_pending(self.entity_id, self.kind)

    @property
    def has_buffered_push(self) -> bool:
        return self._buffered is not None

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        self._observers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self._state)
            except Exception:
                logger.exception("State observer failed for %s %s", self.kind.value, self.entity_id)

    def apply(self, new_state: StateT) -> None:
        self._state = new_state
        self._notify()

    def rollback(self, snapshot: StateT) -> None:
        self._state = snapshot
        self._notify()

    # Reconciliation

    def _merge_state(self, state: StateT, push: PushT, *, settled: bool) -> StateT:
        raise NotImplementedError

    def _is_stale(self, push: PushT) -> bool:
        version = getattr(push, "version", None)
        return version is not None and self._last_version is not None and version <= self._last_version

    def reconcile(self, push: PushT) -> bool:
        """Merge an authoritative push. Returns True when applied immediately."""
        if self._is_stale(push):
            logger.debug("Dropping stale push for %s (version %s)", self.entity_id, getattr(push, "version", None))
            return False
        if self.is_pending:
            self._buffered = push
            return False
        self._merge(push)
        return True

    def _merge(self, push: PushT, *, settled: bool = False) -> None:
        version = getattr(push, "version", None)
        if version is not None:
            self._last_version = version
        self.apply(self._merge_state(self._state, push, settled=settled))

    def _flush_buffered(self) -> None:
        push = self._buffered
        self._buffered = None
        if push is not None:
            self._merge(push, settled=True)

    # Optimistic toggle

    async def _run_toggle(
        self,
        transition: Callable[[StateT], StateT],
        call: Callable[[], Awaitable[Any]],
        on_confirmed: Callable[[StateT, StateT], None],
        failure_message: str,
    ) -> ActionResult[StateT]:
        try:
            pending = self._registry.acquire(self.entity_id, self.kind, self._state)
        except RejectedConcurrent as exc:
            logger.debug("Ignoring intent: %s", exc)
            return ActionResult(status=ActionStatus.REJECTED, state=self._state)

        prior: StateT = pending.prior_state
        speculative = transition(prior)
        self.apply(speculative)

        failure: RemoteFailure | None = None
        try:
            await call()
        except RemoteFailure as exc:
            failure = exc
            self.rollback(prior)
        except BaseException:
            self.rollback(prior)
            raise
        finally:
            self._registry.release(pending)
            self._flush_buffered()

        if failure is not None:
            logger.warning(
                "%s failed for %s, rolled back: %s",
                self.kind.value,
                self.entity_id,
                failure.detail,
            )
            return ActionResult(
                status=ActionStatus.ROLLED_BACK,
                state=self._state,
                error=UserError(message=failure_message, retryable=failure.retryable),
            )

        on_confirmed(prior, speculative)
        return ActionResult(status=ActionStatus.APPLIED, state=self._state)
