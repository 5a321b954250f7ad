from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from engage.errors import RejectedConcurrent


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationKind(str, Enum):
    REACTION_TOGGLE = "reaction-toggle"
    COMMENT_LIKE_TOGGLE = "comment-like-toggle"
    COMMENT_CREATE = "comment-create"
    COMMENT_EDIT = "comment-edit"
    COMMENT_DELETE = "comment-delete"


@dataclass(slots=True)
class PendingMutation:
    entity_id: str
    kind: OperationKind
    prior_state: Any
    requested_at: datetime = field(default_factory=utcnow)


class PendingRegistry:
    """Single-flight bookkeeping: one in-flight mutation per (entity, operation).

    Different operations on the same entity, and the same operation on
    different entities, never block each other.
    """

    def __init__(self) -> None:
        self._inflight: dict[tuple[str, OperationKind], PendingMutation] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    def acquire(self, entity_id: str, kind: OperationKind, prior_state: Any) -> PendingMutation:
        key = (entity_id, kind)
        if key in self._inflight:
            raise RejectedConcurrent(entity_id, kind.value)
        pending = PendingMutation(entity_id=entity_id, kind=kind, prior_state=prior_state)
        self._inflight[key] = pending
        return pending

    def release(self, pending: PendingMutation) -> None:
        key = (pending.entity_id, pending.kind)
        if self._inflight.get(key) is pending:
            del self._inflight[key]

    def get(self, entity_id: str, kind: OperationKind) -> PendingMutation | None:
        return self._inflight.get((entity_id, kind))

    def is_pending(self, entity_id: str, kind: OperationKind) -> bool:
        return (entity_id, kind) in self._inflight
