from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel

StateT = TypeVar("StateT")


@dataclass(slots=True)
class Viewer:
    user_id: str
    display_name: str


class ActionStatus(str, Enum):
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"
    FAILED = "failed"


class UserError(BaseModel):
    message: str
    retryable: bool = True


class ActionResult(BaseModel, Generic[StateT]):
    status: ActionStatus
    state: StateT
    error: UserError | None = None

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.APPLIED
