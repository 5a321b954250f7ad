from __future__ import annotations


class EngageError(Exception):
    """Base class for every error raised by the engagement engine."""


class RemoteFailure(EngageError):
    """A primary mutation or read against the collaborator API did not succeed.

    Covers transport errors, timeouts, server errors and validation rejections.
    """

    retryable = True

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class AuthorizationFailure(RemoteFailure):
    """403 from the collaborator API. Fatal for the action that caused it."""

    retryable = False


class SideEffectFailure(EngageError):
    def __init__(self, effect: str, cause: BaseException) -> None:
        super().__init__(f"{effect} failed: {cause}")
        self.effect = effect
        self.cause = cause


class RejectedConcurrent(EngageError):
    def __init__(self, entity_id: str, kind: str) -> None:
        super().__init__(f"{kind} already in flight for {entity_id}")
        self.entity_id = entity_id
        self.kind = kind


class InvalidContent(EngageError):
    pass
