from __future__ import annotations

from typing import Any

import httpx

from engage.core.config import settings
from engage.errors import AuthorizationFailure, RemoteFailure
from engage.schemas.comment import Comment
from engage.schemas.notification import NotificationIn, XpChange


def _headers(token: str | None) -> dict[str, str]:
    headers = {
        "Accept": "application/json",
        "User-Agent": "CircleEngage/1.0",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _detail(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        return res.text[:200] or f"HTTP {res.status_code}"
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {res.status_code}"


def _comment_out(raw: Any) -> Comment:
    if not isinstance(raw, dict):
        raise RemoteFailure("Malformed comment in response")
    try:
        return Comment.model_validate(raw)
    except ValueError as exc:
        raise RemoteFailure("Malformed comment in response") from exc


class ApiGateway:
    """HTTP client for the collaborator REST API.

    Every primary call either returns the confirmed result or raises
    ``RemoteFailure`` (``AuthorizationFailure`` for 403). Timeouts and
    transport errors are folded into ``RemoteFailure`` so callers only ever
    handle one failure type.
    """

    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._headers = _headers(token)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_root,
            timeout=timeout or settings.api_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            res = await self._client.request(method, path, json=json, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise RemoteFailure(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise RemoteFailure(f"{method} {path} failed: {exc}") from exc

        if res.status_code == 403:
            raise AuthorizationFailure(_detail(res), status_code=403)
        if res.status_code >= 400:
            raise RemoteFailure(_detail(res), status_code=res.status_code)

        if not res.content:
            return {}
        try:
            payload = res.json()
        except ValueError as exc:
            raise RemoteFailure(f"{method} {path} returned invalid JSON", status_code=res.status_code) from exc
        if not isinstance(payload, dict):
            return {}
        if payload.get("success") is False:
            raise RemoteFailure(_detail(res), status_code=res.status_code)
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    # Primary mutations

    async def toggle_reaction(self, post_id: str, viewer_id: str, emoji: str) -> None:
        await self._request("POST", f"/posts/{post_id}/reactions", json={"emoji": emoji, "userId": viewer_id})

    async def toggle_comment_like(self, comment_id: str, viewer_id: str) -> bool | None:
        data = await self._request("POST", f"/comments/{comment_id}/like", json={"userId": viewer_id})
        liked = data.get("liked")
        return liked if isinstance(liked, bool) else None

    async def create_comment(
        self,
        post_id: str,
        author_id: str,
        content: str,
        *,
        reply_to_comment_id: str | None = None,
        reply_to_author_name: str | None = None,
    ) -> Comment:
        body: dict[str, Any] = {"content": content, "userId": author_id}
        if reply_to_comment_id:
            body["replyToCommentId"] = reply_to_comment_id
            if reply_to_author_name:
                body["replyToUserName"] = reply_to_author_name
        data = await self._request("POST", f"/posts/{post_id}/comments", json=body)
        return _comment_out(data.get("comment"))

    async def edit_comment(self, comment_id: str, content: str) -> Comment:
        data = await self._request("PUT", f"/comments/{comment_id}", json={"content": content})
        return _comment_out(data.get("comment"))

    async def delete_comment(self, comment_id: str) -> None:
        await self._request("DELETE", f"/comments/{comment_id}")

    async def list_comments(self, post_id: str) -> list[Comment]:
        data = await self._request("GET", f"/posts/{post_id}/comments")
        rows = data.get("comments") or []
        if not isinstance(rows, list):
            raise RemoteFailure("Malformed comment list in response")
        return [_comment_out(row) for row in rows]

    # Best-effort sinks, called only by the side-effect dispatcher

    async def award_xp(self, change: XpChange) -> None:
        await self._request(
            "POST",
            f"/users/{change.user_id}/xp",
            json={"amount": change.amount, "reason": change.reason.value},
        )

    async def deduct_xp(self, change: XpChange) -> None:
        await self._request(
            "POST",
            f"/users/{change.user_id}/xp/deduct",
            json={"amount": change.amount, "reason": change.reason.value},
        )

    async def create_notification(self, notification: NotificationIn) -> None:
        body: dict[str, Any] = {
            "type": notification.kind.value,
            "toUserId": notification.to_user_id,
            "fromUserId": notification.from_user_id,
            "message": notification.message,
        }
        if notification.related_post_id:
            body["relatedPostId"] = notification.related_post_id
        if notification.related_comment_id:
            body["relatedCommentId"] = notification.related_comment_id
        if notification.comment_text:
            body["commentText"] = notification.comment_text
        await self._request("POST", "/notifications", json=body)
