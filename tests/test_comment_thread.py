import asyncio

import pytest

from engage.engine.comments import (
    ADD_FAILED_MESSAGE,
    DELETE_FAILED_MESSAGE,
    EDIT_FAILED_MESSAGE,
    FORBIDDEN_MESSAGE,
    CommentThread,
)
from engage.errors import AuthorizationFailure, RemoteFailure
from engage.schemas.common import ActionStatus
from engage.schemas.notification import NotificationKind


def _thread(gateway, dispatcher, viewer, *, owner="owner", on_change=None) -> CommentThread:
    return CommentThread("p1", owner, viewer, gateway, dispatcher, comments=list(gateway.comments), on_change=on_change)


@pytest.mark.asyncio
async def test_create_refetches_and_notifies_post_owner(gateway, dispatcher, viewer) -> None:
    thread = _thread(gateway, dispatcher, viewer)

    result = await thread.create("  Great post!  ")
    await dispatcher.drain()

    assert result.status == ActionStatus.APPLIED
    assert [c.content for c in thread.comments] == ["Great post!"]
    assert gateway.calls_named("create_comment") == [("create_comment", "p1", "viewer", "Great post!", None, None)]
    assert gateway.calls_named("list_comments") == [("list_comments", "p1")]
    notes = gateway.effects_named("create_notification")
    assert [n.kind for n in notes] == [NotificationKind.COMMENT]
    assert notes[0].to_user_id == "owner"
    assert notes[0].comment_text == "Great post!"
    assert gateway.effects_named("award_xp") == []
    assert thread.draft == ""


@pytest.mark.asyncio
async def test_reply_strips_prefix_and_notifies_both(gateway, dispatcher, viewer) -> None:
    gateway.names["ada"] = "Ada"
    parent = gateway.add_comment("ada", "First!")
    thread = _thread(gateway, dispatcher, viewer)

    assert thread.start_reply(parent) == "@Ada "
    thread.draft += "welcome"
    result = await thread.create()
    await dispatcher.drain()

    assert result.status == ActionStatus.APPLIED
    assert gateway.calls_named("create_comment") == [("create_comment", "p1", "viewer", "welcome", parent.id, "Ada")]
    created = thread.comments[-1]
    assert created.reply_to_comment_id == parent.id
    assert created.is_reply is True
    kinds = sorted(n.kind.value for n in gateway.effects_named("create_notification"))
    assert kinds == ["comment", "comment_reply"]
    reply_note = next(n for n in gateway.effects_named("create_notification") if n.kind == NotificationKind.COMMENT_REPLY)
    assert reply_note.to_user_id == "ada"
    assert reply_note.related_comment_id == parent.id
    assert thread.replying_to is None


@pytest.mark.asyncio
async def test_reply_to_own_comment_on_own_post_notifies_nobody(gateway, dispatcher) -> None:
    from engage.schemas.common import Viewer

    owner = Viewer(user_id="owner", display_name="Olga")
    parent = gateway.add_comment("owner", "note to self")
    thread = _thread(gateway, dispatcher, owner)

    await thread.create("@owner and another", reply_to=parent)
    await dispatcher.drain()

    assert gateway.calls_named("create_comment")[0][3] == "and another"
    assert gateway.effects == []


@pytest.mark.asyncio
async def test_one_failed_notification_does_not_stop_the_other(gateway, dispatcher, viewer) -> None:
    parent = gateway.add_comment("ada", "First!")
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["create_notification"] = RuntimeError("push service down")

    result = await thread.create("hello", reply_to=parent)
    await dispatcher.drain()

    assert result.status == ActionStatus.APPLIED
    assert len(gateway.effects_named("create_notification")) == 2
    assert dispatcher.failure_count == 2
    assert [c.content for c in thread.comments] == ["First!", "hello"]


@pytest.mark.asyncio
async def test_failed_create_keeps_draft_for_retry(gateway, dispatcher, viewer) -> None:
    thread = _thread(gateway, dispatcher, viewer)
    thread.draft = "try me"
    gateway.failures["create_comment"] = RemoteFailure("server error", status_code=500)

    result = await thread.create()
    await dispatcher.drain()

    assert result.status == ActionStatus.FAILED
    assert result.error is not None
    assert result.error.message == ADD_FAILED_MESSAGE
    assert result.error.retryable is True
    assert thread.draft == "try me"
    assert thread.comments == []
    assert gateway.effects == []


@pytest.mark.asyncio
async def test_empty_comment_is_refused_locally(gateway, dispatcher, viewer) -> None:
    thread = _thread(gateway, dispatcher, viewer)

    result = await thread.create("   ")

    assert result.status == ActionStatus.FAILED
    assert result.error is not None and result.error.retryable is False
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_placeholder_is_replaced_by_refetch(gateway, dispatcher, viewer) -> None:
    snapshots: list[list] = []
    thread = _thread(gateway, dispatcher, viewer, on_change=snapshots.append)
    gateway.hold = asyncio.Event()

    task = asyncio.create_task(thread.create("optimistic", placeholder=True))
    await asyncio.sleep(0)
    assert len(thread.comments) == 1
    assert thread.comments[0].pending is True

    gateway.hold.set()
    result = await task

    assert result.status == ActionStatus.APPLIED
    assert len(thread.comments) == 1
    assert thread.comments[0].pending is False
    assert thread.comments[0].id == "c1"
    assert len(snapshots) >= 2


@pytest.mark.asyncio
async def test_placeholder_is_removed_on_failure(gateway, dispatcher, viewer) -> None:
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["create_comment"] = RemoteFailure("nope")

    await thread.create("optimistic", placeholder=True)

    assert thread.comments == []


@pytest.mark.asyncio
async def test_placeholder_swapped_for_created_comment_when_refetch_fails(gateway, dispatcher, viewer) -> None:
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["list_comments"] = RemoteFailure("flaky")

    result = await thread.create("still here", placeholder=True)

    assert result.status == ActionStatus.APPLIED
    assert [(c.id, c.pending) for c in thread.comments] == [("c1", False)]


@pytest.mark.asyncio
async def test_concurrent_create_is_rejected(gateway, dispatcher, viewer) -> None:
    thread = _thread(gateway, dispatcher, viewer)
    gateway.hold = asyncio.Event()

    first = asyncio.create_task(thread.create("one"))
    await asyncio.sleep(0)
    second = await thread.create("two")
    gateway.hold.set()
    await first

    assert second.status == ActionStatus.REJECTED
    assert len(gateway.calls_named("create_comment")) == 1


@pytest.mark.asyncio
async def test_edit_waits_for_server_then_refetches(gateway, dispatcher, viewer) -> None:
    mine = gateway.add_comment("viewer", "typo")
    thread = _thread(gateway, dispatcher, viewer)
    gateway.hold = asyncio.Event()

    task = asyncio.create_task(thread.edit(mine.id, "fixed"))
    await asyncio.sleep(0)
    assert thread.find(mine.id).content == "typo"

    gateway.hold.set()
    result = await task

    assert result.status == ActionStatus.APPLIED
    assert thread.find(mine.id).content == "fixed"
    assert thread.find(mine.id).is_edited is True
    assert gateway.effects == []


@pytest.mark.asyncio
async def test_forbidden_edit_is_fatal(gateway, dispatcher, viewer) -> None:
    theirs = gateway.add_comment("ada", "not yours")
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["edit_comment"] = AuthorizationFailure("You can only edit your own comments", status_code=403)

    result = await thread.edit(theirs.id, "hijack")

    assert result.status == ActionStatus.FAILED
    assert result.error is not None
    assert result.error.message == FORBIDDEN_MESSAGE
    assert result.error.retryable is False
    assert thread.find(theirs.id).content == "not yours"
    assert gateway.calls_named("list_comments") == []


@pytest.mark.asyncio
async def test_failed_edit_is_retryable(gateway, dispatcher, viewer) -> None:
    mine = gateway.add_comment("viewer", "typo")
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["edit_comment"] = RemoteFailure("timeout")

    result = await thread.edit(mine.id, "fixed")

    assert result.error is not None
    assert result.error.message == EDIT_FAILED_MESSAGE
    assert result.error.retryable is True


class CommentGone(RemoteFailure):
    retryable = False


@pytest.mark.asyncio
async def test_write_failure_keeps_the_error_retry_hint(gateway, dispatcher, viewer) -> None:
    mine = gateway.add_comment("viewer", "bye")
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["delete_comment"] = CommentGone("Comment not found", status_code=404)
    gateway.failures["edit_comment"] = CommentGone("Comment not found", status_code=404)

    deleted = await thread.delete(mine.id)
    edited = await thread.edit(mine.id, "fixed")

    assert deleted.error is not None
    assert deleted.error.message == DELETE_FAILED_MESSAGE
    assert deleted.error.retryable is False
    assert edited.error is not None
    assert edited.error.retryable is False


@pytest.mark.asyncio
async def test_delete_refetches_and_drops_like_controller(gateway, dispatcher, viewer) -> None:
    mine = gateway.add_comment("viewer", "bye")
    other = gateway.add_comment("ada", "stay")
    thread = _thread(gateway, dispatcher, viewer)
    assert thread.likes(mine.id).entity_id == mine.id

    result = await thread.delete(mine.id)

    assert result.status == ActionStatus.APPLIED
    assert [c.id for c in thread.comments] == [other.id]
    with pytest.raises(KeyError):
        thread.likes(mine.id)


@pytest.mark.asyncio
async def test_failed_delete_leaves_list_alone(gateway, dispatcher, viewer) -> None:
    mine = gateway.add_comment("viewer", "bye")
    thread = _thread(gateway, dispatcher, viewer)
    gateway.failures["delete_comment"] = RemoteFailure("server error", status_code=502)

    result = await thread.delete(mine.id)

    assert result.error is not None and result.error.message == DELETE_FAILED_MESSAGE
    assert [c.id for c in thread.comments] == [mine.id]


@pytest.mark.asyncio
async def test_refresh_keeps_like_controllers_and_syncs_counts(gateway, dispatcher, viewer) -> None:
    comment = gateway.add_comment("ada", "hi")
    thread = _thread(gateway, dispatcher, viewer)
    controller = thread.likes(comment.id)

    gateway.comments[0] = comment.model_copy(update={"like_count": 4})
    await thread.refresh()

    assert thread.likes(comment.id) is controller
    assert controller.state.count == 4
    assert controller.state.liked is False
