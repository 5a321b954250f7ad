from __future__ import annotations

from engage.core.config import settings
from engage.engine.base import Observer, OptimisticController
from engage.engine.pending import OperationKind, PendingRegistry
from engage.schemas.common import ActionResult, ActionStatus, UserError, Viewer
from engage.schemas.reaction import ReactionPush, ReactionState, is_supported_reaction
from engage.services.gateway import ApiGateway
from engage.services.side_effects import SideEffectDispatcher

REACTION_FAILED_MESSAGE = "Failed to update reaction. Please try again."
UNSUPPORTED_REACTION_MESSAGE = "This reaction is not available."


def toggle_reaction_state(state: ReactionState, emoji: str) -> ReactionState:
    counts = dict(state.counts)
    total = state.total_count
    current = state.viewer_reaction

    if current == emoji:
        counts[emoji] = max(0, counts.get(emoji, 0) - 1)
        return ReactionState(counts=counts, viewer_reaction=None, total_count=max(0, total - 1))

    if current is not None:
        # Swap: the viewer still has exactly one reaction, so the total stays put.
        counts[current] = max(0, counts.get(current, 0) - 1)
    else:
        total += 1
    counts[emoji] = counts.get(emoji, 0) + 1
    return ReactionState(counts=counts, viewer_reaction=emoji, total_count=total)


def merge_reaction_push(state: ReactionState, push: ReactionPush, *, settled: bool = False) -> ReactionState:
    """Use the push as the new baseline, keeping the viewer's own reaction.

    With nothing in flight the push is taken as-is; a viewer reaction the
    server no longer counts is dropped. Right after a toggle settles, a
    baseline that does not yet include the viewer's reaction gets it
    re-added, so a completed action never disappears from view.
    """
    counts = {k: max(0, int(v)) for k, v in push.counts.items()}
    total = push.total_count
    mine = state.viewer_reaction
    if mine is not None and counts.get(mine, 0) < 1:
        if not settled:
            return ReactionState(counts=counts, viewer_reaction=None, total_count=total)
        counts[mine] = counts.get(mine, 0) + 1
        total += 1
    return ReactionState(counts=counts, viewer_reaction=mine, total_count=total)


class ReactionController(OptimisticController[ReactionState, ReactionPush]):
    kind = OperationKind.REACTION_TOGGLE

    def __init__(
        self,
        post_id: str,
        post_owner_id: str,
        viewer: Viewer,
        gateway: ApiGateway,
        dispatcher: SideEffectDispatcher,
        *,
        initial: ReactionState | None = None,
        registry: PendingRegistry | None = None,
        on_change: Observer | None = None,
    ) -> None:
        if initial is None:
            initial = ReactionState()
        super().__init__(post_id, initial, registry=registry, on_change=on_change)
        self.post_owner_id = post_owner_id
        self.viewer = viewer
        self._gateway = gateway
        self._dispatcher = dispatcher

    def _merge_state(self, state: ReactionState, push: ReactionPush, *, settled: bool) -> ReactionState:
        return merge_reaction_push(state, push, settled=settled)

    async def toggle(self, emoji: str) -> ActionResult[ReactionState]:
        if not is_supported_reaction(emoji):
            return ActionResult(
                status=ActionStatus.FAILED,
                state=self.state,
                error=UserError(message=UNSUPPORTED_REACTION_MESSAGE, retryable=False),
            )

        def _confirmed(prior: ReactionState, _applied: ReactionState) -> None:
            # Removing or re-tapping the same reaction earns nothing.
            if prior.viewer_reaction != emoji:
                self._dispatcher.reaction_added(
                    post_id=self.entity_id,
                    post_owner_id=self.post_owner_id,
                    actor=self.viewer,
                )

        return await self._run_toggle(
            lambda prior: toggle_reaction_state(prior, emoji),
            lambda: self._gateway.toggle_reaction(self.entity_id, self.viewer.user_id, emoji),
            _confirmed,
            REACTION_FAILED_MESSAGE,
        )

    async def quick_react(self) -> ActionResult[ReactionState]:
        return await self.toggle(settings.default_reaction)
