from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

REACTION_OPTIONS: dict[str, str] = {
    "👍": "Like",
    "🎉": "Celebrate",
    "❤️": "Love",
    "🤔": "Insightful",
    "😂": "Funny",
    "🙏": "Support",
}

MAX_REACTION_KEY_LENGTH = 10


def is_supported_reaction(key: str) -> bool:
    return bool(key) and len(key) <= MAX_REACTION_KEY_LENGTH and key in REACTION_OPTIONS


class ReactionState(BaseModel):
    """What one viewer sees for one post's reactions.

    Zero-valued entries in ``counts`` are kept (a removed reaction shows as 0)
    but two states that differ only by zero entries compare equal.
    """

    model_config = ConfigDict(frozen=True)

    counts: dict[str, int] = Field(default_factory=dict)
    viewer_reaction: str | None = None
    total_count: int = Field(default=0, ge=0)

    @property
    def has_reacted(self) -> bool:
        return self.viewer_reaction is not None

    def nonzero_counts(self) -> dict[str, int]:
        return {k: v for k, v in self.counts.items() if v}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReactionState):
            return NotImplemented
        return (
            self.viewer_reaction == other.viewer_reaction
            and self.total_count == other.total_count
            and self.nonzero_counts() == other.nonzero_counts()
        )

    __hash__ = None  # type: ignore[assignment]


class ReactionPush(BaseModel):
    """Authoritative post counters delivered by the entity-update feed."""

    counts: dict[str, int] = Field(default_factory=dict, validation_alias=AliasChoices("counts", "reactions"))
    total_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("total_count", "totalCount", "likes"))
    version: int | None = None
