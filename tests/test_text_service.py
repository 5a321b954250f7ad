import pytest

from engage.errors import InvalidContent
from engage.services.text import clean_comment, reply_prefix, snippet, strip_reply_prefix


def test_reply_prefix_and_strip() -> None:
    assert reply_prefix(" Ada ") == "@Ada "
    assert strip_reply_prefix("@Ada thanks!", "Ada") == "thanks!"
    assert strip_reply_prefix("@Ada", "Ada") == ""
    assert strip_reply_prefix("@Adam thanks", "Ada") == "@Adam thanks"
    assert strip_reply_prefix("hi @Ada", "Ada") == "hi @Ada"
    assert strip_reply_prefix("@A.B ok", "A.B") == "ok"


def test_clean_comment_trims_and_drops_control_chars() -> None:
    assert clean_comment("  hello\x07 world \n") == "hello world"
    assert clean_comment("line one\nline two") == "line one\nline two"


def test_clean_comment_rejects_empty_and_too_long() -> None:
    with pytest.raises(InvalidContent):
        clean_comment(" \t ")
    with pytest.raises(InvalidContent, match="limited to 5"):
        clean_comment("toolong", max_length=5)


def test_snippet_truncates_with_ellipsis() -> None:
    assert snippet("short") == "short"
    cut = snippet("x" * 300)
    assert len(cut) == 200
    assert cut.endswith("…")
