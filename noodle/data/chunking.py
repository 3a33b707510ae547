"""Fixed-window chunking for knowledge-base documents.

Documents are split into windows of `chunk_size` characters that advance by
`chunk_size - chunk_overlap` characters per step. The windows cover the whole
text with no gaps, so dropping the first `chunk_overlap` characters of every
chunk after the first and concatenating reproduces the input exactly.

Example:
`chunk_text("abcdefghij", chunk_size=4, chunk_overlap=1)`
-> `["abcd", "defg", "ghij", "j"]`
"""

from __future__ import annotations

from noodle.errors import ValidationError


def validate_chunking(chunk_size: int, chunk_overlap: int) -> None:
    """Reject window configurations that cannot advance."""

    if chunk_size <= 0:
        raise ValidationError("chunk_size must be > 0")
    if chunk_overlap < 0:
        raise ValidationError("chunk_overlap must be >= 0")
    if chunk_overlap >= chunk_size:
        raise ValidationError("chunk_overlap must be < chunk_size")


def chunk_text(text: str, chunk_size: int, chunk_overlap: int) -> list[str]:
    """Split `text` into overlapping fixed-size windows.

    Every window starts `chunk_size - chunk_overlap` characters after the
    previous one, and windows are emitted while their start lies inside the
    text. The final window may be shorter than `chunk_size`.
    """

    validate_chunking(chunk_size, chunk_overlap)

    stride = chunk_size - chunk_overlap
    return [text[start : start + chunk_size] for start in range(0, len(text), stride)]

