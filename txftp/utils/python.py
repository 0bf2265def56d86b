from __future__ import annotations


def to_bytes(
    text: str | bytes, encoding: str | None = None, errors: str = "strict"
) -> bytes:
    """Encode ``text`` unless it already is ``bytes``"""
    if isinstance(text, bytes):
        return text
    if not isinstance(text, str):
        raise TypeError(
            f"to_bytes must receive a str or bytes object, got {type(text).__name__}"
        )
    return text.encode(encoding or "utf-8", errors)
