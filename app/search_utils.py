"""Free-text matching used to filter a collection."""

from __future__ import annotations


def matches_search(text: str | None, query: str) -> bool:
    """Return True when the query appears in the text, ignoring case.

    ``casefold`` handles accented and non-Latin titles the same way as ASCII.
    """
    needle = query.strip().casefold()
    if not needle or not text:
        return False
    return needle in text.casefold()


__all__ = ["matches_search"]
