"""
String Helpers.

Sanitising of user-supplied search text before it is interpolated into
a PostgREST filter expression or bound into a SQLite ``LIKE`` pattern.
"""

from __future__ import annotations

import re
from typing import Union

__all__ = [
    "JsonValue",
    "like_pattern",
    "sanitize_postgrest_value",
]

# ---------------------------------------------------------------------------
# Recursive JSON value type
# ---------------------------------------------------------------------------

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

# Anything that is not a word character, whitespace, or one of the
# characters that legitimately appear in names, emails and phone numbers.
_POSTGREST_UNSAFE_RE: re.Pattern[str] = re.compile(r"[^\w\s@.+\-À-ɏ]")


def sanitize_postgrest_value(value: str) -> str:
    """Strip characters unsafe for PostgREST ``or`` filter interpolation.

    Removes PostgREST separators (``,``, ``(``, ``)``, ``:``), quotes,
    backslashes and SQL wildcards (``%``, ``*``).  ``_`` survives as a
    word character; it only widens an ``ilike`` match.

    Parameters
    ----------
    value:
        The raw user-supplied search string.

    Returns
    -------
    str
        The sanitised string, stripped of surrounding whitespace.
    """
    return _POSTGREST_UNSAFE_RE.sub("", value).strip()


def like_pattern(value: str) -> str:
    """Return a ``%value%`` pattern for SQLite ``LIKE ... ESCAPE '\\'``."""
    escaped = (
        value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"
