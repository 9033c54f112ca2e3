"""
Helpers for reading loosely-shaped JSON returned by biliup.

biliup proxies several Bilibili endpoints and its response shapes differ
between versions, so fields are located by trying an ordered list of names
at the top level and then inside a nested ``data`` object.
"""

from typing import Any, Iterable, Optional

MAX_NESTING = 5


def extract_field(payload: Any, names: Iterable[str], _depth: int = 0) -> Optional[str]:
    """
    Return the first non-null field among ``names`` as a string.

    Top-level keys win over nested ones; ``data`` is searched recursively.
    Returns None for non-dict payloads or when nothing matches.
    """
    if not isinstance(payload, dict) or _depth > MAX_NESTING:
        return None

    names = tuple(names)
    for name in names:
        value = payload.get(name)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text

    if "data" in payload:
        return extract_field(payload["data"], names, _depth + 1)
    return None


def has_any_field(payload: Any, names: Iterable[str]) -> bool:
    """True if any of ``names`` is present with a non-null value."""
    if not isinstance(payload, dict):
        return False
    return any(payload.get(name) not in (None, "") for name in names)


def as_int(value: Any) -> Optional[int]:
    """Lenient int conversion; None for anything non-numeric."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def as_text(value: Any) -> str:
    """Lowercased string form used for keyword checks."""
    if value is None:
        return ""
    return str(value).lower()
