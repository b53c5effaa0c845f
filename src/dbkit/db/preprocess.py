"""Bind preprocessing: templated query plus binds into literal SQL.

Two placeholder forms are recognized:

- ``?``      positional, numbered 0, 1, ... in order of appearance
- ``:name``  named

Placeholders inside single-quoted literals or double-quoted identifiers are
left alone, as is the ``::`` cast operator.
"""

import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

PlaceholderKey = int | str
Quoter = Callable[[PlaceholderKey, dict[Any, Any], list[Any]], str]

_TOKEN_RE = re.compile(
    r"""
    (?P<literal>'(?:[^']|'')*' | "(?:[^"]|"")*")
    | (?P<cast>::)
    | (?P<positional>\?)
    | :(?P<named>[A-Za-z_]\w*)
    """,
    re.VERBOSE,
)


def split_binds(binds: Sequence[Any]) -> tuple[dict[Any, Any], list[Any]]:
    """Separate named binds from positional ones.

    Every mapping is merged, left to right, into one name table. The
    positional list keeps its original length with ``None`` in each slot a
    mapping occupied, so indexes still line up with the caller's arguments.
    """
    names: dict[Any, Any] = {}
    positional: list[Any] = []
    for bind in binds:
        if isinstance(bind, Mapping):
            names.update(bind)
            positional.append(None)
        else:
            positional.append(bind)
    return names, positional


def resolve_bind(key: PlaceholderKey, names: Mapping[Any, Any], positional: Sequence[Any]) -> Any:
    """Look ``key`` up in the name table, then the positional list."""
    if key in names:
        return names[key]
    if isinstance(key, int) and key < len(positional):
        return positional[key]
    return None


def default_quote(value: Any) -> str:
    """Render ``value`` as a single-quoted SQL string literal.

    Embedded single quotes are doubled. ``None`` becomes the empty literal.
    """
    text = "" if value is None else str(value)
    return "'" + text.replace("'", "''") + "'"


def quote_placeholders(
    query: str,
    names: dict[Any, Any],
    positional: list[Any],
    quoter: Quoter | None = None,
) -> str:
    """Replace every placeholder in ``query`` with its quoted value.

    ``quoter`` receives ``(key, names, positional)`` once per placeholder
    and returns the literal text to splice in.
    """
    counter = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal counter
        if match.group("literal") is not None or match.group("cast") is not None:
            return match.group(0)
        key: PlaceholderKey
        if match.group("positional") is not None:
            key = counter
            counter += 1
        else:
            key = match.group("named")
        if quoter is not None:
            return quoter(key, names, positional)
        return default_quote(resolve_bind(key, names, positional))

    return _TOKEN_RE.sub(_replace, query)


def preprocess(query: str, *binds: Any, quoter: Quoter | None = None) -> str:
    """Substitute ``binds`` into ``query`` and return literal SQL."""
    names, positional = split_binds(binds)
    return quote_placeholders(query, names, positional, quoter)
