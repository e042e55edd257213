"""
Section token codec.

The shared tag collection (SetlistSongTags) is a flat set of strings with no
per-gig namespace.  Gig-scoped section assignments are stored in the same
collection as ordinary descriptive tags, distinguished by a fixed prefix:

    <TOKEN_PREFIX><gig_id><TOKEN_SEPARATOR><percent-escaped section label>

e.g. ``__gig_section__:0b7c…/Dance%20Set%202``

Rules:
    1. Every consumer of the tag collection runs each value through decode().
    2. Values that decode are overlay facts; they never appear in the
       user-visible tag catalog.
    3. Values that do not decode are genuine tags.  Decoding never raises.
    4. decode(encode(g, s)) == SectionToken(g, normalize_section(s)).
"""

from __future__ import annotations

import re
from typing import Iterable, NamedTuple
from urllib.parse import quote, unquote

TOKEN_PREFIX = "__gig_section__:"
TOKEN_SEPARATOR = "/"

# Exactly the alphabet quote(..., safe="") can produce.
_ESCAPED_LABEL_RE = re.compile(r"(?:[A-Za-z0-9_.~-]|%[0-9A-Fa-f]{2})+")


class SectionToken(NamedTuple):
    """A decoded (gig_id, section) fact."""

    gig_id: str
    section: str


def normalize_section(label: str) -> str:
    """Trim and collapse internal whitespace runs to a single space."""
    return " ".join(label.split())


def token_prefix(gig_id: str) -> str:
    """Prefix shared by every token scoped to *gig_id*."""
    return f"{TOKEN_PREFIX}{gig_id}{TOKEN_SEPARATOR}"


def encode(gig_id: str, section: str) -> str:
    """
    Encode a gig-scoped section assignment as a tag value.

    Raises ValueError for an empty gig id, a gig id containing the
    separator, or a label that is blank after normalization.
    """
    if not gig_id or TOKEN_SEPARATOR in gig_id:
        raise ValueError(f"Invalid gig id for section token: {gig_id!r}")
    label = normalize_section(section)
    if not label:
        raise ValueError("Section label must not be blank")
    return token_prefix(gig_id) + quote(label, safe="")


def decode(value: object) -> SectionToken | None:
    """
    Decode a tag value.

    Returns None for anything that is not a well-formed token — such values
    are ordinary descriptive tags.
    """
    if not isinstance(value, str) or not value.startswith(TOKEN_PREFIX):
        return None
    gig_id, sep, escaped = value[len(TOKEN_PREFIX):].partition(TOKEN_SEPARATOR)
    if not sep or not gig_id or not escaped:
        return None
    if not _ESCAPED_LABEL_RE.fullmatch(escaped):
        return None
    try:
        label = normalize_section(unquote(escaped, errors="strict"))
    except UnicodeDecodeError:
        return None
    if not label:
        return None
    return SectionToken(gig_id=gig_id, section=label)


def is_section_token(value: object) -> bool:
    """True when *value* decodes as a section token."""
    return decode(value) is not None


def split_tag_values(values: Iterable[str]) -> tuple[list[SectionToken], list[str]]:
    """Partition raw tag values into (decoded tokens, genuine tags), order kept."""
    tokens: list[SectionToken] = []
    tags: list[str] = []
    for value in values:
        token = decode(value)
        if token is None:
            tags.append(value)
        else:
            tokens.append(token)
    return tokens, tags
