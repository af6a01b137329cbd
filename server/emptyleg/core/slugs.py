"""Slug helpers for human-routable deal URLs."""

import re
from datetime import datetime

_INVALID_CHARS = re.compile(r"[^a-z0-9-]")
_DASH_RUNS = re.compile(r"-+")


def slugify(value: str) -> str:
    """Lowercase, replace anything outside [a-z0-9-] with dashes and collapse dash runs."""
    slug = _INVALID_CHARS.sub("-", value.lower())
    return _DASH_RUNS.sub("-", slug).strip("-")


def deal_slug(origin_city: str, destination_city: str, departure_at: datetime, tag: str | None = None) -> str:
    """
    Build the base slug for a deal.

    ``lagos-to-london-2026-03-01`` for human-created deals and
    ``lagos-to-london-2026-03-01-ic-4412`` when a provider tag is given.
    """
    parts = [origin_city, "to", destination_city, departure_at.strftime("%Y-%m-%d")]
    if tag:
        parts.append(tag)
    return slugify("-".join(parts))


def with_suffix(slug: str, attempt: int) -> str:
    """Disambiguate a taken slug: attempt 0 is the slug itself, then -1, -2, ..."""
    return slug if attempt == 0 else f"{slug}-{attempt}"
