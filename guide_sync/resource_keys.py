"""Resource key normalization shared by every tier."""

import re
from urllib.parse import unquote

_BEFORE_QUERY = re.compile(r"^([^?#]+)")


def normalize_resource_key(raw: str | None) -> str:
    """
    Turn a route parameter or user input into a clean resource key.

    Decodes percent-escapes, drops anything from the first `?` or `#`
    (e.g. `utm_source=pwa` noise), strips trailing slashes and lowercases.
    Returns "" for empty input.
    """
    if not raw:
        return ""
    decoded = unquote(raw.strip())
    match = _BEFORE_QUERY.match(decoded)
    clean = match.group(1) if match else ""
    return clean.rstrip("/").strip().lower()


def normalize_city_id(raw: str | None) -> str:
    """City ids for ancillary feeds: trimmed and lowercased, nothing else."""
    return (raw or "").strip().lower()


def format_city_label(city_id: str) -> str:
    """Render `lisbon-portugal` as `Lisbon, Portugal` for placeholders."""
    parts = [w[:1].upper() + w[1:] for w in city_id.split("-") if w]
    if len(parts) < 2:
        return " ".join(parts)
    return f"{' '.join(parts[:-1])}, {parts[-1]}"
