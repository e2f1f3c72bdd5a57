"""Reference numbers for new service requests and back-office usernames."""

import re
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone

REFERENCE_PREFIX = "SSR"


def _current_year() -> int:
    return datetime.now(timezone.utc).year


def generate_reference_number(sequence: int, year: int | None = None) -> str:
    """Format a request reference, e.g. ``SSR-2025-001``."""
    if sequence < 1:
        raise ValueError("sequence must be positive")
    year = year or _current_year()
    return f"{REFERENCE_PREFIX}-{year}-{sequence:03d}"


def _sequence_of(reference: str) -> int:
    parts = reference.split("-")
    if len(parts) < 3:
        return 0
    try:
        return int(parts[2])
    except ValueError:
        return 0


def next_sequential_number(existing: Iterable[str], year: int | None = None) -> int:
    """Return the next sequence for *year* given the references already issued.

    Sequences restart at 1 each year.  Malformed references count as 0.
    """
    year_str = str(year or _current_year())
    this_year = [
        ref for ref in existing if len(ref.split("-")) > 1 and ref.split("-")[1] == year_str
    ]
    if not this_year:
        return 1
    return max(_sequence_of(ref) for ref in this_year) + 1


def generate_username(full_name: str) -> str:
    """Username from a full name: 6 letters of the last name + first initial.

    ``"Kwame Mensah-Boateng"`` -> ``"mensahk"``.
    """
    parts = full_name.split()
    if not parts:
        raise ValueError("full_name is required")
    last = re.sub(r"[^a-z]", "", parts[-1].lower())[:6]
    initial = re.sub(r"[^a-z]", "", parts[0].lower())[:1]
    username = f"{last}{initial}"
    if not username:
        raise ValueError(f"Cannot derive a username from {full_name!r}")
    return username


async def generate_unique_username(
    full_name: str,
    is_unique: Callable[[str], Awaitable[bool]],
    max_attempts: int = 1000,
) -> str:
    """Return the first of ``base``, ``base1``, ``base2``... that *is_unique* accepts."""
    base = generate_username(full_name)
    candidate = base
    for counter in range(1, max_attempts + 1):
        if await is_unique(candidate):
            return candidate
        candidate = f"{base}{counter}"
    raise RuntimeError(f"No unique username for {full_name!r} after {max_attempts} attempts")
