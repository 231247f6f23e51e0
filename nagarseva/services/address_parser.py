"""City extraction from free-text Indian addresses.

Citizens type addresses in every imaginable format ("Flat 4, MG Road,
Bombay - 400001", "near bus stand\\nLucknow UP", ...).  The mapping table is
keyed by canonical city name, so before resolution we pull the most
plausible city out of the address.  Strategies run in order and the first
one that produces a city wins:

1. Alias lookup of each delimiter-separated segment (exact, then substring).
2. ``<city>, <state>`` pairs.
3. The segment immediately before a 6-digit pincode.
4. The first segment that is not numeric, too short, or a landmark/street word.
5. The longest remaining meaningful segment.

Everything here is pure and total: bad input yields ``"Unknown"``, never
an exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from config.cities import CITY_ALIASES, INDIAN_STATES, NON_CITY_WORDS, STRUCTURAL_WORDS

UNKNOWN_CITY: Final[str] = "Unknown"

_SEGMENT_SPLIT: Final[re.Pattern[str]] = re.compile(r"[,\n\r\-|]")
_PINCODE: Final[re.Pattern[str]] = re.compile(r"\b(\d{6})\b")
_BEFORE_PINCODE: Final[re.Pattern[str]] = re.compile(r"(.+?)\s*\b\d{6}\b", re.DOTALL)
_NUMERIC: Final[re.Pattern[str]] = re.compile(r"^\d+$")
_NO_LETTERS: Final[re.Pattern[str]] = re.compile(r"^[^a-zA-Z]+$")

_LOWER_STATES: Final[tuple[str, ...]] = tuple(state.lower() for state in INDIAN_STATES)

# Segments shorter than this only count as an alias when they match exactly.
_MIN_PARTIAL_LENGTH: Final[int] = 3


@dataclass(frozen=True, slots=True)
class ParsedAddress:
    city: str
    full_address: str
    state: str | None = None
    pincode: str | None = None


def _segments(address: str) -> list[str]:
    return [part.strip() for part in _SEGMENT_SPLIT.split(address.lower()) if part.strip()]


def _title(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" "))


def _lookup_alias(segment: str) -> str | None:
    """Exact alias hit, else substring containment in either direction."""
    if segment in CITY_ALIASES:
        return CITY_ALIASES[segment]
    for alias, city in CITY_ALIASES.items():
        if alias in segment:
            return city
        if len(segment) >= _MIN_PARTIAL_LENGTH and segment in alias:
            return city
    return None


def _is_state(segment: str) -> bool:
    return any(state == segment or state in segment for state in _LOWER_STATES)


def _is_meaningful(segment: str) -> bool:
    return len(segment) >= 3 and not _NUMERIC.match(segment) and not _PINCODE.search(segment)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _from_aliases(parts: list[str]) -> str | None:
    for part in parts:
        city = _lookup_alias(part)
        if city is not None:
            return city
    return None


def _from_state_pairs(parts: list[str]) -> str | None:
    for current, following in zip(parts, parts[1:]):
        if _is_state(following) and current in CITY_ALIASES:
            return CITY_ALIASES[current]
    return None


def _from_pincode(address: str) -> str | None:
    match = _BEFORE_PINCODE.search(address.lower())
    if match is None:
        return None
    before = [p.strip() for p in re.split(r"[,\-|\n\r]", match.group(1)) if p.strip()]
    if before and before[-1] in CITY_ALIASES:
        return CITY_ALIASES[before[-1]]
    return None


def _from_heuristics(parts: list[str]) -> str | None:
    for part in parts:
        if not _is_meaningful(part):
            continue
        if any(word in part for word in STRUCTURAL_WORDS):
            continue
        return _title(part)
    return None


def _from_longest(parts: list[str]) -> str | None:
    meaningful = [part for part in parts if _is_meaningful(part)]
    if not meaningful:
        return None
    return _title(max(meaningful, key=len))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_city(address: object) -> str:
    """Return the best-effort canonical city for *address*, or ``"Unknown"``."""
    if not isinstance(address, str) or not address.strip():
        return UNKNOWN_CITY

    parts = _segments(address)
    for candidate in (
        _from_aliases(parts),
        _from_state_pairs(parts),
        _from_pincode(address),
        _from_heuristics(parts),
        _from_longest(parts),
    ):
        if candidate:
            return candidate
    return UNKNOWN_CITY


def normalize(address: object) -> ParsedAddress:
    """Parse *address* into city, state and pincode components."""
    if not isinstance(address, str) or not address.strip():
        return ParsedAddress(city=UNKNOWN_CITY, full_address=address if isinstance(address, str) else "")

    pincode_match = _PINCODE.search(address)
    lowered = address.lower()
    state = next(
        (name for name, lower in zip(INDIAN_STATES, _LOWER_STATES) if lower in lowered),
        None,
    )
    return ParsedAddress(
        city=extract_city(address),
        state=state,
        pincode=pincode_match.group(1) if pincode_match else None,
        full_address=address.strip(),
    )


def is_valid_city_name(name: object) -> bool:
    """Whether *name* plausibly names a city (used to reject placeholder values)."""
    if not isinstance(name, str) or len(name.strip()) < 2:
        return False

    lowered = name.strip().lower()
    if lowered in CITY_ALIASES or any(city.lower() == lowered for city in CITY_ALIASES.values()):
        return True
    if _NUMERIC.match(lowered) or _NO_LETTERS.match(lowered):
        return False
    return lowered not in NON_CITY_WORDS
