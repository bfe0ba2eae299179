# listings_viz/geocode.py
"""Resolve free-text Czech listing locations to coordinates.

Scraped locations come in a handful of shapes: a bare town ("Kolín"), a
numbered Prague district ("Praha 5"), a "City - District" pair, a comma
separated street address, or a longer phrase that merely mentions a town.
``resolve`` tries the cheap exact strategies first and falls back to a
longest-substring scan over the gazetteer.
"""
import re
from typing import Optional

from .gazetteer import CZECH_CITIES, Coordinates, Gazetteer

CAPITAL_CITY = "Praha"

_CAPITAL_DISTRICT_RE = re.compile(r"^%s\s*\d+" % CAPITAL_CITY, re.IGNORECASE)
_HOUSE_NUMBER_RE = re.compile(r"\s+\d+[a-zA-Z]?(/\d+)?$")
_COMPOUND_SEPARATOR = " - "


def direct_lookup(name: str, gazetteer: Gazetteer = CZECH_CITIES) -> Optional[Coordinates]:
    return gazetteer.lookup(name) or gazetteer.lookup_casefree(name)


def strip_house_number(part: str) -> str:
    """'Hlavní 12a/4' -> 'Hlavní'."""
    return _HOUSE_NUMBER_RE.sub("", part).strip()


def _match_address_parts(name: str, gazetteer: Gazetteer) -> Optional[Coordinates]:
    for part in (p.strip() for p in name.split(",")):
        if not part:
            continue
        coords = direct_lookup(part, gazetteer)
        if coords:
            return coords
        cleaned = strip_house_number(part)
        if cleaned and cleaned != part:
            coords = direct_lookup(cleaned, gazetteer)
            if coords:
                return coords
    return None


def _match_substring(name: str, gazetteer: Gazetteer) -> Optional[Coordinates]:
    haystack = name.lower()
    # candidates are ordered longest first, so the first hit is the longest
    for key, lowered in gazetteer.substring_candidates():
        if lowered in haystack:
            return gazetteer.lookup(key)
    return None


def resolve(raw, gazetteer: Gazetteer = CZECH_CITIES) -> Optional[Coordinates]:
    """Return coordinates for a location string, or None when unresolved.

    Never raises: anything that is not a non-blank string is unresolved.
    """
    if not isinstance(raw, str):
        return None
    name = raw.strip()
    if not name:
        return None

    coords = direct_lookup(name, gazetteer)
    if coords:
        return coords

    if _CAPITAL_DISTRICT_RE.match(name):
        coords = gazetteer.lookup(CAPITAL_CITY)
        if coords:
            return coords

    if _COMPOUND_SEPARATOR in name:
        head = name.split(_COMPOUND_SEPARATOR, 1)[0].strip()
        coords = direct_lookup(head, gazetteer) if head else None
        if coords:
            return coords

    if "," in name:
        coords = _match_address_parts(name, gazetteer)
        if coords:
            return coords

    return _match_substring(name, gazetteer)
