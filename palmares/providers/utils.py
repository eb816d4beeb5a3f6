"""Shared utilities for provider modules.

Text normalisation (accents, tags, title case, slugs), dancer name
reconstruction, season boundaries, competition merging, serial task
execution and request error wrapping.
"""

from __future__ import annotations

import contextlib
import hashlib
import html
import re
import unicodedata
from datetime import date
from typing import Awaitable, Callable, Iterable, Iterator, TypeVar

import httpx

from palmares.providers.base import ProviderError
from palmares.schemas import Competition

T = TypeVar("T")

UNKNOWN_COUPLE = "couple inconnu"

# Dancers of a couple are separated by a line break in ranking cells
_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")

# Characters continuing a multi-word or hyphenated surname
_SEPARATORS = {" ", "'", "-"}

# Same capitalisation rule as underscore.string's titleize, which the
# stored competition places were produced with
_TITLE_RE = re.compile(r"(?:^|\s|-)\S")

_SLUG_UNSAFE_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_DASH_RE = re.compile(r"[-_\s]+")

# Letters with no decomposed form, spelled the way stored slugs were built
_SLUG_LETTERS = str.maketrans({
    "ß": "ss",
    "æ": "a",
    "Æ": "A",
    "ð": "o",
    "Ð": "O",
    "ø": "o",
    "Ø": "O",
    "ł": "l",
    "Ł": "L",
})

# Windows-1252 code points that end up in text decoded as Latin-1
_UNALLOWED = str.maketrans({
    "\x80": "EUR",
    "\x82": ",",
    "\x84": '"',
    "\x85": "...",
    "\x8c": "OE",
    "\x91": "'",
    "\x92": "'",
    "\x93": '"',
    "\x94": '"',
    "\x96": "-",
    "\x97": "-",
    "\x9c": "oe",
    "\xa0": " ",
})

POINT_CONTEST_LABELS = ("Compétition à points", "Compétition sans points")


# ── Text helpers ──────────────────────────────────────────────────────


def remove_accents(text: str) -> str:
    """Strip diacritics: "Hélène" → "Helene"."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", text) if not unicodedata.combining(ch)
    )


def strip_tags(text: str) -> str:
    """Remove markup from an html fragment and decode its entities."""
    return html.unescape(_TAG_RE.sub("", text))


def titleize(text: str) -> str:
    """Lowercase *text*, then capitalise each word and each hyphenated part."""
    return _TITLE_RE.sub(lambda m: m.group(0).upper(), text.lower())


def slugify(text: str) -> str:
    """Lowercase ASCII slug with dashes: "Saint-Étienne (42)" → "saint-etienne-42"."""
    text = remove_accents(text.translate(_SLUG_LETTERS))
    text = _SLUG_UNSAFE_RE.sub("-", text).lower()
    text = _SLUG_DASH_RE.sub("-", text.strip())
    return text.strip("-")


def replace_unallowed(text: str) -> str:
    """Map stray Windows-1252 punctuation to plain characters."""
    return text.translate(_UNALLOWED)


# ── Names and titles ──────────────────────────────────────────────────


def _is_upper(char: str) -> bool:
    code = ord(char)
    # A-Z, then À (192) to Ý (221)
    return 65 <= code <= 90 or 192 <= code <= 221


def _reorder_dancer(dancer: str) -> str:
    """Turn a "SURNAME Forename" display name into "Forename Surname".

    The surname is the run of uppercase letters, together with the
    separators found right after one of them.  An uppercase letter directly
    followed by a lowercase one starts a forename word instead, so it is
    moved from the surname to the forename.
    """
    surname = ""
    forename = ""
    prev_upper = False
    for i, char in enumerate(dancer):
        if _is_upper(char):
            surname += char
            prev_upper = True
        elif char in _SEPARATORS:
            if prev_upper:
                surname += char
            else:
                forename += char
            prev_upper = False
        elif prev_upper:
            surname = surname[:-1]
            forename += dancer[i - 1:i + 1]
            prev_upper = False
        else:
            forename += char

    parts = [remove_accents(forename).strip(), remove_accents(surname).strip()]
    return titleize(" ".join(p for p in parts if p))


def clean_names(names: str) -> str:
    """Normalise a couple cell to "Forename Surname - Forename Surname".

    *names* holds both dancers as ``SURNAME Forename``, separated by a
    ``<br>`` tag.  Any remaining markup is ignored.  Cells flagged as an
    unknown couple return ``UNKNOWN_COUPLE`` as is.

    Raises ValueError when the cell does not hold two dancers.
    """
    if UNKNOWN_COUPLE in names.lower():
        return UNKNOWN_COUPLE
    dancers = [_reorder_dancer(strip_tags(raw)) for raw in _BREAK_RE.split(names)]
    if len(dancers) < 2:
        raise ValueError(f"expected two dancers, found {len(dancers)}")
    return f"{dancers[0]} - {dancers[1]}"


def clean_contest(title: str) -> str:
    """Remove the point/non-point competition labels from a contest title."""
    for label in POINT_CONTEST_LABELS:
        title = title.replace(label, "")
    return title.strip()


def competition_id(place: str, day: date) -> str:
    """Content hash identifying a competition by its place and date."""
    return hashlib.md5(f"{slugify(place)}{day:%Y%m%d}".encode("utf-8")).hexdigest()


# ── Seasons ───────────────────────────────────────────────────────────


def is_first_half(day: date) -> bool:
    """Return True if *day* is on or before August 14th of its year."""
    return day.month < 8 or (day.month == 8 and day.day <= 14)


def is_within_season(year: int, day: date) -> bool:
    """Return True if *day* belongs to the season starting in *year*.

    A season runs from August 15th of *year* to August 14th of the next year,
    both included.
    """
    return (day.year == year and not is_first_half(day)) or (
        day.year == year + 1 and is_first_half(day)
    )


# ── Competitions ──────────────────────────────────────────────────────


def merge_competitions(candidates: Iterable[Competition | None]) -> list[Competition]:
    """Collapse competitions sharing an id, dropping missing entries.

    The first competition of each id is kept, enriched with the detail urls
    of the following ones.  Output order follows first occurrence.
    """
    merged: dict[str, Competition] = {}
    for competition in candidates:
        if competition is None:
            continue
        existing = merged.get(competition.id)
        if existing is None:
            merged[competition.id] = competition.model_copy(
                update={"data_urls": list(dict.fromkeys(competition.data_urls))}
            )
            continue
        for url in competition.data_urls:
            if url not in existing.data_urls:
                existing.data_urls.append(url)
    return list(merged.values())


# ── Execution ─────────────────────────────────────────────────────────


async def run_serially(tasks: Iterable[Callable[[], Awaitable[T]]]) -> list[T]:
    """Await each task factory in turn and return their results in order.

    A task starts only once the previous one has completed.  The first
    failure propagates and the remaining tasks are never started.
    """
    results: list[T] = []
    for task in tasks:
        results.append(await task())
    return results


@contextlib.contextmanager
def handle_request_error(message: str) -> Iterator[None]:
    """Re-raise network and provider errors as ``ProviderError("<message>: <cause>")``."""
    try:
        yield
    except (httpx.HTTPError, ProviderError) as exc:
        raise ProviderError(f"{message}: {exc}") from exc
