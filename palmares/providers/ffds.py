from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import re
import time
from datetime import date, datetime
from typing import Any, Callable
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup, Tag

from palmares.config import settings
from palmares.metrics import (
    COMPETITIONS_FOUND,
    PROVIDER_ERRORS_TOTAL,
    PROVIDER_FETCH_DURATION_SECONDS,
    PROVIDER_FETCH_TOTAL,
)
from palmares.providers.base import GroupNotFoundError, ParseError, Provider, ProviderError
from palmares.providers.registry import register_provider
from palmares.providers.utils import (
    clean_contest,
    clean_names,
    competition_id,
    handle_request_error,
    is_within_season,
    merge_competitions,
    replace_unallowed,
    run_serially,
    titleize,
)
from palmares.schemas import ClubGroup, Competition, Contest, ProviderOptions

logger = logging.getLogger(__name__)

PROVIDER_KEY = "ffds"

# Listing links end with the manifestation id: "...?NumManif=1234"
MANIFESTATION_RE = re.compile(r"NumManif=(\d+)$")

# Region code after the place name: "PARIS (75)"
REGION_RE = re.compile(r"\(\s*\w+\s*\)")

RANK_RE = re.compile(r"^\s*(\d+)")

ARCHIVES_QUERY = "?Archives"

# Ranking pages close error containers inside table headers
BROKEN_HEADER = "</div></th>"


def extract_header(row: Tag, opts: ProviderOptions, year: int) -> Competition | None:
    """Build a competition from a listing row.

    Listing table: Place | Date | ... | Details link.  Returns None for rows
    without a manifestation link, with an unreadable date, or outside the
    season starting in *year*.
    """
    link = row.select_one("td:last-child a")
    href = link.get("href") if link else None
    if not href:
        return None
    m = MANIFESTATION_RE.search(href)
    if not m:
        return None

    cells = row.find_all("td")
    if len(cells) < 2:
        return None

    date_text = cells[1].get_text().strip()
    try:
        day = datetime.strptime(date_text, opts.date_format).date()
    except ValueError:
        logger.debug("Skipping listing row with unreadable date %r", date_text)
        return None

    # only keep competitions after mid august of year, or before mid august of next year
    if not is_within_season(year, day):
        return None

    place = titleize(cells[0].get_text().strip().lower())
    place = REGION_RE.sub("", place, count=1).strip()

    return Competition(
        id=competition_id(place, day),
        place=place,
        date=day,
        provider=PROVIDER_KEY,
        data_urls=[opts.endpoint(opts.details, id=m.group(1))],
    )


def _cell(row: Tag, position: int) -> Tag:
    cell = row.select_one(f"td:nth-child({position})")
    if cell is None:
        raise ValueError(f"missing column {position}")
    return cell


def _parse_rank(text: str) -> int:
    m = RANK_RE.match(text)
    if not m:
        raise ValueError(f"invalid rank {text.strip()!r}")
    return int(m.group(1))


def parse_ranking(body: str) -> Contest:
    """Extract a contest title and its ranking from a ranking page.

    Heats are listed final first, so the first rank seen for a couple is
    kept and later ones ignored.

    Raises ParseError naming the contest and heat of a malformed row.
    """
    body = body.replace(BROKEN_HEADER, "</th>")
    soup = BeautifulSoup(body, "html.parser")
    title = clean_contest("".join(h3.get_text() for h3 in soup.find_all("h3")))

    results: dict[str, int] = {}
    for heat_index, heat in enumerate(soup.select(".portlet")):
        for row in heat.select("tbody > tr"):
            try:
                names = clean_names(_cell(row, 3).decode_contents())
                if names not in results:
                    results[names] = _parse_rank(_cell(row, 1).get_text())
            except ValueError as exc:
                raise ParseError(
                    f"failed to parse ranking '{title}' heat {heat_index * 2}: {exc}"
                ) from exc

    return Contest(title=title, results=results)


def extract_names(body: str) -> list[str]:
    """Extract couple names from a club roster or couple search page.

    Raises ParseError with the offending row markup.
    """
    soup = BeautifulSoup(body, "html.parser")
    names: list[str] = []
    for row in soup.select("#tosort tbody tr"):
        try:
            text = _cell(row, 1).get_text().strip()
            names.append(clean_names(text.replace(" / ", "<br>", 1)))
        except ValueError as exc:
            raise ParseError(f"failed to parse couple names '{row}': {exc}") from exc
    return names


def _error_type(exc: BaseException) -> str:
    if isinstance(exc, GroupNotFoundError):
        return "not_found"
    cause: BaseException | None = exc
    while cause is not None:
        if isinstance(cause, ParseError):
            return "parse"
        cause = cause.__cause__
    return "network"


@register_provider(PROVIDER_KEY)
class FFDSProvider(Provider):
    """Provider for the French ballroom dancing federation (FFDS) results site.

    Server-rendered pages: a season listing (current or archived), one
    detail page per manifestation linking to contest rankings, a club
    directory, club rosters and a couple search.  Pages are fetched one at a
    time, and calls made on the same instance run one after the other.
    """

    def __init__(
        self,
        options: ProviderOptions | dict[str, Any],
        today: Callable[[], date] = date.today,
    ):
        super().__init__(options)
        # Club directory, fetched once
        self.clubs: list[ClubGroup] | None = None
        self._today = today
        self._lock = asyncio.Lock()

    # -- plumbing ------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _make_client(self):
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=settings.http_timeout,
            headers={"User-Agent": settings.user_agent},
        ) as client:
            yield client

    @contextlib.asynccontextmanager
    async def _operation(self):
        """Serialise public calls and count the failed ones."""
        async with self._lock:
            try:
                yield
            except ProviderError as exc:
                PROVIDER_ERRORS_TOTAL.labels(PROVIDER_KEY, _error_type(exc)).inc()
                raise

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str:
        """GET *url* and return its body decoded with the site encoding."""
        start = time.perf_counter()
        try:
            resp = await client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError:
            PROVIDER_FETCH_TOTAL.labels(PROVIDER_KEY, "failed").inc()
            raise
        finally:
            PROVIDER_FETCH_DURATION_SECONDS.labels(PROVIDER_KEY).observe(
                time.perf_counter() - start
            )
        PROVIDER_FETCH_TOTAL.labels(PROVIDER_KEY, "ok").inc()
        resp.encoding = self.opts.encoding
        body = resp.text
        logger.debug("Fetched %s (%d chars)", url, len(body))
        return replace_unallowed(body)

    def clear_cache(self) -> None:
        """Forget the club directory; the next group lookup fetches it again."""
        self.clubs = None

    # -- results -------------------------------------------------------------

    async def list_results(self, year: int) -> list[Competition]:
        url = self.opts.endpoint(self.opts.list)
        if not is_within_season(year, self._today()):
            url += ARCHIVES_QUERY

        async with self._operation():
            with handle_request_error(f"failed to fetch results from {self.name}"):
                async with self._make_client() as client:
                    body = await self._fetch(client, url)

            soup = BeautifulSoup(body, "html.parser")
            rows = soup.select("table#tosort > tbody > tr")
            competitions = merge_competitions(
                extract_header(row, self.opts, year) for row in rows
            )

        COMPETITIONS_FOUND.labels(PROVIDER_KEY).set(len(competitions))
        logger.info(
            "%s: %d competitions for season %d (%d listing rows)",
            self.name, len(competitions), year, len(rows),
        )
        return competitions

    async def get_details(self, competition: Competition) -> Competition:
        async with self._operation():
            async with self._make_client() as client:
                raw_urls = await run_serially(
                    functools.partial(self._extract_contest_urls, client, url, competition.place)
                    for url in competition.data_urls
                )
                urls = list(dict.fromkeys(url for found in raw_urls for url in found))
                competition.contests = []
                if not urls:
                    logger.info("%s: no contests yet for %s", self.name, competition.place)
                    return competition

                competition.contests = await run_serially(
                    functools.partial(self._extract_ranking, client, url, competition.place)
                    for url in urls
                )

        logger.info(
            "%s: %d contests for %s", self.name, len(competition.contests), competition.place
        )
        return competition

    async def _extract_contest_urls(
        self, client: httpx.AsyncClient, url: str, place: str
    ) -> list[str]:
        with handle_request_error(f"failed to fetch contests from {self.name} {place}"):
            body = await self._fetch(client, url)
        soup = BeautifulSoup(body, "html.parser")
        return [
            self.opts.endpoint(link["href"])
            for link in soup.select("td > a")
            if link.get("href")
        ]

    async def _extract_ranking(
        self, client: httpx.AsyncClient, url: str, place: str
    ) -> Contest:
        with handle_request_error(
            f"failed to fetch contest ranking from {self.name} {place}"
        ):
            body = await self._fetch(client, url)
            return parse_ranking(body)

    # -- groups and couples --------------------------------------------------

    async def _load_clubs(self) -> list[ClubGroup]:
        """Return the club directory, fetching it on first use."""
        if self.clubs is not None:
            return self.clubs

        with handle_request_error(f"failed to fetch group list from {self.name}"):
            async with self._make_client() as client:
                body = await self._fetch(client, self.opts.endpoint(self.opts.clubs))

        soup = BeautifulSoup(body, "html.parser")
        self.clubs = [
            ClubGroup(id=option["value"], name=option.get_text().strip())
            for option in soup.select("[name=club_id] option")
            if option.get("value")
        ]
        logger.info("%s: cached %d clubs", self.name, len(self.clubs))
        return self.clubs

    async def search_groups(self, query: str = "") -> list[str]:
        searched = query.strip().lower()
        async with self._operation():
            clubs = await self._load_clubs()
        return [club.name for club in clubs if searched in club.name.lower()]

    async def get_group_couples(self, group: str) -> list[str]:
        if not isinstance(group, str) or not group.strip():
            raise ValueError("group parameter must be a non-empty string")

        wanted = group.strip().lower()
        async with self._operation():
            clubs = await self._load_clubs()
            club = next((c for c in clubs if c.name.lower() == wanted), None)
            if club is None:
                raise GroupNotFoundError(f"no group found with name {group}")

            with handle_request_error(
                f"failed to fetch couples of group {group} from {self.name}"
            ):
                async with self._make_client() as client:
                    body = await self._fetch(
                        client, self.opts.endpoint(self.opts.couples, id=club.id)
                    )
                names = extract_names(body)

        logger.info("%s: %d couples in group %s", self.name, len(names), group)
        return names

    async def search_couples(self, query: str = "") -> list[str]:
        url = self.opts.endpoint(
            self.opts.search, query=quote(query.upper(), safe="!'()*")
        )
        async with self._operation():
            with handle_request_error(f"failed to fetch couples from {self.name}"):
                async with self._make_client() as client:
                    body = await self._fetch(client, url)
                names = extract_names(body)

        logger.info("%s: %d couples matching %r", self.name, len(names), query)
        return names
