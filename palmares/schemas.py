from __future__ import annotations

from datetime import date

from pydantic import BaseModel, field_validator


# --- Results ---
class Contest(BaseModel):
    """One ranked event of a competition.

    ``results`` maps a normalised couple name to its rank.  Insertion order is
    the order couples were first seen, final heat first.
    """
    title: str
    results: dict[str, int] = {}


class Competition(BaseModel):
    """A single competition occurrence, identified by place and date.

    ``id`` is a content hash, so two listings of the same place and date share
    it even when their detail pages differ.  ``data_urls`` keeps every detail
    page that resolved to this competition.
    """
    id: str
    place: str
    date: date
    provider: str
    data_urls: list[str] = []
    contests: list[Contest] = []


# --- Groups ---
class ClubGroup(BaseModel):
    id: str
    name: str


# --- Provider configuration ---
class ProviderOptions(BaseModel):
    """Endpoint configuration for a results provider.

    Path templates are joined to ``url``.  ``details`` and ``couples`` take an
    ``{id}`` field, ``search`` takes a ``{query}`` field.
    """
    name: str
    url: str
    list: str
    details: str
    clubs: str
    couples: str
    search: str
    date_format: str
    encoding: str = "latin-1"

    @field_validator(
        "name", "url", "list", "details", "clubs", "couples", "search", "date_format",
    )
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def endpoint(self, path: str, **fields: str) -> str:
        """Join ``path`` to the base url, filling its template fields."""
        return f"{self.url}/{path.format(**fields) if fields else path}"
