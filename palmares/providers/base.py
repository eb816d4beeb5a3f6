from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from palmares.schemas import Competition, ProviderOptions


class ProviderError(Exception):
    """A provider operation failed; the message names the operation and provider."""


class ParseError(ProviderError):
    """A row or cell of a fetched page does not have the expected shape."""


class GroupNotFoundError(ProviderError):
    """No group of the provider's directory matches the requested name."""


class Provider(ABC):
    """Capability set shared by every results provider.

    A provider turns a federation's public pages into ``Competition`` records
    and couple names.  Options are validated on construction, so a
    misconfigured provider fails before it ever reaches the network.
    """

    def __init__(self, options: ProviderOptions | dict[str, Any]):
        if not isinstance(options, ProviderOptions):
            options = ProviderOptions(**options)
        self.opts = options

    @property
    def name(self) -> str:
        return self.opts.name

    @abstractmethod
    async def list_results(self, year: int) -> list[Competition]:
        """Return the competitions of the season starting in ``year``.

        Competitions come without contests; use ``get_details`` to fetch them.
        """
        ...

    @abstractmethod
    async def get_details(self, competition: Competition) -> Competition:
        """Fetch the contests of ``competition`` and attach them to it."""
        ...

    @abstractmethod
    async def search_groups(self, query: str = "") -> list[str]:
        """Return the names of groups (clubs) containing ``query``."""
        ...

    @abstractmethod
    async def get_group_couples(self, group: str) -> list[str]:
        """Return the couple names of the group named ``group``."""
        ...

    @abstractmethod
    async def search_couples(self, query: str = "") -> list[str]:
        """Return the couple names matching ``query``."""
        ...
