from __future__ import annotations

import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from palmares.config import settings
from palmares.providers import registry
from palmares.providers.base import GroupNotFoundError, Provider, ProviderError
from palmares.schemas import Competition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/providers", tags=["providers"])

# One instance per provider key: the club cache and the call lock live on it.
_instances: dict[str, Provider] = {}


def get_provider(key: str) -> Provider:
    """Return the shared provider instance for *key*, creating it on first use."""
    if key not in registry.PROVIDER_REGISTRY:
        raise HTTPException(status_code=404, detail=f"Unknown provider {key}")
    if key not in _instances:
        try:
            _instances[key] = registry.create_provider(key, settings.provider_options(key))
        except ValidationError as exc:
            logger.error("Provider %s is misconfigured: %s", key, exc)
            raise HTTPException(status_code=503, detail=f"Provider {key} is not configured")
    return _instances[key]


@contextlib.contextmanager
def _provider_errors():
    try:
        yield
    except GroupNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ProviderError as exc:
        logger.warning("%s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.get("", response_model=list[str])
async def list_providers():
    return registry.list_provider_keys()


@router.get("/{key}/results", response_model=list[Competition])
async def list_results(year: int, provider: Provider = Depends(get_provider)):
    with _provider_errors():
        return await provider.list_results(year)


@router.post("/{key}/details", response_model=Competition)
async def get_details(competition: Competition, provider: Provider = Depends(get_provider)):
    with _provider_errors():
        return await provider.get_details(competition)


@router.get("/{key}/groups", response_model=list[str])
async def search_groups(q: str = "", provider: Provider = Depends(get_provider)):
    with _provider_errors():
        return await provider.search_groups(q)


@router.get("/{key}/groups/{group}/couples", response_model=list[str])
async def get_group_couples(group: str, provider: Provider = Depends(get_provider)):
    with _provider_errors():
        return await provider.get_group_couples(group)


@router.get("/{key}/couples", response_model=list[str])
async def search_couples(q: str = "", provider: Provider = Depends(get_provider)):
    with _provider_errors():
        return await provider.search_couples(q)
