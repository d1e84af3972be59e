"""
Rendition cache administration. Every route needs a moderator API key.
"""

from typing import Any

from fastapi import APIRouter, Depends

from imgmod.api.deps import get_context, require_moderator, to_http_error
from imgmod.context import ServiceContext
from imgmod.core.entities import parse_asset_id
from imgmod.core.errors import ImageServiceError

router = APIRouter(dependencies=[Depends(require_moderator)])


@router.get("")
def cache_status(context: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    """Entry count, total size and per-parameter counters."""
    try:
        return context.cache.status().to_dict()
    except ImageServiceError as e:
        raise to_http_error(e, "collecting cache information") from e


@router.delete("")
def purge_cache(context: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    try:
        removed = context.cache.purge()
    except ImageServiceError as e:
        raise to_http_error(e, "purging cache") from e
    return {"removed": removed}


@router.delete("/{asset_id}")
def invalidate_cache_entry(
    asset_id: str,
    context: ServiceContext = Depends(get_context),
) -> dict[str, Any]:
    try:
        parsed = parse_asset_id(asset_id)
        removed = context.cache.invalidate(parsed)
    except ImageServiceError as e:
        raise to_http_error(e, "removing cache entries") from e
    return {"id": str(parsed), "removed": removed}
