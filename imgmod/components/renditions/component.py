"""
Renditions component - resolve a read request to image bytes.

Resolution order:
1. Nil identifiers are rejected before touching storage
2. Original (public): serve from cache, or compute and populate the cache
3. Unapproved: only for authorized callers, computed and never cached
4. Anything else is NotFound, whether missing or merely not visible

Invariants:
- Unapproved assets never leave a trace in the cache namespace
- "Not found" and "not authorized" are indistinguishable to the caller
- A rendition computed across an invalidation of its asset is not stored
"""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

from imgmod.adapters.fs.stages import AssetLocator
from imgmod.core.entities import RenditionKey, RenditionTarget, Stage, validate_asset_id
from imgmod.core.errors import BackendFailure, NotFound
from imgmod.core.ports.auth import AuthorizerPort
from imgmod.core.ports.transform import TransformError, TransformPort

from .models import Rendition
from .ports import RenditionCachePort

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "webp": "image/webp",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "avif": "image/avif",
}


class RenditionResolver:
    """Serves renditions of approved (and, for moderators, unapproved) assets."""

    def __init__(
        self,
        locator: AssetLocator,
        cache: RenditionCachePort,
        backend: TransformPort,
        authorizer: AuthorizerPort,
        *,
        default_quality: int = 100,
        rendition_extension: str = "webp",
    ) -> None:
        self.locator = locator
        self.cache = cache
        self.backend = backend
        self.authorizer = authorizer
        self.default_quality = default_quality
        self.media_type = MEDIA_TYPES.get(rendition_extension, "application/octet-stream")

    def rendition_key(
        self,
        asset_id: UUID,
        width: int | None = None,
        height: int | None = None,
        quality: int | None = None,
    ) -> RenditionKey:
        return RenditionKey(
            asset_id=asset_id,
            width=width,
            height=height,
            quality=self.default_quality if quality is None else quality,
        )

    def resolve(
        self,
        asset_id: UUID,
        *,
        credential: str | None = None,
        width: int | None = None,
        height: int | None = None,
        quality: int | None = None,
    ) -> Rendition:
        """
        Produce the requested rendition.

        Raises:
            InvalidIdentifier: For the nil identifier
            NotFound: If the asset is absent or not visible to the caller
            BackendFailure: If the transform backend fails
            IOFailure: On filesystem errors other than not-found
        """
        validate_asset_id(asset_id)
        key = self.rendition_key(asset_id, width, height, quality)

        path = self.locator.find(Stage.ORIGINAL, asset_id)
        if path is not None:
            return self._resolve_public(key, path)

        if not self.authorizer.is_authorized(credential):
            raise NotFound(asset_id)

        path = self.locator.find(Stage.UNAPPROVED, asset_id)
        if path is None:
            raise NotFound(asset_id)

        data = self._render(key, path)
        return Rendition(
            asset_id=asset_id,
            key=key,
            stage=Stage.UNAPPROVED,
            data=data,
            media_type=self.media_type,
        )

    def _resolve_public(self, key: RenditionKey, path: Path) -> Rendition:
        if self.cache.exists(key):
            try:
                data = self.cache.read(key)
            except NotFound:
                # Invalidated between the existence check and the read.
                pass
            else:
                logger.debug("Cache hit for %s", key.file_stem())
                return Rendition(
                    asset_id=key.asset_id,
                    key=key,
                    stage=Stage.ORIGINAL,
                    data=data,
                    media_type=self.media_type,
                    from_cache=True,
                )

        generation = self.cache.generation(key.asset_id)
        data = self._render(key, path)
        cached = self.cache.store(key, data, generation=generation)
        return Rendition(
            asset_id=key.asset_id,
            key=key,
            stage=Stage.ORIGINAL,
            data=data,
            media_type=self.media_type,
            cached=cached,
        )

    def _render(self, key: RenditionKey, path: Path) -> bytes:
        try:
            native = self.backend.probe_dimensions(path)
            target = RenditionTarget.from_key(key, native)
            return self.backend.resize_encode(
                path,
                target.width,
                target.height,
                target.quality,
                crop=target.crop,
            )
        except TransformError as e:
            if not path.exists():
                # Moved or deleted while being read.
                raise NotFound(key.asset_id) from e
            logger.error(
                "Error while processing image %s (width=%s, height=%s, quality=%s): %s",
                key.asset_id,
                key.width,
                key.height,
                key.quality,
                e,
            )
            raise BackendFailure(key.asset_id, "resize_encode") from e
