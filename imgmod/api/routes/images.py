"""
Image routes.

Upload and submit are open to the uploader; approve, unapprove, rotate and
delete need a moderator API key. Reads of approved images are public; reads
of unapproved images need a moderator key and otherwise look exactly like a
missing image.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from imgmod.api.deps import (
    get_credential,
    get_lifecycle,
    get_resolver,
    require_moderator,
    to_http_error,
)
from imgmod.components.lifecycle import LifecycleService
from imgmod.components.renditions import RenditionResolver
from imgmod.core.entities import parse_asset_id
from imgmod.core.errors import ImageServiceError, UploadTooLarge

router = APIRouter()

UPLOAD_CHUNK_SIZE = 64 * 1024


async def read_limited(upload: UploadFile, limit: int) -> bytes:
    """Read an uploaded file, giving up as soon as it exceeds limit bytes."""
    chunks: list[bytes] = []
    size = 0
    while chunk := await upload.read(UPLOAD_CHUNK_SIZE):
        size += len(chunk)
        if size > limit:
            raise UploadTooLarge(size, limit)
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/upload", response_class=PlainTextResponse)
async def upload_image(
    request: Request,
    angle: Annotated[float, Query(description="Rotate before saving (0, 90, 180, 270)")] = 0.0,
    lifecycle: LifecycleService = Depends(get_lifecycle),
) -> str:
    """Store the first file of a multipart body as a new pending image."""
    form = await request.form()
    upload = next((v for _, v in form.multi_items() if isinstance(v, UploadFile)), None)
    if upload is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided!")

    try:
        data = await read_limited(upload, lifecycle.max_upload_bytes)
        result = await run_in_threadpool(lifecycle.upload, data, angle)
    except ImageServiceError as e:
        raise to_http_error(e, "uploading image") from e
    return str(result.asset_id)


@router.post("/submit/{asset_id}", response_class=PlainTextResponse)
def submit_image(
    asset_id: str,
    lifecycle: LifecycleService = Depends(get_lifecycle),
) -> str:
    try:
        result = lifecycle.submit(parse_asset_id(asset_id))
    except ImageServiceError as e:
        raise to_http_error(e, "submitting image") from e
    return str(result.asset_id)


@router.post(
    "/approve/{asset_id}",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_moderator)],
)
def approve_image(
    asset_id: str,
    lifecycle: LifecycleService = Depends(get_lifecycle),
) -> str:
    try:
        result = lifecycle.approve(parse_asset_id(asset_id))
    except ImageServiceError as e:
        raise to_http_error(e, "approving image") from e
    return str(result.asset_id)


@router.post(
    "/unapprove/{asset_id}",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_moderator)],
)
def unapprove_image(
    asset_id: str,
    lifecycle: LifecycleService = Depends(get_lifecycle),
) -> str:
    try:
        result = lifecycle.unapprove(parse_asset_id(asset_id))
    except ImageServiceError as e:
        raise to_http_error(e, "unapproving image") from e
    return str(result.asset_id)


@router.post(
    "/rotate",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_moderator)],
)
def rotate_image(
    id: Annotated[str, Query(description="Image id")],
    angle: Annotated[float, Query(description="Clockwise angle: 90, 180 or 270")],
    lifecycle: LifecycleService = Depends(get_lifecycle),
) -> str:
    try:
        result = lifecycle.rotate(parse_asset_id(id), angle)
    except ImageServiceError as e:
        raise to_http_error(e, "rotating image") from e
    return str(result.asset_id)


@router.delete(
    "/image/{asset_id}",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_moderator)],
)
def delete_image(
    asset_id: str,
    lifecycle: LifecycleService = Depends(get_lifecycle),
) -> str:
    try:
        result = lifecycle.delete(parse_asset_id(asset_id))
    except ImageServiceError as e:
        raise to_http_error(e, "deleting image") from e
    return str(result.asset_id)


@router.get(
    "/image/{asset_id}",
    summary="Get image rendition",
    responses={
        200: {"description": "Rendition bytes", "content": {"image/webp": {}}},
        400: {"description": "Invalid id or parameters"},
        404: {"description": "Image not found (or not visible to the caller)"},
    },
)
def get_image(
    asset_id: str,
    credential: Annotated[str | None, Depends(get_credential)],
    width: Annotated[int | None, Query(ge=0)] = None,
    height: Annotated[int | None, Query(ge=0)] = None,
    quality: Annotated[int | None, Query(ge=1, le=100)] = None,
    resolver: RenditionResolver = Depends(get_resolver),
) -> Response:
    """Serve a resized, re-encoded rendition of an image."""
    try:
        rendition = resolver.resolve(
            parse_asset_id(asset_id),
            credential=credential,
            width=width,
            height=height,
            quality=quality,
        )
    except ImageServiceError as e:
        raise to_http_error(e, "processing image") from e

    return Response(
        content=rendition.data,
        media_type=rendition.media_type,
        headers={"Content-Disposition": f'attachment; filename="{rendition.filename}"'},
    )
