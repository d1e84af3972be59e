import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from imgmod.components.lifecycle import LifecycleService
from imgmod.components.renditions import RenditionResolver
from imgmod.context import ServiceContext
from imgmod.core.errors import (
    BackendFailure,
    Conflict,
    EmptyUpload,
    ImageServiceError,
    InvalidIdentifier,
    InvalidRotation,
    IOFailure,
    NotFound,
    Unauthorized,
    UnsupportedImage,
    UploadTooLarge,
)

logger = logging.getLogger(__name__)


# --- Context ---
def get_context(request: Request) -> ServiceContext:
    context: ServiceContext = request.app.state.context
    return context


def get_lifecycle(context: ServiceContext = Depends(get_context)) -> LifecycleService:
    return context.lifecycle


def get_resolver(context: ServiceContext = Depends(get_context)) -> RenditionResolver:
    return context.resolver


# --- Auth ---
bearer_scheme = HTTPBearer(auto_error=False)


def get_credential(
    bearer: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    auth: Annotated[str | None, Query(description="API key as query parameter")] = None,
) -> str | None:
    """API key from the `auth` query parameter, else from the Bearer header."""
    if auth:
        return auth
    if bearer is not None:
        return bearer.credentials
    return None


def require_moderator(
    credential: Annotated[str | None, Depends(get_credential)],
    context: ServiceContext = Depends(get_context),
) -> None:
    if not context.authorizer.is_authorized(credential):
        error = to_http_error(Unauthorized(), "authorizing request")
        error.headers = {"WWW-Authenticate": "Bearer"}
        raise error


# --- Errors ---
CLIENT_ERRORS: dict[type[ImageServiceError], int] = {
    InvalidIdentifier: status.HTTP_400_BAD_REQUEST,
    InvalidRotation: status.HTTP_400_BAD_REQUEST,
    EmptyUpload: status.HTTP_400_BAD_REQUEST,
    UnsupportedImage: status.HTTP_400_BAD_REQUEST,
    UploadTooLarge: status.HTTP_413_CONTENT_TOO_LARGE,
    NotFound: status.HTTP_404_NOT_FOUND,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    Conflict: status.HTTP_409_CONFLICT,
}

CLIENT_MESSAGES: dict[type[ImageServiceError], str] = {
    NotFound: "Image not found!",
    Unauthorized: "Invalid token!",
    Conflict: "Image is in an inconsistent state!",
}


def to_http_error(exc: ImageServiceError, action: str) -> HTTPException:
    """
    Map a service error to an HTTP error.

    Internal failures get a generic message; their details stay in the log.
    """
    for error_type, status_code in CLIENT_ERRORS.items():
        if isinstance(exc, error_type):
            detail = CLIENT_MESSAGES.get(error_type, str(exc))
            return HTTPException(status_code=status_code, detail=detail)

    if not isinstance(exc, (BackendFailure, IOFailure)):
        logger.error("Unexpected service error while %s: %s", action, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Error while {action}!",
    )
