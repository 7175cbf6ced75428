"""
Message Send Endpoints

Outbound text and media sends through the live session. Both routes are
guarded by the API key when one is configured.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from gateway.api.deps import get_app_settings, get_session_manager
from gateway.api.uploads import StagedUpload, has_upload, stage_upload
from gateway.config import Settings
from gateway.core.destination import normalize_destination
from gateway.core.errors import ValidationError
from gateway.core.session import (
    DocumentPayload,
    ImagePayload,
    SendPayload,
    SessionManager,
    TextPayload,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])


class SendRequest(BaseModel):
    """Text message request. Fields are checked by the handler so a missing
    one is a 400, not a schema error."""

    to: Optional[str] = Field(
        default=None,
        description="Phone number or qualified id",
        examples=["628123456789"],
    )
    message: Optional[str] = Field(
        default=None,
        description="Message text",
        examples=["Hello from the gateway"],
    )


class SendResponse(BaseModel):
    """Send result, as returned by the protocol engine."""

    ok: bool = True
    result: Any = None


class ErrorResponse(BaseModel):
    """Error response."""

    ok: bool = False
    error: str
    detail: Optional[str] = None


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing fields"},
    401: {"model": ErrorResponse, "description": "Unauthorized"},
    500: {"model": ErrorResponse, "description": "Send failed"},
    503: {"model": ErrorResponse, "description": "Session not ready"},
}


def _destination(to: Optional[str]) -> str:
    if not to or not to.strip():
        raise ValidationError("Missing field: to")
    try:
        return normalize_destination(to)
    except ValueError as e:
        raise ValidationError("Invalid field: to", str(e))


def build_media_payload(staged: StagedUpload, data: bytes, caption: Optional[str]) -> SendPayload:
    """Images carry a caption only; anything else goes as a named document."""
    caption = caption or None
    if staged.is_image:
        return ImagePayload(data=data, caption=caption)
    return DocumentPayload(
        data=data,
        filename=staged.filename,
        mimetype=staged.content_type,
        caption=caption,
    )


@router.post(
    "/send",
    response_model=SendResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a text message",
    responses=ERROR_RESPONSES,
)
async def send(
    request: SendRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SendResponse:
    """Send `message` to `to`."""
    destination = _destination(request.to)
    if not request.message:
        raise ValidationError("Missing field: message")

    ref = manager.acquire()
    result = await manager.send(destination, TextPayload(request.message), ref=ref)

    logger.info(f"Text sent to {destination}")
    return SendResponse(ok=True, result=jsonable_encoder(result))


@router.post(
    "/send-media",
    response_model=SendResponse,
    status_code=status.HTTP_200_OK,
    summary="Send an image or document",
    responses=ERROR_RESPONSES,
)
async def send_media(
    to: Optional[str] = Form(default=None),
    caption: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings),
) -> SendResponse:
    """
    Send an uploaded file.

    image/* uploads are sent as images with the optional caption; anything
    else is sent as a document with its original filename and media type.
    """
    if not has_upload(file):
        raise ValidationError("Missing field: file")

    async with stage_upload(file, settings.upload_dir) as staged:
        destination = _destination(to)
        ref = manager.acquire()

        data = await staged.read()
        payload = build_media_payload(staged, data, caption)
        result = await manager.send(destination, payload, ref=ref)

    logger.info(f"{type(payload).__name__} sent to {destination} ({staged.size} bytes)")
    return SendResponse(ok=True, result=jsonable_encoder(result))
