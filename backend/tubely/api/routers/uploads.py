import logging
from collections.abc import Awaitable, Callable
from typing import BinaryIO

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from tubely.api.deps import (
    enforce_body_limit,
    get_current_user,
    get_db,
    get_upload_pipeline,
    get_url_signer,
)
from tubely.api.errors import to_http_error
from tubely.api.routers.videos import get_owned_video
from tubely.core.config import get_settings
from tubely.models import User, Video
from tubely.schemas import VideoRead
from tubely.services.errors import UploadError
from tubely.services.signing import AccessUrlSigner
from tubely.services.uploads import UploadPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])

StoreStep = Callable[[AsyncSession, Video, BinaryIO, str | None], Awaitable[Video]]


async def _receive_upload(
    request: Request,
    session: AsyncSession,
    user: User,
    video_id: str,
    field: str,
    max_bytes: int,
    store: StoreStep,
    signer: AccessUrlSigner,
) -> VideoRead:
    # Size, existence and ownership are all settled before the body is read.
    enforce_body_limit(request, max_bytes)
    video = await get_owned_video(session, video_id, user)

    form = await request.form(
        max_files=1,
        max_part_size=get_settings().multipart_max_memory,
    )
    try:
        upload = form.get(field)
        if not isinstance(upload, UploadFile):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Missing '{field}' file part",
            )
        logger.info("Receiving %s for video %s from user %s", field, video.id, user.id)
        try:
            video = await store(session, video, upload.file, upload.content_type)
            return signer.present(video)
        except UploadError as exc:
            raise to_http_error(exc, f"video {video_id}") from exc
    finally:
        await form.close()


@router.post("/video/{video_id}", response_model=VideoRead)
async def upload_video(
    video_id: str,
    request: Request,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    signer: AccessUrlSigner = Depends(get_url_signer),
) -> VideoRead:
    return await _receive_upload(
        request,
        session,
        user,
        video_id,
        field="video",
        max_bytes=get_settings().max_video_upload_bytes,
        store=pipeline.upload_video,
        signer=signer,
    )


@router.post("/thumbnail/{video_id}", response_model=VideoRead)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    signer: AccessUrlSigner = Depends(get_url_signer),
) -> VideoRead:
    return await _receive_upload(
        request,
        session,
        user,
        video_id,
        field="thumbnail",
        max_bytes=get_settings().max_thumbnail_upload_bytes,
        store=pipeline.upload_thumbnail,
        signer=signer,
    )
