from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.api.deps import (
    get_current_user,
    get_db,
    get_upload_pipeline,
    get_url_signer,
    parse_video_id,
)
from tubely.api.errors import to_http_error
from tubely.models import User, Video
from tubely.schemas import VideoCreate, VideoRead
from tubely.services import videos as video_service
from tubely.services.errors import UploadError
from tubely.services.signing import AccessUrlSigner
from tubely.services.uploads import UploadPipeline, ensure_owner

router = APIRouter(prefix="/videos", tags=["videos"])


async def get_owned_video(session: AsyncSession, video_id: str, user: User) -> Video:
    video = await video_service.get_video(session, parse_video_id(video_id))
    if not video:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    try:
        ensure_owner(video, user)
    except UploadError as exc:
        raise to_http_error(exc, f"video {video_id}") from exc
    return video


@router.post("/", response_model=VideoRead, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: VideoCreate,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    signer: AccessUrlSigner = Depends(get_url_signer),
) -> VideoRead:
    video = await video_service.create_video(session, user, payload)
    return signer.present(video)


@router.get("/", response_model=list[VideoRead])
async def list_videos(
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    signer: AccessUrlSigner = Depends(get_url_signer),
) -> list[VideoRead]:
    videos = await video_service.list_videos_for_user(session, user.id)
    try:
        return signer.present_many(videos)
    except UploadError as exc:
        raise to_http_error(exc, f"videos of user {user.id}") from exc


@router.get("/{video_id}", response_model=VideoRead)
async def get_video(
    video_id: str,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    signer: AccessUrlSigner = Depends(get_url_signer),
) -> VideoRead:
    video = await get_owned_video(session, video_id, user)
    try:
        return signer.present(video)
    except UploadError as exc:
        raise to_http_error(exc, f"video {video_id}") from exc


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: str,
    session: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
) -> Response:
    video = await get_owned_video(session, video_id, user)
    await video_service.delete_video(session, video)
    await pipeline.discard_assets(video)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
