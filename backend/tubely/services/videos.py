from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.models import User, Video
from tubely.schemas import VideoCreate


async def create_video(session: AsyncSession, user: User, payload: VideoCreate) -> Video:
    video = Video(
        user_id=user.id,
        title=payload.title,
        description=payload.description,
    )
    session.add(video)
    await session.commit()
    await session.refresh(video)
    return video


async def list_videos_for_user(session: AsyncSession, user_id: str) -> list[Video]:
    stmt = (
        select(Video)
        .where(Video.user_id == user_id)
        .order_by(Video.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_video(session: AsyncSession, video_id: str) -> Video | None:
    return await session.get(Video, video_id)


async def save_video(session: AsyncSession, video: Video) -> Video:
    session.add(video)
    await session.commit()
    await session.refresh(video)
    return video


async def delete_video(session: AsyncSession, video: Video) -> None:
    await session.delete(video)
    await session.commit()
