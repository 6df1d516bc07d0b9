import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tubely.api.routers import auth as auth_router
from tubely.api.routers import uploads as uploads_router
from tubely.api.routers import videos as videos_router
from tubely.core.config import Settings, get_settings
from tubely.db.session import dispose_engine
from tubely.services.media import MediaProcessor, SubprocessRunner
from tubely.services.signing import AccessUrlSigner
from tubely.services.staging import StagingArea
from tubely.services.storage import StorageService, get_storage_service
from tubely.services.uploads import UploadPipeline


def build_services(
    app: FastAPI,
    settings: Settings,
    storage: StorageService,
    media: MediaProcessor,
) -> None:
    app.state.upload_pipeline = UploadPipeline(
        storage=storage,
        media=media,
        staging=StagingArea(settings.staging_dir),
        settings=settings,
    )
    app.state.url_signer = AccessUrlSigner(storage, settings.signed_url_ttl_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    media = MediaProcessor(
        SubprocessRunner(timeout=settings.media_command_timeout),
        ffmpeg_binary=settings.ffmpeg_binary,
        ffprobe_binary=settings.ffprobe_binary,
    )
    build_services(app, settings, get_storage_service(), media)
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(
        debug=settings.debug,
        title="Tubely API",
        lifespan=lifespan,
    )

    app.include_router(auth_router.router)
    app.include_router(videos_router.router)
    app.include_router(uploads_router.router)

    return app


app = create_app()
