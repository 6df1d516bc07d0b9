import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tubely.core.config import get_settings
from tubely.db import session as db_session
from tubely.db.base import Base
from tubely.main import build_services, create_app
from tubely.services import storage as storage_service
from tubely.services.errors import StorageFaultError
from tubely.services.media import CommandResult, MediaProcessor
from tubely.services.staging import StagedFile, StagingArea

TEST_BUCKET = "tubely-test"


def probe_json(*streams: dict) -> bytes:
    return json.dumps({"streams": list(streams)}).encode()


def video_stream(ratio: str | None = "16:9", index: int = 0) -> dict:
    stream = {"index": index, "codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080}
    if ratio is not None:
        stream["display_aspect_ratio"] = ratio
    return stream


def audio_stream(index: int = 1) -> dict:
    return {"index": index, "codec_type": "audio", "codec_name": "aac", "channels": 2}


class FakeStorage(storage_service.StorageService):
    def __init__(self) -> None:  # type: ignore[super-init-not-called]
        self.settings = get_settings()
        self.bucket = TEST_BUCKET
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[tuple[str, str]] = []
        self.fail_uploads = False
        self._signatures = 0

    async def upload_file(self, path: Path, key: str, content_type: str) -> None:  # type: ignore[override]
        if self.fail_uploads:
            raise StorageFaultError(f"Upload of {key} failed")
        self.objects[key] = (path.read_bytes(), content_type)

    def create_presigned_get(self, key: str, expires_in: int = 900, bucket: str | None = None) -> str:  # type: ignore[override]
        self._signatures += 1
        return (
            f"https://{bucket or self.bucket}.s3.test/{key}"
            f"?X-Amz-Expires={expires_in}&X-Amz-Signature=sig{self._signatures}"
        )

    async def delete_object(self, key: str, bucket: str | None = None) -> None:  # type: ignore[override]
        self.deleted.append((bucket or self.bucket, key))
        self.objects.pop(key, None)


class FakeMediaRunner:
    """Stands in for ffmpeg/ffprobe: remux prefixes the bytes, probe returns canned JSON."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.remux_returncode = 0
        self.probe_returncode = 0
        self.probe_stdout = probe_json(video_stream("16:9"), audio_stream())

    def run(self, args) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        if args[0] == "ffmpeg":
            source = Path(args[args.index("-i") + 1])
            destination = Path(args[-1])
            if self.remux_returncode != 0:
                destination.write_bytes(b"partial")
                return CommandResult(self.remux_returncode, b"", b"moov atom not found")
            destination.write_bytes(b"faststart:" + source.read_bytes())
            return CommandResult(0, b"", b"")
        return CommandResult(self.probe_returncode, self.probe_stdout, b"")


class RecordingStagingArea(StagingArea):
    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.acquired: list[Path] = []

    @contextmanager
    def acquire(self, suffix: str = "") -> Iterator[StagedFile]:
        with super().acquire(suffix) as staged:
            self.acquired.append(staged.path)
            yield staged


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    return tmp_path / "staging"


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path, staging_dir):
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-secret")
    monkeypatch.setenv("S3_ACCESS_KEY", "test")
    monkeypatch.setenv("S3_SECRET_KEY", "test")
    monkeypatch.setenv("S3_REGION", "us-east-1")
    monkeypatch.setenv("S3_BUCKET", TEST_BUCKET)
    monkeypatch.setenv("STAGING_DIR", str(staging_dir))
    get_settings.cache_clear()
    storage_service.reset_storage_service()
    yield
    get_settings.cache_clear()
    storage_service.reset_storage_service()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_runner() -> FakeMediaRunner:
    return FakeMediaRunner()


@pytest.fixture
def staging(staging_dir) -> RecordingStagingArea:
    return RecordingStagingArea(staging_dir)


@pytest_asyncio.fixture
async def app_instance(fake_storage, fake_runner, staging):
    app = create_app()
    # Mimic lifespan startup with test doubles in place of S3 and ffmpeg.
    build_services(app, get_settings(), fake_storage, MediaProcessor(fake_runner))
    app.state.upload_pipeline.staging = staging

    engine = db_session.get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield app
    await db_session.dispose_engine()


@pytest_asyncio.fixture
async def client(app_instance):
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def signup(client):
    async def _signup(email: str = "owner@example.com", password: str = "Password123"):
        register_resp = await client.post(
            "/auth/register",
            json={"email": email, "password": password},
        )
        assert register_resp.status_code == 201
        user_id = register_resp.json()["id"]

        login_resp = await client.post(
            "/auth/login",
            data={"username": email, "password": password},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert login_resp.status_code == 200
        token = login_resp.json()["access_token"]
        return {"Authorization": f"Bearer {token}"}, user_id

    return _signup
