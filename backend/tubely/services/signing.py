from tubely.models import Video
from tubely.schemas import VideoRead
from tubely.services.keys import ObjectReference
from tubely.services.storage import StorageService


class AccessUrlSigner:
    """Turns stored ``bucket,key`` references into short-lived GET URLs.

    Every call produces a new URL valid for ``ttl_seconds`` from issuance. The
    ORM record is never modified, so the stable reference stays persisted.
    """

    def __init__(self, storage: StorageService, ttl_seconds: int) -> None:
        self.storage = storage
        self.ttl_seconds = ttl_seconds

    def sign(self, reference: ObjectReference) -> str:
        return self.storage.create_presigned_get(
            reference.key,
            expires_in=self.ttl_seconds,
            bucket=reference.bucket,
        )

    def sign_stored(self, stored: str | None) -> str | None:
        if stored is None:
            return None
        return self.sign(ObjectReference.parse(stored))

    def present(self, video: Video) -> VideoRead:
        # Raises instead of returning a record with a missing or broken URL.
        outward = VideoRead.model_validate(video)
        return outward.model_copy(
            update={
                "video_url": self.sign_stored(video.video_url),
                "thumbnail_url": self.sign_stored(video.thumbnail_url),
            }
        )

    def present_many(self, videos: list[Video]) -> list[VideoRead]:
        return [self.present(video) for video in videos]
