from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import TEST_BUCKET
from tubely.models import Video
from tubely.services.errors import InvalidObjectReferenceError
from tubely.services.keys import ObjectReference
from tubely.services.signing import AccessUrlSigner
from tubely.services.storage import StorageService


def make_video(**overrides) -> Video:
    now = datetime.now(timezone.utc)
    fields = {
        "id": "2f6d3c1e-9a59-4a1b-8f0e-0a9f1c2b3d4e",
        "user_id": "7b1c2d3e-4f50-4a6b-9c7d-8e9f0a1b2c3d",
        "title": "Boots demo",
        "description": "",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Video(**fields)


def test_presigned_urls_are_time_bounded_and_target_same_object():
    signer = AccessUrlSigner(StorageService(), ttl_seconds=1000)
    reference = ObjectReference(bucket=TEST_BUCKET, key="landscape/abc.mp4")

    first = urlparse(signer.sign(reference))
    second = urlparse(signer.sign(reference))

    for url in (first, second):
        query = parse_qs(url.query)
        assert TEST_BUCKET in url.netloc + url.path
        assert url.path.endswith("/landscape/abc.mp4")
        assert query["X-Amz-Expires"] == ["1000"]
        assert "X-Amz-Signature" in query
    assert (first.netloc, first.path) == (second.netloc, second.path)


def test_present_signs_stored_references_without_touching_record(fake_storage):
    signer = AccessUrlSigner(fake_storage, ttl_seconds=900)
    stored = f"{TEST_BUCKET},portrait/abc.mp4"
    video = make_video(video_url=stored, thumbnail_url=f"{TEST_BUCKET},thumb.png")

    outward = signer.present(video)

    assert urlparse(outward.video_url).path == "/portrait/abc.mp4"
    assert "X-Amz-Expires=900" in outward.video_url
    assert urlparse(outward.thumbnail_url).path == "/thumb.png"
    assert video.video_url == stored


def test_present_passes_null_references_through(fake_storage):
    outward = AccessUrlSigner(fake_storage, ttl_seconds=900).present(make_video())
    assert outward.video_url is None
    assert outward.thumbnail_url is None


def test_present_refuses_malformed_reference(fake_storage):
    signer = AccessUrlSigner(fake_storage, ttl_seconds=900)
    with pytest.raises(InvalidObjectReferenceError):
        signer.present(make_video(video_url="no-delimiter-here"))
