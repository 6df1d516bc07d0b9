from __future__ import annotations

import secrets
from dataclasses import dataclass
from enum import Enum

from tubely.services.errors import InvalidObjectReferenceError

KEY_ENTROPY_BYTES = 32
REFERENCE_DELIMITER = ","


class VideoGeometry(str, Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


def classify_aspect_ratio(ratio: str | None) -> VideoGeometry:
    # Exact matches only; 1280x721 reporting "1280:721" is "other".
    if ratio == "16:9":
        return VideoGeometry.LANDSCAPE
    if ratio == "9:16":
        return VideoGeometry.PORTRAIT
    return VideoGeometry.OTHER


def random_key_token() -> str:
    return secrets.token_urlsafe(KEY_ENTROPY_BYTES)


def media_extension(media_type: str) -> str:
    _, _, subtype = media_type.partition("/")
    if not subtype:
        raise ValueError(f"Media type {media_type!r} has no subtype")
    return subtype


def derive_object_key(media_type: str, geometry: VideoGeometry | None = None) -> str:
    """Build ``[<geometry>/]<random>.<subtype>``; uniqueness comes from the random part."""
    name = f"{random_key_token()}.{media_extension(media_type)}"
    if geometry is None:
        return name
    return f"{geometry.value}/{name}"


@dataclass(frozen=True)
class ObjectReference:
    """Stable bucket/key identity of a stored asset, persisted as ``bucket,key``."""

    bucket: str
    key: str

    def to_stored(self) -> str:
        return f"{self.bucket}{REFERENCE_DELIMITER}{self.key}"

    @classmethod
    def parse(cls, value: str) -> ObjectReference:
        parts = value.split(REFERENCE_DELIMITER)
        if len(parts) != 2 or not all(parts):
            raise InvalidObjectReferenceError(f"Malformed object reference {value!r}")
        bucket, key = parts
        return cls(bucket=bucket, key=key)
