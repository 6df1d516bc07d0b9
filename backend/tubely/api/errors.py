import logging

from fastapi import HTTPException

from tubely.services.errors import UploadError

logger = logging.getLogger(__name__)


def to_http_error(exc: UploadError, subject: str) -> HTTPException:
    if exc.status_code >= 500:
        logger.error("Request for %s failed: %s", subject, exc, exc_info=exc)
        return HTTPException(status_code=exc.status_code, detail=exc.public_message)
    return HTTPException(status_code=exc.status_code, detail=str(exc) or exc.public_message)
