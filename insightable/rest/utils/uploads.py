from dataclasses import dataclass
from fastapi import HTTPException, UploadFile, status
import logging

from insightable.analysis.errors import UploadError
from insightable.analysis.images import jpeg_filename, to_jpeg

LOGGER = logging.getLogger(__name__)


@dataclass
class PreparedUpload:
    filename: str
    content: bytes
    is_image: bool


async def read_upload(file: UploadFile) -> PreparedUpload:
    """
    Reads an uploaded file. Images (by their declared content type) are
    re-encoded as JPEG; everything else is passed through untouched.
    """
    content = await file.read()
    filename = file.filename or "upload"
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")

    is_image = (file.content_type or "").lower().startswith("image/")
    if is_image:
        try:
            content = to_jpeg(content)
        except UploadError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        filename = jpeg_filename(filename)

    LOGGER.info(f"Received '{filename}' ({len(content)} bytes, image={is_image})")
    return PreparedUpload(filename=filename, content=content, is_image=is_image)
