"""
Response and upload helpers shared by the routers.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Tuple

from fastapi import UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from core.schemas import ApiResponse

UPLOAD_CHUNK_SIZE = 1024 * 1024


def respond(data: Any, message: str = "Success", status_code: int = 200) -> JSONResponse:
    """Wrap `data` in the `{statusCode, data, message, success}` envelope"""
    envelope = ApiResponse.of(jsonable_encoder(data, by_alias=True), message, status_code)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(by_alias=True))


async def spool_upload(upload: Optional[UploadFile]) -> Tuple[Optional[str], Optional[str]]:
    """
    Copy an uploaded file to a temporary file and return (path, content type).
    The services own the temporary file from here on.
    """
    if upload is None or not upload.filename:
        return None, None

    fd, path = tempfile.mkstemp(
        prefix="videotube-",
        suffix=Path(upload.filename).suffix,
        dir=os.getenv("UPLOAD_TMP_DIR") or None,
    )
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                out.write(chunk)
    except OSError:
        os.unlink(path)
        raise
    finally:
        await upload.close()
    return path, upload.content_type
