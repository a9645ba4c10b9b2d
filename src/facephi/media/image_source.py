from __future__ import annotations

from pathlib import Path
import asyncio

import cv2
import numpy as np

from ..errors import ImageDecodeError
from ..schemas.analysis import ImageOrigin, LoadedImage
from .camera import MediaStream

CAPTURE_JPEG_QUALITY = 92


def _decode_bgr(buf: bytes) -> np.ndarray:
    arr = np.frombuffer(buf, dtype=np.uint8)
    bgr = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
    if bgr is None or bgr.size == 0:
        raise ImageDecodeError("image decode produced an empty array")
    return bgr


def decode_image_sync(data: bytes | Path, *, origin: ImageOrigin = ImageOrigin.UPLOAD, name: str | None = None) -> LoadedImage:
    if isinstance(data, (str, Path)):
        path = Path(data)
        try:
            buf = path.read_bytes()
        except OSError as e:
            raise ImageDecodeError(f"cannot read {path}: {e}") from e
        name = name or path.name
    else:
        buf = bytes(data)
    rgb = cv2.cvtColor(_decode_bgr(buf), cv2.COLOR_BGR2RGB)
    return LoadedImage(pixels=rgb, origin=origin, name=name)


async def decode_image(data: bytes | Path, *, origin: ImageOrigin = ImageOrigin.UPLOAD, name: str | None = None) -> LoadedImage:
    """Decode upload bytes (or a file) and return once pixels are ready."""
    return await asyncio.to_thread(decode_image_sync, data, origin=origin, name=name)


def encode_still(frame_bgr: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".jpg", frame_bgr, [int(cv2.IMWRITE_JPEG_QUALITY), CAPTURE_JPEG_QUALITY])
    if not ok:
        raise ImageDecodeError("could not encode captured frame")
    return buf.tobytes()


async def capture_still(stream: MediaStream) -> LoadedImage:
    """Grab the current frame and turn it into a JPEG still, like an upload."""
    frame = await asyncio.to_thread(stream.read_frame)
    jpeg = encode_still(frame)
    return await decode_image(jpeg, origin=ImageOrigin.CAMERA, name="capture.jpg")
