"""Image attachment pipeline.

Two lossy stages:
- attachment time: bound the longer side, re-encode as JPEG
- send time: force a fixed square, re-encode as JPEG, base64 for the request

Both stages fall back to the original bytes when Pillow cannot decode or
encode the input.
"""

import asyncio
import base64
import io
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config.settings import settings

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path]


def _jpeg_quality(factor: float) -> int:
    """Convert a 0..1 compression factor into a Pillow JPEG quality."""
    return max(1, min(95, round(factor * 100)))


def _encode_jpeg(image: Image.Image, quality: float) -> bytes:
    """Encode an image as JPEG, flattening alpha and palette modes."""
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=_jpeg_quality(quality))
    return buffer.getvalue()


def bounded_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """Size that fits within max_dimension, keeping the aspect ratio.

    Sizes already within the bound are returned unchanged.

    Args:
        width: Source width
        height: Source height
        max_dimension: Largest allowed side

    Returns:
        (width, height) of the scaled image
    """
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def prepare_attachment(
    data: bytes,
    max_dimension: Optional[int] = None,
    quality: Optional[float] = None,
) -> Optional[bytes]:
    """Normalize a picked or dropped image before it is attached.

    Args:
        data: Encoded source image
        max_dimension: Bound for the longer side (default 1024)
        quality: JPEG compression factor 0..1 (default 0.7)

    Returns:
        JPEG bytes, the original bytes if the image cannot be processed,
        or None for empty input
    """
    if not data:
        return None

    max_dimension = max_dimension or settings.attachment_max_dimension
    quality = quality if quality is not None else settings.attachment_quality

    try:
        with Image.open(io.BytesIO(data)) as source:
            image = ImageOps.exif_transpose(source)
            target = bounded_size(image.width, image.height, max_dimension)
            if target != image.size:
                image = image.resize(target, Image.Resampling.LANCZOS)
            return _encode_jpeg(image, quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("Keeping original attachment bytes, processing failed: %s", e)
        return data


async def prepare_attachments(
    sources: Iterable[ImageSource],
    max_dimension: Optional[int] = None,
    quality: Optional[float] = None,
) -> List[bytes]:
    """Run several images through the attachment stage concurrently.

    Decoding and encoding happen on worker threads. Results keep the input
    order; unreadable files and empty payloads are left out.

    Args:
        sources: Raw bytes or file paths
        max_dimension: Bound for the longer side
        quality: JPEG compression factor 0..1

    Returns:
        Processed image payloads
    """

    async def process(source: ImageSource) -> Optional[bytes]:
        if isinstance(source, (str, Path)):
            data = await asyncio.to_thread(load_image_file, source)
            if data is None:
                return None
        else:
            data = source
        return await asyncio.to_thread(prepare_attachment, data, max_dimension, quality)

    results = await asyncio.gather(*(process(source) for source in sources))
    return [result for result in results if result]


def load_image_file(path: Union[str, Path]) -> Optional[bytes]:
    """Read a picked image file.

    Args:
        path: File to read

    Returns:
        File bytes, or None if the file cannot be read
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        logger.warning("Failed to import image %s: %s", path, e)
        return None


def resize_for_transmission(
    data: bytes,
    size: Optional[Tuple[int, int]] = None,
    quality: Optional[float] = None,
) -> bytes:
    """Resize an attached image to the fixed square sent to the model.

    The aspect ratio is not preserved.

    Args:
        data: Attached image bytes
        size: Target (width, height) (default 896x896)
        quality: JPEG compression factor 0..1 (default 0.8)

    Returns:
        JPEG bytes, or the original bytes if processing fails
    """
    size = size or settings.transmission_size
    quality = quality if quality is not None else settings.transmission_quality

    try:
        with Image.open(io.BytesIO(data)) as source:
            image = source.resize(size, Image.Resampling.LANCZOS)
            return _encode_jpeg(image, quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("Sending original image bytes, resize failed: %s", e)
        return data


def encode_images_for_request(
    images: Iterable[bytes],
    resize: bool = True,
) -> List[str]:
    """Base64-encode attached images for an outgoing request.

    Args:
        images: Attached image payloads
        resize: Apply the send-time square resize first

    Returns:
        Base64 strings, one per non-empty image
    """
    encoded = []
    for data in images:
        if not data:
            continue
        payload = resize_for_transmission(data) if resize else data
        encoded.append(base64.b64encode(payload).decode("ascii"))
    return encoded
