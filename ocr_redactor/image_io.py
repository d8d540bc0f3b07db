"""
Image decoding and encoding.

Bitmaps are handled as RGBA numpy arrays of shape (height, width, 4). PIL
does the file format work; failures are raised as DecodeError/EncodeError
so the pipeline can scope them to a single image.
"""

import io
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError, EncodeError
from .models import RedactedImage


OUTPUT_EXTENSION = ".png"
OUTPUT_MIME_TYPE = "image/png"

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff"}


def to_rgba(image: Image.Image) -> np.ndarray:
    """Convert a PIL image to an RGBA uint8 array."""
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.array(image, dtype=np.uint8)


def load_image(source: Union[str, Path, bytes]) -> np.ndarray:
    """
    Decode an image file into an RGBA bitmap.

    EXIF orientation is applied so the bitmap matches what a viewer shows.

    Args:
        source: Path to the image or its raw bytes

    Returns:
        RGBA array of shape (height, width, 4)

    Raises:
        DecodeError: If the file cannot be read or decoded
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            fp = io.BytesIO(source)
        else:
            fp = str(source)
        with Image.open(fp) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            return to_rgba(img)
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise DecodeError(f"Cannot decode image: {e}") from e


def encode_png(bitmap: np.ndarray) -> bytes:
    """
    Encode a bitmap as PNG.

    Raises:
        EncodeError: If the array is not a valid image or PIL refuses it
    """
    if bitmap is None or bitmap.size == 0:
        raise EncodeError("Cannot encode an empty bitmap")

    try:
        img = Image.fromarray(np.ascontiguousarray(bitmap, dtype=np.uint8))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    except (OSError, ValueError, TypeError) as e:
        raise EncodeError(f"Cannot encode image: {e}") from e

    data = buf.getvalue()
    if not data:
        raise EncodeError("Encoder produced no output")
    return data


def output_filename(source_name: str, keep_extension: bool = False) -> str:
    """
    Name of the redacted artifact: same base name, normalized extension.

    ``holiday.photo.jpg`` becomes ``holiday.photo.png``. With
    `keep_extension` the original extension stays in the name
    (``holiday.photo_jpg.png``) so that ``x.jpg`` and ``x.png`` differ.
    """
    path = Path(source_name)
    if keep_extension and path.suffix:
        return f"{path.stem}_{path.suffix[1:].lower()}{OUTPUT_EXTENSION}"
    return f"{path.stem}{OUTPUT_EXTENSION}"


def make_artifact(bitmap: np.ndarray, source_name: str) -> RedactedImage:
    """Encode a bitmap and wrap it as a named output artifact."""
    data = encode_png(bitmap)
    height, width = bitmap.shape[:2]
    return RedactedImage(
        filename=output_filename(source_name),
        data=data,
        mime_type=OUTPUT_MIME_TYPE,
        width=width,
        height=height,
    )


def save_artifact(artifact: RedactedImage, path: Path) -> Path:
    """
    Write an artifact to `path`, creating parent directories.

    Returns:
        Path of the written file
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(artifact.data)
    return path


def is_image_file(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS
