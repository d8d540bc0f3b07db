"""
Process-wide redaction resources.

A RedactionContext owns the one OCR engine and the one cover image used for
every redaction in the process. The engine is created on first use and torn
down explicitly with `close()`.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

import httpx
import numpy as np

from .errors import ConfigurationError, DecodeError
from .image_io import load_image
from .models import RedactionParams
from .ocr_engine import OcrEngine, TesseractEngine
from .pattern import compile_pattern


logger = logging.getLogger(__name__)


def load_cover_image(source: Union[str, Path], timeout: float = 15.0) -> np.ndarray:
    """
    Load the cover bitmap from a local path or an http(s) URL.

    Args:
        source: File path or URL
        timeout: Download timeout in seconds

    Returns:
        RGBA cover bitmap

    Raises:
        ConfigurationError: If the cover cannot be fetched or decoded
    """
    src = str(source)
    try:
        if src.startswith(("http://", "https://")):
            resp = httpx.get(src, timeout=timeout, follow_redirects=True)
            resp.raise_for_status()
            cover = load_image(resp.content)
        else:
            path = Path(src)
            if not path.is_file():
                raise ConfigurationError(f"Cover image does not exist: {src}")
            cover = load_image(path)
    except httpx.HTTPError as e:
        raise ConfigurationError(f"Cannot fetch cover image {src}: {e}") from e
    except DecodeError as e:
        raise ConfigurationError(f"Cannot decode cover image {src}: {e}") from e

    logger.info("Loaded cover image %s (%dx%d)", src, cover.shape[1], cover.shape[0])
    return cover


def tesseract_factory(params: RedactionParams) -> Callable[[], OcrEngine]:
    def factory() -> OcrEngine:
        return TesseractEngine(
            lang=params.lang,
            psm=params.psm,
            oem=params.oem,
            tesseract_cmd=params.tesseract_cmd,
        )
    return factory


class RedactionContext:
    """
    Holds the OCR engine, the cover image and the compiled pattern.

    Use as a context manager, or call `close()` once at shutdown.
    """

    def __init__(
        self,
        cover_image: np.ndarray,
        params: Optional[RedactionParams] = None,
        engine_factory: Optional[Callable[[], OcrEngine]] = None,
    ):
        self.params = params or RedactionParams()
        self.cover_image = cover_image
        self.pattern = compile_pattern(self.params.pattern, self.params.flags)
        self._engine_factory = engine_factory or tesseract_factory(self.params)
        self._engine: Optional[OcrEngine] = None
        self._closed = False

    @property
    def engine(self) -> OcrEngine:
        if self._closed:
            raise RuntimeError("RedactionContext is closed")
        if self._engine is None:
            self._engine = self._engine_factory()
            logger.debug("Initialized OCR engine %s", self._engine.name)
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        if self._engine is not None:
            self._engine.close()
            self._engine = None
        self._closed = True

    def __enter__(self) -> "RedactionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
