"""
Per-image and batch orchestration.

Each image goes through decode -> recognize -> locate -> redact -> encode.
Any failure is recorded on that image's result and never stops the batch;
the original file is never modified.
"""

import multiprocessing
import multiprocessing.util
import os
from collections import Counter
from pathlib import Path
from typing import Callable, Optional
import logging

import numpy as np
from tqdm import tqdm

from .context import RedactionContext
from .errors import RedactorError
from .image_io import is_image_file, load_image, output_filename, save_artifact
from .models import BatchResult, ImageResult, RedactedImage, RedactionParams, RedactionRegion
from .ocr_engine import OcrEngine
from .raster_redactor import redact_image
from .region_locator import locate


logger = logging.getLogger(__name__)

# Set in each worker process by _init_worker
_worker_context: Optional[RedactionContext] = None


def find_images(input_path: Path, subset: Optional[int] = None) -> list[Path]:
    """
    List the images to process.

    Args:
        input_path: A single image file or a directory searched recursively
        subset: If set, only return the first N images

    Returns:
        Sorted list of image paths
    """
    if input_path.is_file():
        images = [input_path] if is_image_file(input_path) else []
    else:
        images = sorted(p for p in input_path.glob("**/*") if is_image_file(p))
    if subset is not None:
        images = images[:subset]
    return images


def plan_output_paths(image_paths: list[Path], input_root: Optional[Path] = None) -> list[Path]:
    """
    Pick a distinct artifact path, relative to ``images/``, for every input.

    The input's folder relative to `input_root` is kept, so ``a/shot.png``
    and ``b/shot.png`` land in different folders. Inputs in one folder that
    share a stem (``x.jpg`` and ``x.png``) keep their extension in the name.

    Args:
        image_paths: Images in processing order
        input_root: Folder the relative paths start from; defaults to the
            deepest folder shared by all inputs

    Returns:
        Relative output paths, aligned with `image_paths`
    """
    if not image_paths:
        return []
    if input_root is None:
        input_root = Path(os.path.commonpath([str(p.parent.absolute()) for p in image_paths]))
    root = input_root.absolute()

    def relative_dir(path: Path) -> Path:
        try:
            return path.parent.absolute().relative_to(root)
        except ValueError:
            return Path()

    def key(path: Path) -> str:
        # case-insensitive file systems would still collide
        return path.as_posix().lower()

    plain = [relative_dir(p) / output_filename(p.name) for p in image_paths]
    counts = Counter(key(p) for p in plain)

    planned = []
    used = set()
    for path, candidate in zip(image_paths, plain):
        if counts[key(candidate)] > 1:
            candidate = candidate.with_name(output_filename(path.name, keep_extension=True))
        base = candidate
        n = 2
        while key(candidate) in used:
            candidate = base.with_name(f"{base.stem}_{n}{base.suffix}")
            n += 1
        used.add(key(candidate))
        planned.append(candidate)
    return planned


def redact_bitmap(
    bitmap: np.ndarray,
    source_name: str,
    context: RedactionContext
) -> tuple[bool, list[RedactionRegion], Optional[RedactedImage]]:
    """
    Recognize, locate and redact a single decoded bitmap.

    Returns:
        (transcript_matched, regions, artifact). The artifact is None when
        there is nothing to redact.

    Raises:
        RecognitionError: If OCR fails
        EncodeError: If the redacted bitmap cannot be encoded
    """
    document = context.engine.recognize(bitmap)
    logger.debug("Recognized %d word(s) in %s", len(document.words), source_name)

    matched = context.pattern.matches(document.text)
    if not matched and context.params.require_transcript_match:
        return False, [], None

    regions = locate(document, context.pattern)
    if not regions:
        return matched, [], None

    artifact = redact_image(bitmap, regions, context.cover_image, source_name)
    return matched, regions, artifact


def process_image(
    image_path: Path,
    context: RedactionContext,
    output_dir: Optional[Path] = None,
    output_name: Optional[Path] = None
) -> ImageResult:
    """
    Process a single image file.

    Args:
        image_path: Path to the source image
        context: Shared engine, cover and pattern
        output_dir: Directory for results; artifacts go under ``images/`` (optional)
        output_name: Artifact path relative to ``images/``; defaults to the
            artifact's own file name

    Returns:
        ImageResult; `error` is set instead of raising
    """
    result = ImageResult(image_id=image_path.stem, file_path=str(image_path))

    try:
        bitmap = load_image(image_path)
        result.height, result.width = bitmap.shape[:2]

        matched, regions, artifact = redact_bitmap(bitmap, image_path.name, context)
        result.transcript_matched = matched
        result.regions = regions

        if artifact is not None and output_dir is not None:
            target = output_dir / "images" / (output_name or artifact.filename)
            result.output_path = str(save_artifact(artifact, target))

        logger.debug("%s: %d region(s)", image_path.name, len(regions))

    except RedactorError as e:
        logger.error(f"Error processing image {image_path}: {e}")
        result.error = str(e)
        result.error_type = type(e).__name__
        result.regions = []
    except Exception as e:
        logger.exception(f"Unexpected error processing image {image_path}")
        result.error = str(e)
        result.error_type = type(e).__name__
        result.regions = []

    return result


def _init_worker(
    cover_image: np.ndarray,
    params: RedactionParams,
    engine_factory: Optional[Callable[[], OcrEngine]] = None
) -> None:
    """Pool initializer: one context (and OCR engine) per worker process."""
    global _worker_context
    _worker_context = RedactionContext(cover_image, params, engine_factory)
    # Runs when the worker exits after pool.close()
    multiprocessing.util.Finalize(None, _worker_context.close, exitpriority=10)


def _process_image_wrapper(args: tuple) -> ImageResult:
    """
    Wrapper for multiprocessing - unpacks arguments.
    """
    image_path, output_dir, output_name = args
    return process_image(image_path, _worker_context, output_dir, output_name)


def process_batch(
    image_paths: list[Path],
    output_dir: Optional[Path],
    params: RedactionParams,
    cover_image: np.ndarray,
    workers: int = 1,
    engine_factory: Optional[Callable[[], OcrEngine]] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    input_root: Optional[Path] = None
) -> BatchResult:
    """
    Process a list of images, optionally in parallel.

    With `workers <= 1` a single context is created here and closed at the
    end. Otherwise every worker process owns its own context, so no OCR
    engine is shared between concurrent calls; each worker closes its
    context when the pool shuts down.

    Args:
        image_paths: Images to process
        output_dir: Directory for redacted images (optional)
        params: Redaction parameters
        cover_image: RGBA cover bitmap
        workers: Number of worker processes
        engine_factory: OCR engine factory; must be picklable when
            `workers > 1` since every worker calls it
        progress_callback: Optional callback for progress updates (current, total)
        input_root: Folder whose layout is mirrored under ``images/``

    Returns:
        BatchResult in input order
    """
    total = len(image_paths)
    if total == 0:
        logger.warning("No images to process")
        return BatchResult()

    logger.info(f"Processing {total} image(s) with {max(workers, 1)} worker(s)")

    output_names = plan_output_paths(image_paths, input_root)

    images = []
    if workers <= 1:
        with RedactionContext(cover_image, params, engine_factory) as context:
            for i, (path, name) in enumerate(zip(image_paths, output_names)):
                images.append(process_image(path, context, output_dir, name))
                if progress_callback:
                    progress_callback(i + 1, total)
    else:
        args_list = [(path, output_dir, name) for path, name in zip(image_paths, output_names)]
        with multiprocessing.Pool(
            workers,
            initializer=_init_worker,
            initargs=(cover_image, params, engine_factory)
        ) as pool:
            for i, result in enumerate(pool.imap(_process_image_wrapper, args_list)):
                images.append(result)
                if progress_callback:
                    progress_callback(i + 1, total)
            # Let workers exit normally so their finalizers close the engines
            pool.close()
            pool.join()

    return BatchResult(images=images)


def process_batch_with_tqdm(
    image_paths: list[Path],
    output_dir: Optional[Path],
    params: RedactionParams,
    cover_image: np.ndarray,
    workers: int = 1,
    engine_factory: Optional[Callable[[], OcrEngine]] = None,
    input_root: Optional[Path] = None
) -> BatchResult:
    """
    Process a batch with a tqdm progress bar.
    """
    with tqdm(total=len(image_paths), desc="Redacting images", unit="image") as bar:
        def advance(current: int, total: int) -> None:
            bar.update(current - bar.n)

        return process_batch(
            image_paths,
            output_dir,
            params,
            cover_image,
            workers=workers,
            engine_factory=engine_factory,
            progress_callback=advance,
            input_root=input_root,
        )


def get_processing_stats(batch: BatchResult) -> dict:
    """
    Get statistics about the processing run.

    Args:
        batch: Completed batch result

    Returns:
        Dictionary with processing statistics
    """
    failed = [i for i in batch.images if i.error is not None]
    redacted = [i for i in batch.images if i.redacted]

    return {
        "total_images": batch.total_images,
        "successful_images": batch.total_images - len(failed),
        "failed_images": len(failed),
        "redacted_images": len(redacted),
        "clean_images": batch.total_images - len(failed) - len(redacted),
        "total_regions": batch.total_regions,
        "failed_image_ids": [i.image_id for i in failed],
    }
