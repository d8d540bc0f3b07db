"""
Output generation for manifest.json, regions.csv, and summary.json.

Redacted images themselves are written by the pipeline; this module
records what was done to each image.
"""

import json
import csv
from pathlib import Path
from datetime import datetime
from typing import Any
from statistics import mean, median, stdev

from .models import BatchResult, ImageResult, NodeLevel, RedactionParams, RedactionRegion


REGION_FIELDS = [
    "image_id",
    "file_path",
    "region_index",
    "level",
    "x0",
    "y0",
    "x1",
    "y1",
    "width",
    "height",
    "text",
    "output_path",
]


def params_to_dict(params: RedactionParams) -> dict:
    """Convert RedactionParams to a JSON-serializable dict."""
    return {
        "pattern": params.pattern,
        "flags": params.flags,
        "lang": params.lang,
        "psm": params.psm,
        "oem": params.oem,
        "require_transcript_match": params.require_transcript_match,
    }


def region_row(image: ImageResult, index: int, region: RedactionRegion) -> dict:
    """Flatten one region into a CSV row."""
    return {
        "image_id": image.image_id,
        "file_path": image.file_path,
        "region_index": index,
        "level": region.level.value,
        "x0": region.x0,
        "y0": region.y0,
        "x1": region.x1,
        "y1": region.y1,
        "width": region.width,
        "height": region.height,
        "text": region.text,
        "output_path": image.output_path,
    }


def write_manifest_json(
    batch: BatchResult,
    params: RedactionParams,
    output_path: Path
) -> None:
    """
    Write the full per-image manifest to JSON.

    Args:
        batch: Complete batch results
        params: Redaction parameters used
        output_path: Path to write JSON file
    """
    manifest = {
        "redaction_timestamp": datetime.now().isoformat(),
        "parameters": params_to_dict(params),
        "summary": {
            "total_images": batch.total_images,
            "total_regions": batch.total_regions,
        },
        "images": [image.to_dict() for image in batch.images],
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)


def write_regions_csv(batch: BatchResult, output_path: Path) -> None:
    """
    Write every region as one CSV row. An empty batch still gets a header.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=REGION_FIELDS)
        writer.writeheader()
        for image in batch.images:
            for i, region in enumerate(image.regions):
                writer.writerow(region_row(image, i, region))


def calculate_distribution_stats(values: list[float]) -> dict[str, Any]:
    """
    Calculate distribution statistics for a list of values.

    Args:
        values: List of numeric values

    Returns:
        Dictionary with distribution statistics
    """
    if not values:
        return {
            "count": 0,
            "mean": 0,
            "median": 0,
            "std": 0,
            "min": 0,
            "max": 0,
        }

    return {
        "count": len(values),
        "mean": round(mean(values), 2),
        "median": round(median(values), 2),
        "std": round(stdev(values), 2) if len(values) > 1 else 0,
        "min": min(values),
        "max": max(values),
    }


def write_summary_json(
    batch: BatchResult,
    params: RedactionParams,
    output_path: Path
) -> None:
    """
    Write aggregate statistics to summary.json.
    """
    regions = [region for _, region in batch.all_regions]

    level_counts = {level.value: 0 for level in NodeLevel}
    for region in regions:
        level_counts[region.level.value] += 1

    failed = [i for i in batch.images if i.error is not None]
    error_types: dict[str, int] = {}
    for image in failed:
        error_types[image.error_type or "unknown"] = error_types.get(image.error_type or "unknown", 0) + 1

    summary = {
        "redaction_timestamp": datetime.now().isoformat(),
        "parameters": {
            "pattern": params.pattern,
            "lang": params.lang,
        },
        "batch_stats": {
            "total_images": batch.total_images,
            "redacted_images": sum(1 for i in batch.images if i.redacted),
            "transcript_matches": sum(1 for i in batch.images if i.transcript_matched),
            "failed_images": len(failed),
            "total_regions": batch.total_regions,
        },
        "regions_per_image": calculate_distribution_stats(
            [len(i.regions) for i in batch.images if i.error is None]
        ),
        "regions_by_level": level_counts,
        "size_stats": {
            "width_pixels": calculate_distribution_stats([r.width for r in regions]),
            "height_pixels": calculate_distribution_stats([r.height for r in regions]),
        },
        "errors": {
            "by_type": error_types,
            "failed_image_ids": [i.image_id for i in failed],
        },
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)


def write_all_outputs(
    batch: BatchResult,
    params: RedactionParams,
    output_dir: Path
) -> dict[str, Path]:
    """
    Write all report files (manifest.json, regions.csv, summary.json).

    Args:
        batch: Complete batch results
        params: Redaction parameters used
        output_dir: Base output directory

    Returns:
        Dictionary mapping output type to file path
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        "manifest_json": output_dir / "manifest.json",
        "regions_csv": output_dir / "regions.csv",
        "summary_json": output_dir / "summary.json",
    }

    write_manifest_json(batch, params, paths["manifest_json"])
    write_regions_csv(batch, paths["regions_csv"])
    write_summary_json(batch, params, paths["summary_json"])

    return paths
