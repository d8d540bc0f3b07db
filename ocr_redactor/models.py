"""
Data models for OCR region redaction.

Defines the recognition tree produced by OCR, the regions selected for
redaction, and the per-image / per-batch results.
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Optional
from enum import Enum


BBox = tuple[float, float, float, float]  # x0, y0, x1, y1 in source pixels

DEFAULT_PATTERN = r"nix(?:os)?|This ?content ?is|blocked ?by ?this ?server"


class NodeLevel(Enum):
    """Nesting level of a recognition node."""
    BLOCK = "block"
    PARAGRAPH = "paragraph"
    LINE = "line"
    WORD = "word"


@dataclass
class Symbol:
    """A single recognized character with its box."""
    text: str
    bbox: BBox


@dataclass
class RecognitionNode:
    """
    A block, paragraph, line or word of the recognition tree.

    Words hold `symbols`; every other level holds `children` at the
    next-finer level.
    """
    level: NodeLevel
    text: str
    bbox: BBox
    children: list["RecognitionNode"] = field(default_factory=list)
    symbols: list[Symbol] = field(default_factory=list)
    confidence: Optional[float] = None

    @property
    def is_word(self) -> bool:
        return self.level is NodeLevel.WORD


@dataclass
class Document:
    """Root of the recognition tree plus the flat transcript."""
    blocks: list[RecognitionNode] = field(default_factory=list)
    text: str = ""

    @property
    def words(self) -> list[RecognitionNode]:
        out = []
        stack = list(reversed(self.blocks))
        while stack:
            node = stack.pop()
            if node.is_word:
                out.append(node)
            else:
                stack.extend(reversed(node.children))
        return out


@dataclass(frozen=True)
class MatchPattern:
    """
    A compiled, case-insensitive pattern.

    Coarser levels only ever test for a single match; the word level always
    scans for every occurrence.
    """
    regex: re.Pattern
    source: str

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None

    def finditer(self, text: str):
        return self.regex.finditer(text)


@dataclass
class RedactionRegion:
    """A box selected for redaction."""
    bbox: BBox
    level: NodeLevel = NodeLevel.WORD
    text: str = ""

    @property
    def x0(self) -> float:
        return self.bbox[0]

    @property
    def y0(self) -> float:
        return self.bbox[1]

    @property
    def x1(self) -> float:
        return self.bbox[2]

    @property
    def y1(self) -> float:
        return self.bbox[3]

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    def to_dict(self) -> dict:
        return {
            "bbox": list(self.bbox),
            "level": self.level.value,
            "text": self.text,
        }


@dataclass
class RedactedImage:
    """Encoded output artifact that replaces the source image."""
    filename: str
    data: bytes
    mime_type: str = "image/png"
    width: int = 0
    height: int = 0


@dataclass
class ImageResult:
    """Results from processing a single image."""
    image_id: str
    file_path: str
    width: int = 0
    height: int = 0
    transcript_matched: bool = False
    regions: list[RedactionRegion] = field(default_factory=list)
    output_path: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def redacted(self) -> bool:
        return self.error is None and bool(self.regions)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["regions"] = [r.to_dict() for r in self.regions]
        return data


@dataclass
class BatchResult:
    """Results from processing a batch of images."""
    images: list[ImageResult] = field(default_factory=list)

    @property
    def total_images(self) -> int:
        return len(self.images)

    @property
    def total_regions(self) -> int:
        return sum(len(i.regions) for i in self.images)

    @property
    def all_regions(self) -> list[tuple[ImageResult, RedactionRegion]]:
        return [(image, region) for image in self.images for region in image.regions]


@dataclass
class RedactionParams:
    """Parameters for a redaction run."""
    pattern: str = DEFAULT_PATTERN
    flags: str = ""  # Extra regex flag letters (gimsuxy)
    lang: str = "eng"
    psm: int = 3  # Tesseract page segmentation mode (3 = fully automatic)
    oem: int = 1  # Tesseract engine mode (1 = LSTM only)
    tesseract_cmd: Optional[str] = None
    require_transcript_match: bool = True  # Skip locating when the transcript is clean
