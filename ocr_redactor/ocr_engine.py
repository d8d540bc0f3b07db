"""
OCR adapter that turns Tesseract output into a recognition tree.

Tesseract runs once per image and emits hOCR with per-character boxes
(``hocr_char_boxes``). The block / paragraph / line / word hierarchy and
the symbol boxes therefore come from the same segmentation, so matches
inside a word can be boxed precisely.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterator, Optional, Union
from xml.etree import ElementTree

import numpy as np
import pytesseract
from PIL import Image

from .errors import RecognitionError
from .geometry import split_bbox_horizontally, union_bbox
from .models import BBox, Document, NodeLevel, RecognitionNode, Symbol


logger = logging.getLogger(__name__)

# hOCR element classes
HOCR_BLOCK = "ocr_carea"
HOCR_PARAGRAPH = "ocr_par"
HOCR_LINES = {"ocr_line", "ocr_header", "ocr_caption", "ocr_textfloat"}
HOCR_WORD = "ocrx_word"
HOCR_SYMBOL = "ocrx_cinfo"

HOCR_CONFIG = "-c hocr_char_boxes=1"

LINE_SEPARATOR = " "
PARAGRAPH_SEPARATOR = "\n"
BLOCK_SEPARATOR = "\n\n"


class OcrEngine(ABC):
    """
    A text recognition engine.

    One instance is owned by a RedactionContext and is not assumed to be
    safe for concurrent `recognize` calls.
    """

    name = "base"

    @abstractmethod
    def recognize(self, image: np.ndarray) -> Document:
        """Recognize an RGBA bitmap and return its recognition tree."""

    def close(self) -> None:
        """Release engine resources."""


def parse_title(title: Optional[str]) -> dict[str, list[str]]:
    """
    Split an hOCR ``title`` into properties.

    ``bbox 0 0 30 12; x_wconf 91`` becomes
    ``{"bbox": ["0", "0", "30", "12"], "x_wconf": ["91"]}``.
    """
    props = {}
    for part in (title or "").split(";"):
        tokens = part.split()
        if tokens:
            props[tokens[0]] = tokens[1:]
    return props


def _title_bbox(props: dict[str, list[str]], key: str = "bbox") -> Optional[BBox]:
    values = props.get(key)
    if not values or len(values) != 4:
        return None
    try:
        x0, y0, x1, y1 = (int(float(v)) for v in values)
    except ValueError:
        return None
    return (x0, y0, x1, y1)


def _title_conf(props: dict[str, list[str]]) -> Optional[float]:
    try:
        conf = float(props["x_wconf"][0])
    except (KeyError, IndexError, ValueError):
        return None
    return None if conf < 0 else conf / 100.0


def _classes(element: ElementTree.Element) -> set[str]:
    return set((element.get("class") or "").split())


def _descendants(element: ElementTree.Element, classes: set[str]) -> Iterator[ElementTree.Element]:
    """Descendants carrying any of `classes`, in document order."""
    for child in element.iter():
        if child is not element and _classes(child) & classes:
            yield child


def _element_text(element: ElementTree.Element) -> str:
    return "".join(element.itertext()).strip()


def word_symbols(element: ElementTree.Element, text: str, bbox: BBox) -> list[Symbol]:
    """
    Character boxes of one ``ocrx_word``.

    When the ``ocrx_cinfo`` boxes do not line up one-to-one with the word's
    characters the word box is split evenly instead.
    """
    symbols = []
    for cinfo in _descendants(element, {HOCR_SYMBOL}):
        char_bbox = _title_bbox(parse_title(cinfo.get("title")), "x_bboxes")
        char_text = "".join(cinfo.itertext())
        if char_bbox is None or not char_text:
            continue
        symbols.append(Symbol(text=char_text, bbox=char_bbox))

    if "".join(s.text for s in symbols) == text and len(symbols) == len(text):
        return symbols

    logger.debug("Symbol count mismatch for %r (%d boxes), splitting word box", text, len(symbols))
    return [
        Symbol(text=ch, bbox=box)
        for ch, box in zip(text, split_bbox_horizontally(bbox, len(text)))
    ]


def _make_node(
    level: NodeLevel,
    children: list[RecognitionNode],
    separator: str,
    bbox: Optional[BBox]
) -> RecognitionNode:
    text = separator.join(c.text for c in children)
    if bbox is None:
        bbox = union_bbox(c.bbox for c in children)
    return RecognitionNode(level=level, text=text, bbox=bbox, children=children)


def _word_node(element: ElementTree.Element) -> Optional[RecognitionNode]:
    text = _element_text(element)
    if not text:
        return None
    props = parse_title(element.get("title"))
    bbox = _title_bbox(props)
    if bbox is None:
        return None
    return RecognitionNode(
        level=NodeLevel.WORD,
        text=text,
        bbox=bbox,
        symbols=word_symbols(element, text, bbox),
        confidence=_title_conf(props),
    )


def build_document(hocr: Union[str, bytes, None]) -> Document:
    """
    Build a recognition tree from Tesseract hOCR output.

    Blank words are dropped, and so is any line, paragraph or block left
    without words. A structural element without its own ``bbox`` gets the
    union of its children.

    Args:
        hocr: hOCR document as produced by ``image_to_pdf_or_hocr``

    Returns:
        Document; empty when the output carries no blocks

    Raises:
        RecognitionError: If the output is not well-formed hOCR
    """
    if not hocr:
        logger.warning("OCR output is missing block data, treating as empty")
        return Document()

    try:
        root = ElementTree.fromstring(hocr)
    except ElementTree.ParseError as e:
        raise RecognitionError(f"Malformed hOCR output: {e}") from e

    blocks = []
    for block in _descendants(root, {HOCR_BLOCK}):
        par_nodes = []
        for par in _descendants(block, {HOCR_PARAGRAPH}):
            line_nodes = []
            for line in _descendants(par, HOCR_LINES):
                words = [w for w in map(_word_node, _descendants(line, {HOCR_WORD})) if w is not None]
                if words:
                    line_nodes.append(_make_node(
                        NodeLevel.LINE, words, LINE_SEPARATOR,
                        _title_bbox(parse_title(line.get("title")))
                    ))
            if line_nodes:
                par_nodes.append(_make_node(
                    NodeLevel.PARAGRAPH, line_nodes, PARAGRAPH_SEPARATOR,
                    _title_bbox(parse_title(par.get("title")))
                ))
        if par_nodes:
            blocks.append(_make_node(
                NodeLevel.BLOCK, par_nodes, BLOCK_SEPARATOR,
                _title_bbox(parse_title(block.get("title")))
            ))

    if not blocks:
        logger.warning("OCR output is missing block data, treating as empty")

    return Document(blocks=blocks, text=BLOCK_SEPARATOR.join(b.text for b in blocks))


def _to_pil_rgb(image: np.ndarray) -> Image.Image:
    """Flatten an RGBA bitmap onto white for recognition."""
    img = Image.fromarray(image)
    if img.mode == "RGBA":
        background = Image.new("RGBA", img.size, (255, 255, 255, 255))
        img = Image.alpha_composite(background, img)
    return img.convert("RGB")


class TesseractEngine(OcrEngine):
    """Recognition tree extraction with pytesseract."""

    name = "tesseract"

    def __init__(
        self,
        lang: str = "eng",
        psm: int = 3,
        oem: int = 1,
        tesseract_cmd: Optional[str] = None
    ):
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = lang
        self.psm = psm
        self.oem = oem
        self._closed = False

        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise RecognitionError(f"Tesseract is not available: {e}") from e
        logger.debug("Using tesseract %s (lang=%s, psm=%d, oem=%d)", version, lang, psm, oem)

    @property
    def config(self) -> str:
        return f"--oem {self.oem} --psm {self.psm}"

    def recognize(self, image: np.ndarray) -> Document:
        if self._closed:
            raise RecognitionError("OCR engine has been closed")

        img = _to_pil_rgb(image)
        try:
            hocr = pytesseract.image_to_pdf_or_hocr(
                img, lang=self.lang, config=f"{self.config} {HOCR_CONFIG}", extension="hocr"
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError, RuntimeError) as e:
            raise RecognitionError(f"Tesseract failed: {e}") from e

        return build_document(hocr)

    def close(self) -> None:
        self._closed = True
