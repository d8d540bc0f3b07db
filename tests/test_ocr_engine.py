import numpy as np
import pytest
import pytesseract

from ocr_redactor import ocr_engine
from ocr_redactor.errors import RecognitionError
from ocr_redactor.models import NodeLevel
from ocr_redactor.ocr_engine import TesseractEngine, build_document, parse_title
from ocr_redactor.region_locator import locate


HOCR_HEAD = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN"
    "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="en" lang="en">
 <head><title></title></head>
 <body>
  <div class='ocr_page' id='page_1' title='image "unknown.png"; bbox 0 0 300 100; ppageno 0'>
"""

HOCR_TAIL = """
  </div>
 </body>
</html>
"""


def hocr_word(text, x, y, char_width=10, height=12, conf=91, chars=True):
    """An ocrx_word span with one ocrx_cinfo per character."""
    bbox = f"{x} {y} {x + len(text) * char_width} {y + height}"
    inner = text
    if chars:
        inner = "".join(
            f"<span class='ocrx_cinfo' title='x_bboxes {x + i * char_width} {y} "
            f"{x + (i + 1) * char_width} {y + height}; x_conf 99'>{ch}</span>"
            for i, ch in enumerate(text)
        )
    return f"<span class='ocrx_word' title='bbox {bbox}; x_wconf {conf}'>{inner}</span>"


def hocr_line(words, bbox=None, cls="ocr_line"):
    title = f" title='bbox {bbox}; baseline 0 0'" if bbox else ""
    return f"<span class='{cls}'{title}>{' '.join(words)}</span>"


def hocr_par(lines, bbox=None):
    title = f" title='bbox {bbox}'" if bbox else ""
    return f"<p class='ocr_par' lang='eng'{title}>{''.join(lines)}</p>"


def hocr_block(pars, bbox=None):
    title = f" title='bbox {bbox}'" if bbox else ""
    return f"<div class='ocr_carea'{title}>{''.join(pars)}</div>"


def hocr(*blocks):
    return (HOCR_HEAD + "".join(blocks) + HOCR_TAIL).encode("utf-8")


SAMPLE = hocr(
    hocr_block([
        hocr_par([
            hocr_line([hocr_word("foo", 0, 0), hocr_word("nixos", 40, 0), hocr_word("bar", 100, 0)], "0 0 130 12"),
            hocr_line([hocr_word("next", 0, 20), "<span class='ocrx_word' title='bbox 50 20 50 20'> </span>"], "0 20 40 32"),
        ], "0 0 130 32"),
    ], "0 0 200 40"),
    hocr_block([
        hocr_par([hocr_line([hocr_word("second", 0, 60)], "0 60 60 72", cls="ocr_header")], "0 60 60 72"),
    ], "0 60 60 72"),
    # image regions come back as empty blocks
    hocr_block([], "200 0 300 100"),
)


def test_parse_title_splits_properties():
    props = parse_title("bbox 0 0 30 12; x_wconf 91")

    assert props == {"bbox": ["0", "0", "30", "12"], "x_wconf": ["91"]}
    assert parse_title(None) == {}


def test_build_document_hierarchy_and_text():
    doc = build_document(SAMPLE)

    assert [b.level for b in doc.blocks] == [NodeLevel.BLOCK, NodeLevel.BLOCK]
    first = doc.blocks[0]
    assert first.bbox == (0, 0, 200, 40)
    assert len(first.children) == 1
    par = first.children[0]
    assert par.level is NodeLevel.PARAGRAPH
    assert [ln.text for ln in par.children] == ["foo nixos bar", "next"]
    assert par.text == "foo nixos bar\nnext"
    assert doc.text == "foo nixos bar\nnext\n\nsecond"


def test_build_document_skips_blank_words():
    doc = build_document(SAMPLE)

    assert [w.text for w in doc.words] == ["foo", "nixos", "bar", "next", "second"]
    assert doc.words[0].confidence == pytest.approx(0.91)


def test_symbols_come_from_character_boxes():
    doc = build_document(SAMPLE)

    nixos = doc.words[1]
    assert [s.text for s in nixos.symbols] == list("nixos")
    assert nixos.symbols[0].bbox == (40, 0, 50, 12)
    assert nixos.symbols[-1].bbox == (80, 0, 90, 12)


def test_built_document_feeds_locator():
    doc = build_document(SAMPLE)

    regions = locate(doc, "nix")

    assert [r.bbox for r in regions] == [(40, 0, 70, 12)]


@pytest.mark.parametrize("output", [b"", None, hocr()])
def test_missing_block_data_yields_empty_document(output):
    doc = build_document(output)

    assert doc.blocks == []
    assert doc.text == ""
    assert locate(doc, "nix") == []


def test_malformed_output_is_recognition_error():
    with pytest.raises(RecognitionError):
        build_document(b"<html><body><div class='ocr_carea'>")


def test_structural_boxes_fall_back_to_word_union():
    doc = build_document(hocr(hocr_block([hocr_par([hocr_line([
        hocr_word("ab", 10, 10, height=10),
        hocr_word("cd", 40, 12, height=10),
    ])])])))

    assert doc.blocks[0].bbox == (10, 10, 60, 22)
    assert doc.blocks[0].children[0].children[0].bbox == (10, 10, 60, 22)


def test_word_without_character_boxes_is_split_evenly():
    doc = build_document(hocr(hocr_block([hocr_par([hocr_line([
        hocr_word("abcd", 0, 0, chars=False),
    ])])])))

    w = doc.words[0]
    assert [s.text for s in w.symbols] == list("abcd")
    assert [s.bbox for s in w.symbols] == [
        (0, 0, 10, 12), (10, 0, 20, 12), (20, 0, 30, 12), (30, 0, 40, 12)
    ]


@pytest.fixture
def fake_tesseract(monkeypatch):
    calls = []

    def image_to_pdf_or_hocr(image, **kwargs):
        calls.append(kwargs)
        return SAMPLE

    monkeypatch.setattr(ocr_engine.pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(ocr_engine.pytesseract, "image_to_pdf_or_hocr", image_to_pdf_or_hocr)
    return calls


def test_tesseract_engine_recognizes_in_one_pass(fake_tesseract):
    engine = TesseractEngine(lang="eng", psm=6)
    image = np.zeros((100, 300, 4), dtype=np.uint8)

    doc = engine.recognize(image)

    assert engine.config == "--oem 1 --psm 6"
    assert doc.text.startswith("foo nixos bar")
    assert len(fake_tesseract) == 1
    assert fake_tesseract[0]["extension"] == "hocr"
    assert "hocr_char_boxes=1" in fake_tesseract[0]["config"]


def test_tesseract_engine_wraps_failures(fake_tesseract, monkeypatch):
    def boom(*args, **kwargs):
        raise pytesseract.TesseractError(1, "bad image")

    monkeypatch.setattr(ocr_engine.pytesseract, "image_to_pdf_or_hocr", boom)
    engine = TesseractEngine()

    with pytest.raises(RecognitionError):
        engine.recognize(np.zeros((10, 10, 4), dtype=np.uint8))


def test_tesseract_engine_refuses_after_close(fake_tesseract):
    engine = TesseractEngine()
    engine.close()

    with pytest.raises(RecognitionError):
        engine.recognize(np.zeros((10, 10, 4), dtype=np.uint8))


def test_missing_tesseract_binary_is_recognition_error(monkeypatch):
    def missing():
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(ocr_engine.pytesseract, "get_tesseract_version", missing)

    with pytest.raises(RecognitionError):
        TesseractEngine()
