import re

import pytest

from ocr_redactor.errors import ConfigurationError
from ocr_redactor.models import NodeLevel
from ocr_redactor.pattern import compile_pattern
from ocr_redactor.region_locator import locate, locate_in_node, word_regions

from builders import block, document, line, paragraph, word, words_line


NIX = "nix(?:os)?"


def boxes(regions):
    return [r.bbox for r in regions]


def test_clean_document_yields_no_regions():
    doc = document(block(paragraph(words_line("hello world"), words_line("nothing to see"))))

    assert locate(doc, NIX) == []


def test_empty_document_yields_no_regions():
    assert locate(document(), NIX) == []


def test_whole_word_match_is_union_of_all_symbols():
    doc = document(block(paragraph(line(word("nixos", x=0, y=0)))))

    regions = locate(doc, NIX)

    assert boxes(regions) == [(0, 0, 50, 12)]
    assert regions[0].level is NodeLevel.WORD
    assert regions[0].text == "nixos"


def test_only_word_box_emitted_when_word_localizes_match():
    ln = words_line("foo nixos bar")
    doc = document(block(paragraph(ln)))

    regions = locate(doc, NIX)

    # "nixos" starts at the fifth character cell
    assert boxes(regions) == [(40, 0, 90, 12)]
    lx0, ly0, lx1, ly1 = ln.bbox
    rx0, ry0, rx1, ry1 = regions[0].bbox
    assert lx0 <= rx0 and ly0 <= ry0 and rx1 <= lx1 and ry1 <= ly1
    assert regions[0].bbox != doc.blocks[0].bbox


def test_substring_match_covers_only_matching_symbols():
    doc = document(block(paragraph(line(word("unixy", x=100, y=20)))))

    regions = locate(doc, NIX)

    assert boxes(regions) == [(110, 20, 140, 32)]
    assert regions[0].text == "nix"


def test_two_occurrences_in_one_word():
    doc = document(block(paragraph(line(word("nixABnixos", x=0, y=0)))))

    regions = locate(doc, NIX)

    assert boxes(regions) == [(0, 0, 30, 12), (50, 0, 100, 12)]
    a, b = regions
    assert a.x1 <= b.x0


def test_single_match_pattern_still_scans_word_globally():
    doc = document(block(paragraph(line(word("nixnix")))))

    regions = locate(doc, re.compile("nix"))

    assert len(regions) == 2


def test_match_across_lines_falls_back_to_paragraph():
    # "blocked by this server" only matches across the line break
    par = paragraph(words_line("blocked by", y=0), words_line("this server", y=20))
    blk = block(par, bbox=(0, 0, 200, 40))
    doc = document(blk)
    pattern = r"blocked ?by\s?this ?server"

    regions = locate(doc, pattern)

    # paragraph text matches too, so the paragraph is the tightest region
    assert boxes(regions) == [par.bbox]
    assert regions[0].level is NodeLevel.PARAGRAPH


def test_match_across_paragraphs_falls_back_to_block():
    blk = block(
        paragraph(words_line("blocked by", y=0)),
        paragraph(words_line("this server", y=30)),
        bbox=(0, 0, 200, 50),
    )
    doc = document(blk)

    regions = locate(doc, r"blocked ?by\s+this ?server")

    assert boxes(regions) == [(0, 0, 200, 50)]
    assert regions[0].level is NodeLevel.BLOCK


def test_match_across_words_falls_back_to_line():
    ln = words_line("This content is", y=5)
    doc = document(block(paragraph(ln)))

    regions = locate(doc, r"This ?content ?is")

    assert boxes(regions) == [ln.bbox]
    assert regions[0].level is NodeLevel.LINE


def test_regions_follow_document_order():
    doc = document(
        block(paragraph(words_line("nix one", y=0))),
        block(paragraph(words_line("clean", y=30))),
        block(paragraph(words_line("two nixos", y=60))),
    )

    regions = locate(doc, NIX)

    assert [r.y0 for r in regions] == [0, 60]
    assert [r.text for r in regions] == ["nix", "nixos"]


def test_matching_is_case_insensitive():
    doc = document(block(paragraph(line(word("NixOS")))))

    regions = locate(doc, "nixos")

    assert boxes(regions) == [(0, 0, 50, 12)]


def test_word_without_symbols_falls_back_to_word_box():
    w = word("nixos", x=5, y=5)
    w.symbols = []

    regions = word_regions(w, compile_pattern(NIX))

    assert boxes(regions) == [w.bbox]


def test_non_matching_subtree_is_skipped():
    ln = words_line("nixos here")
    # Parent text does not match, so the matching child is never visited
    par = paragraph(ln)
    par.text = "something else"

    assert locate_in_node(par, compile_pattern(NIX)) == []


def test_empty_match_pattern_does_not_emit_zero_width_boxes():
    w = word("abc")

    regions = word_regions(w, compile_pattern("x*"))

    # every occurrence is empty, so the word box is the fallback
    assert boxes(regions) == [w.bbox]


def test_invalid_pattern_raises_configuration_error():
    doc = document(block(paragraph(words_line("nixos"))))

    with pytest.raises(ConfigurationError):
        locate(doc, "nix(")


def test_block_without_paragraph_matches_yields_block_box():
    par = paragraph(words_line("ni"), words_line("x"))
    blk = block(par, bbox=(0, 0, 300, 100))
    blk.text = "nix"  # block text matches, paragraph text does not
    doc = document(blk)

    assert boxes(locate(doc, NIX)) == [(0, 0, 300, 100)]


def test_install_guide_block_emits_only_symbol_union():
    doc = document(block(paragraph(words_line("nixos install guide"))))

    regions = locate(doc, NIX)

    assert boxes(regions) == [(0, 0, 50, 12)]
