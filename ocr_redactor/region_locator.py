"""
Region locator: finds the tightest boxes that contain a pattern match.

Walks the recognition tree depth-first, block by block:
1. A node whose text does not match is skipped with its whole subtree
2. A matching node recurses into its children
3. If no child produced a region, the node's own box is used instead
4. Words are scanned for every substring occurrence and each occurrence
   becomes the union box of its slice of symbols
"""

import logging
from typing import Union
import re

from .geometry import union_bbox
from .models import Document, MatchPattern, NodeLevel, RecognitionNode, RedactionRegion
from .pattern import compile_pattern


logger = logging.getLogger(__name__)


def word_regions(word: RecognitionNode, pattern: MatchPattern) -> list[RedactionRegion]:
    """
    Locate every occurrence of the pattern inside a single word.

    Each occurrence maps character offsets 1:1 onto the word's symbols and
    yields the union box of that symbol slice. Falls back to the word's own
    box when the word matches as a whole but no occurrence can be placed.

    Args:
        word: Word node with symbols
        pattern: Compiled pattern

    Returns:
        Regions for this word, possibly empty
    """
    if not pattern.matches(word.text):
        return []

    regions = []
    for match in pattern.finditer(word.text):
        start, end = match.span()
        if end <= start:
            continue
        bbox = union_bbox(s.bbox for s in word.symbols[start:end])
        if bbox is None:
            continue
        regions.append(RedactionRegion(bbox=bbox, level=NodeLevel.WORD, text=match.group(0)))

    if not regions:
        regions.append(RedactionRegion(bbox=word.bbox, level=NodeLevel.WORD, text=word.text))

    return regions


def locate_in_node(node: RecognitionNode, pattern: MatchPattern) -> list[RedactionRegion]:
    """
    Locate regions within one node of the tree.

    Args:
        node: Block, paragraph, line or word
        pattern: Compiled pattern

    Returns:
        Regions in reading order; the node's own box if it matches but none
        of its children do
    """
    if node.is_word:
        return word_regions(node, pattern)

    if not pattern.matches(node.text):
        return []

    regions = []
    for child in node.children:
        regions.extend(locate_in_node(child, pattern))

    if not regions:
        logger.debug("Falling back to %s box for %r", node.level.value, node.text)
        regions.append(RedactionRegion(bbox=node.bbox, level=node.level, text=node.text))

    return regions


def locate(
    document: Document,
    pattern: Union[str, re.Pattern, MatchPattern]
) -> list[RedactionRegion]:
    """
    Compute the regions of a document that must be redacted.

    Args:
        document: Recognition tree for one image
        pattern: Regex string, slash literal, compiled regex or MatchPattern

    Returns:
        Regions in document order

    Raises:
        ConfigurationError: If the pattern does not compile
    """
    compiled = compile_pattern(pattern)

    regions = []
    for block in document.blocks or []:
        regions.extend(locate_in_node(block, compiled))

    return regions
