"""
OCR Region Redactor - covers pattern matches found by OCR in images.

This package walks a text-recognition tree (blocks, paragraphs, lines,
words, symbols) to find the tightest boxes containing a forbidden pattern,
then paints a cover image over those boxes and re-encodes the result.
"""

__version__ = "0.1.0"
