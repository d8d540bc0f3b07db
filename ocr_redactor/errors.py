"""
Exception types for the redaction pipeline.

Every error is scoped to a single image: the pipeline records it on the
image's result and moves on to the next one.
"""


class RedactorError(Exception):
    """Base class for all redaction errors."""


class ConfigurationError(RedactorError):
    """Invalid caller configuration, e.g. a pattern that does not compile."""


class DecodeError(RedactorError):
    """Source image could not be loaded into a bitmap."""


class EncodeError(RedactorError):
    """Redacted bitmap could not be serialized."""


class RecognitionError(RedactorError):
    """The OCR engine failed or returned malformed data."""
