"""
Pattern compilation for redaction matching.

The pattern string is always a plain regular expression; slashes in it are
ordinary characters. Extra flags come separately as letters, e.g. ``"ms"``.
Matching is always case-insensitive.
"""

import re
from typing import Union

from .errors import ConfigurationError
from .models import MatchPattern


FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    # every occurrence in a word is always located, str patterns are already
    # unicode and there is no sticky matching, so these are accepted as no-ops
    "g": 0,
    "u": 0,
    "y": 0,
}


def parse_flags(flags: str) -> int:
    """
    Translate flag letters into `re` flags.

    Raises:
        ConfigurationError: If a letter is not one of ``gimsuxy``
    """
    value = 0
    for ch in flags or "":
        if ch not in FLAG_MAP:
            raise ConfigurationError(f"Unsupported pattern flag {ch!r} (expected any of gimsuxy)")
        value |= FLAG_MAP[ch]
    return value


def compile_pattern(
    pattern: Union[str, re.Pattern, MatchPattern],
    flags: str = ""
) -> MatchPattern:
    """
    Compile a caller-supplied pattern for redaction matching.

    The pattern's own flags are kept and IGNORECASE is always added.

    Args:
        pattern: Regex string, compiled regex or MatchPattern
        flags: Extra flag letters (``gimsuxy``) applied to a string or regex

    Returns:
        MatchPattern ready for the region locator

    Raises:
        ConfigurationError: If the pattern is empty, does not compile or
            carries an unsupported flag
    """
    if isinstance(pattern, MatchPattern):
        return pattern

    extra = parse_flags(flags)

    if isinstance(pattern, re.Pattern):
        if isinstance(pattern.pattern, bytes):
            raise ConfigurationError("Byte patterns are not supported")
        source = pattern.pattern
        extra |= pattern.flags
    elif isinstance(pattern, str) and pattern:
        source = pattern
    else:
        raise ConfigurationError("Pattern must be a non-empty string")

    try:
        regex = re.compile(source, extra | re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid pattern {source!r}: {e}") from e

    return MatchPattern(regex=regex, source=source)
