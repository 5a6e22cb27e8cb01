"""Utilities for generating filename-safe slugs from note titles."""

import re


def slugify(text: str) -> str:
    """Convert a note title to a filename slug.

    Only ASCII letters and digits are kept. Spaces, hyphens and underscores
    become single hyphens; every other character is dropped without leaving
    a separator.

    Args:
        text: Input text to slugify

    Returns:
        Lowercase slug with words separated by hyphens

    Examples:
        >>> slugify("Hello World")
        'hello-world'
        >>> slugify("Design Auth Flow!!")
        'design-auth-flow'
        >>> slugify("v2.0 Release")
        'v20-release'
    """
    text = text.strip().lower()

    # Drop everything that is neither slug material nor a word separator
    text = re.sub(r"[^a-z0-9 _-]", "", text)

    # Collapse separator runs into single hyphens
    text = re.sub(r"[ _-]+", "-", text)

    return text.strip("-")
