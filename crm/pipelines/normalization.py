"""Text normalization for destination names.

Handles Unicode composition, accents, lowercasing, punctuation and whitespace
so that "  Zürich!" and "zurich" compare equal.
"""
from __future__ import annotations

import re
import unicodedata


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_punctuation(text: str) -> str:
    """Replace punctuation with spaces, keeping commas as place separators."""
    # Smart quotes and dashes carry no meaning in place names
    text = text.replace('’', "'").replace('‘', "'")
    text = text.replace('–', '-').replace('—', '-')

    text = re.sub(r"[^\w\s,]", ' ', text)
    return text.replace('_', ' ')


def fold_diacritics(text: str, preserve_diacritics: bool = False) -> str:
    """Compose Unicode and optionally strip combining marks.

    Args:
        text: Input text
        preserve_diacritics: If True, keep accents (only NFC composition)

    Returns:
        Normalized text
    """
    text = unicodedata.normalize('NFC', text)

    if not preserve_diacritics:
        text = unicodedata.normalize('NFD', text)
        text = ''.join(c for c in text if unicodedata.category(c) != 'Mn')
        text = unicodedata.normalize('NFC', text)

    return text


def normalize_destination(
    text: str | None,
    *,
    preserve_diacritics: bool = False,
) -> str:
    """Normalize a free-text destination for comparison.

    Args:
        text: Destination as written by a customer or an operator
        preserve_diacritics: Keep accents instead of folding them

    Returns:
        Lowercase, accent-folded, single-spaced text ("" for empty input)
    """
    if not text or not text.strip():
        return ""

    text = fold_diacritics(text, preserve_diacritics=preserve_diacritics)
    text = normalize_punctuation(text)
    text = text.lower()
    text = re.sub(r'\s*,\s*', ', ', text)
    text = normalize_whitespace(text)
    return text.strip(', ')


def split_places(text: str) -> list[str]:
    """Split a normalized destination like "paris, france" into its parts."""
    return [part.strip() for part in text.split(',') if part.strip()]
