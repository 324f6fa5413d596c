"""Text normalization for catalog search.

Arabic product names are typed inconsistently (with or without hamza,
taa marbuta written as haa, stray diacritics), so search compares folded
forms of both the query and the product text.
"""

import re
import unicodedata
from typing import Any, List

__all__ = ["normalize_text", "keywords"]

# Harakat, tanween, shadda, sukun and the rest of the combining marks block,
# plus superscript alef
_DIACRITICS_RE = re.compile(r"[\u064B-\u065F\u0670]")
_TATWEEL = "\u0640"
_WHITESPACE_RE = re.compile(r"\s+")

_LETTER_FOLDS = str.maketrans({
    "أ": "ا",
    "إ": "ا",
    "آ": "ا",
    "ٱ": "ا",
    "ى": "ي",
    "ة": "ه",
    "ؤ": "و",
    "ئ": "ي",
})


def normalize_text(value: Any) -> str:
    """Fold a value into its searchable form.

    Non-string values (None, NaN, numbers from a spreadsheet) become "" so
    callers never need to guard against legacy records.
    """
    if not isinstance(value, str):
        return ""
    text = unicodedata.normalize("NFKC", value).casefold()
    text = _DIACRITICS_RE.sub("", text).replace(_TATWEEL, "")
    text = text.translate(_LETTER_FOLDS)
    return _WHITESPACE_RE.sub(" ", text).strip()


def keywords(query: Any) -> List[str]:
    """Split a search query into normalized keywords."""
    normalized = normalize_text(query)
    return normalized.split() if normalized else []
