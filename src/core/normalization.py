"""Canonical form of free-text product names.

Targets and suppliers are entered independently, so they are matched by
the normalized product name rather than by a key.
"""
import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
# Latin letters (ASCII and accented), digits, Hangul jamo and syllables,
# whitespace and hyphens survive; everything else is dropped.
_DISALLOWED_RE = re.compile(
    r"[^a-z0-9"
    r"ß-öø-ÿĀ-ɏ"
    r"ᄀ-ᇿㄱ-ㆎ가-힣"
    r"\s\-]"
)


def normalize_product_name(name) -> str:
    """Return the matching key for a product name.

    >>> normalize_product_name(" ABC   Co ")
    'abc co'
    """
    if name is None:
        return ""
    text = unicodedata.normalize("NFC", str(name)).lower()
    # Dropping characters can bring jamo together; compose them again.
    text = unicodedata.normalize("NFC", _DISALLOWED_RE.sub("", text))
    return _WHITESPACE_RE.sub(" ", text).strip()


def same_product(left, right) -> bool:
    return normalize_product_name(left) == normalize_product_name(right)
