"""Text normalization shared by catalogs, records, search, and reports."""
import re
import unicodedata
from typing import Any

_NON_DIGITS = re.compile(r"\D")


def strip_accents(value: Any) -> str:
    """Remove combining diacritics, keeping the base characters."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_text(value: Any) -> str:
    """Display form for every stored label: no diacritics, trimmed, upper case."""
    return strip_accents(value).strip().upper()


def digits_only(value: Any, max_length: int = 10) -> str:
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))[:max_length]


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return normalize_text(value) in {"1", "TRUE", "YES", "SI", "Y", "S", "X"}
