"""
Shared validators and text helpers for dynamic-table input.
"""

import re
import unicodedata
from typing import Any

from shared.config.constants import Limits
from shared.utils.exceptions import ValidationError

# Longest identifier PostgreSQL keeps without truncation
MAX_IDENTIFIER_LENGTH = 63

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def fold_diacritics(text: str) -> str:
    """
    Remove combining marks: "Matrícula" -> "Matricula", "Año" -> "Ano".

    Case is preserved; only the accents go.
    """
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_key(text: str) -> str:
    """Accent- and case-insensitive comparison key."""
    return fold_diacritics(text).casefold()


def is_blank(value: Any) -> bool:
    """None or a whitespace-only string. Zero and False are values."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def is_valid_identifier(name: str) -> bool:
    """
    Whether a table/column name can be sent to the catalog at all.

    Identifiers are always quoted when rendered; this only rejects empty,
    oversized or control-character names before any store access.
    """
    if not name or len(name) > MAX_IDENTIFIER_LENGTH:
        return False
    return not _CONTROL_CHARS.search(name)


def sanitize_search_term(term: str | None, max_length: int = Limits.SEARCH_TEXT_MAX_LENGTH) -> str:
    """
    Sanitize free search text.

    Args:
        term: The search term to sanitize
        max_length: Maximum allowed length after trimming

    Returns:
        Trimmed term without control characters ("" for None)

    Raises:
        ValidationError: the term is longer than max_length
    """
    if not term:
        return ""

    term = _CONTROL_CHARS.sub("", term.strip())

    if len(term) > max_length:
        raise ValidationError(
            f"El texto de búsqueda no puede superar {max_length} caracteres",
            length=len(term),
        )

    return term
