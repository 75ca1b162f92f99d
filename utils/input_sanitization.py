"""
Input sanitization for request bodies and query parameters.

Runs after signature detection, so audit logs see the raw payload while
route handlers only ever see cleaned values.

Features:
- Markup stripping (bleach) followed by removal of ``<>"'&``
- Whitespace collapsing and length truncation
- Depth-first walk of nested structures, keys preserved
- Operator-key neutralization (``$``/``.`` in keys)
- HTTP parameter pollution collapsing
"""
import re
import html
import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import bleach

from security.patterns import SENSITIVE_FIELDS

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 1000

_STRIP_CHARS_RE = re.compile(r"[<>\"'&]")
_WHITESPACE_RE = re.compile(r"\s+")
_OPERATOR_KEY_RE = re.compile(r"[$.]")


class InputSanitizer:
    """
    Deterministic, idempotent text cleaning.

    ``sanitize(sanitize(x)) == sanitize(x)`` for every input: each stage only
    removes characters, and the last stages remove everything earlier stages
    could reintroduce.
    """

    def __init__(
        self,
        default_max_length: int = DEFAULT_MAX_LENGTH,
        field_limits: Optional[Dict[str, int]] = None,
        sensitive_fields: FrozenSet[str] = SENSITIVE_FIELDS
    ):
        self.default_max_length = default_max_length
        self.field_limits = dict(field_limits or {})
        self.sensitive_fields = sensitive_fields

    def sanitize_text(self, value: str, max_length: Optional[int] = None) -> str:
        limit = max_length if max_length is not None else self.default_max_length
        text = value[:limit]
        text = bleach.clean(text, tags=[], attributes={}, strip=True)
        text = html.unescape(text)
        text = _STRIP_CHARS_RE.sub("", text)
        text = _WHITESPACE_RE.sub(" ", text)
        return text.strip()

    def sanitize(self, value: Any, max_length: Optional[int] = None) -> Any:
        """
        Sanitize a value, returning the same shape.

        Strings are cleaned; mappings and lists are walked with keys and
        ordering preserved; every other value passes through unchanged.
        Mapping values use the per-field length limit when one is configured.
        """
        if isinstance(value, str):
            return self.sanitize_text(value, max_length)

        if isinstance(value, dict):
            cleaned = {}
            for key, item in value.items():
                if str(key) in self.sensitive_fields:
                    cleaned[key] = item
                    continue
                limit = self.field_limits.get(str(key), max_length)
                cleaned[key] = self.sanitize(item, limit)
            return cleaned

        if isinstance(value, list):
            return [self.sanitize(item, max_length) for item in value]

        return value


def neutralize_operator_keys(value: Any) -> Any:
    """Replace ``$`` and ``.`` in mapping keys so they cannot act as query operators."""
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            safe_key = _OPERATOR_KEY_RE.sub("_", key) if isinstance(key, str) else key
            if safe_key != key:
                logger.warning(f"🚨 [SANITIZE] Neutralized operator key: {key!r} -> {safe_key!r}")
            result[safe_key] = neutralize_operator_keys(item)
        return result
    if isinstance(value, list):
        return [neutralize_operator_keys(item) for item in value]
    return value


def collapse_repeated_params(
    pairs: Iterable[Tuple[str, str]],
    whitelist: Iterable[str] = ("tags", "categories")
) -> Dict[str, Union[str, List[str]]]:
    """
    Collapse repeated query parameters to their last value.

    Whitelisted names keep every value as a list.
    """
    allowed = set(whitelist)
    collapsed: Dict[str, Union[str, List[str]]] = {}
    for name, value in pairs:
        if name in allowed:
            existing = collapsed.setdefault(name, [])
            existing.append(value)
        else:
            collapsed[name] = value
    return collapsed
