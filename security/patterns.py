"""
Fixed signature matchers for injection, XSS and path traversal.

The pattern sets are closed, auditable lists. A false positive costs the
caller a resubmission; a false negative on a known attack class is not
acceptable, so the lists lean towards matching. Every matcher is a pure,
total function: no I/O, and "no match" is a normal False.
"""
import re
import urllib.parse
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, Optional

# SQL keywords, comment/terminator tokens, quotes, scripting protocols and
# inline event handlers.
INJECTION_PATTERNS = [
    r"\b(union|select|insert|delete|update|drop|create|alter|exec|execute)\b",
    r"(--|;|'|\")",
    r"\b(javascript|vbscript)\s*:",
    r"\bon[a-z]+\s*=",
]

XSS_PATTERNS = [
    r"<\s*/?\s*script\b",
    r"\b(javascript|vbscript)\s*:",
    r"\bon[a-z]+\s*=",
    r"data\s*:\s*text/html",
    r"expression\s*\(",
    r"url\s*\(",
    r"@import",
    r"\$\{[^}]*\}",
    r"<\?(php|=)?",
    r"<%|%>",
]

PATH_TRAVERSAL_PATTERNS = [
    r"\.\.[\\/]",
    r"[\\/]\.\.$",
    r"^\.\.$",
]

# Request lines worth an audit entry even when nothing is rejected.
SUSPICIOUS_REQUEST_PATTERNS = [
    r"\.\.[\\/]",
    r"<script",
    r"union.*select",
    r"javascript:",
    r"vbscript:",
    r"data:text/html",
]

DANGEROUS_EXTENSIONS: FrozenSet[str] = frozenset({
    ".exe", ".bat", ".cmd", ".scr", ".pif", ".com", ".vbs",
    ".jar", ".php", ".asp", ".jsp", ".js",
})

# Never scanned or sanitized: hashed, never interpreted.
SENSITIVE_FIELDS: FrozenSet[str] = frozenset({"password", "current_password", "new_password"})

_INJECTION_RE = [re.compile(p, re.IGNORECASE) for p in INJECTION_PATTERNS]
_XSS_RE = [re.compile(p, re.IGNORECASE) for p in XSS_PATTERNS]
_TRAVERSAL_RE = [re.compile(p) for p in PATH_TRAVERSAL_PATTERNS]
_SUSPICIOUS_RE = [re.compile(p, re.IGNORECASE) for p in SUSPICIOUS_REQUEST_PATTERNS]
_SAFE_LABEL_RE = re.compile(r"^[A-Za-z0-9_.\[\]-]{1,128}$")


@dataclass(frozen=True)
class PatternMatch:
    """First offending value found in a payload."""
    field: str
    kind: str  # "injection" | "xss" | "path_traversal"


def _any_match(patterns: Iterable[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def _decoded_variants(text: str):
    """The raw text plus up to two rounds of percent-decoding."""
    yield text
    current = text
    for _ in range(2):
        decoded = urllib.parse.unquote(current)
        if decoded == current:
            return
        yield decoded
        current = decoded


def matches_injection_signature(text: str) -> bool:
    if not isinstance(text, str) or not text:
        return False
    return _any_match(_INJECTION_RE, text)


def matches_xss(text: str) -> bool:
    if not isinstance(text, str) or not text:
        return False
    return _any_match(_XSS_RE, text)


def matches_path_traversal(text: str) -> bool:
    """True for any ``../`` or ``..\\`` sequence or a parent-directory segment."""
    if not isinstance(text, str) or not text:
        return False
    for variant in _decoded_variants(text):
        if _any_match(_TRAVERSAL_RE, variant):
            return True
        if ".." in re.split(r"[\\/]", variant):
            return True
    return False


def file_extensions(name: str) -> list:
    """
    All dotted suffixes of a filename, lower-cased.

    ``payload.php.jpg`` yields ``['.php', '.jpg']``; trailing dots and spaces
    are ignored so ``a.exe.`` still yields ``['.exe']``.
    """
    base = re.split(r"[\\/]", name or "")[-1].rstrip(". ")
    parts = base.split(".")[1:]
    return [f".{part.lower()}" for part in parts if part]


def final_extension(name: str) -> str:
    extensions = file_extensions(name)
    return extensions[-1] if extensions else ""


def matches_dangerous_file_extension(name: str) -> bool:
    """
    True when any extension segment is on the deny-list.

    Every segment is inspected, not just the last one, so a double extension
    such as ``payload.php.jpg`` is caught.
    """
    if not isinstance(name, str) or not name:
        return False
    return any(ext in DANGEROUS_EXTENSIONS for ext in file_extensions(name))


def matches_suspicious_request(path_and_query: str) -> bool:
    if not path_and_query:
        return False
    return any(_any_match(_SUSPICIOUS_RE, variant) for variant in _decoded_variants(path_and_query))


def classify(text: str) -> Optional[str]:
    """Name of the first signature class the text matches, if any."""
    if matches_injection_signature(text):
        return "injection"
    if matches_xss(text):
        return "xss"
    if matches_path_traversal(text):
        return "path_traversal"
    return None


def scan_payload(
    value: Any,
    path: str = "",
    sensitive_fields: FrozenSet[str] = SENSITIVE_FIELDS
) -> Optional[PatternMatch]:
    """
    Depth-first walk of a decoded payload.

    Returns the first string value matching a signature, with its field path
    (``tasks[2].title``), or None when the payload is clean.
    """
    if isinstance(value, str):
        kind = classify(value)
        return PatternMatch(field=path or "value", kind=kind) if kind else None

    if isinstance(value, dict):
        for key, item in value.items():
            if str(key) in sensitive_fields:
                continue
            child = f"{path}.{key}" if path else str(key)
            found = scan_payload(item, child, sensitive_fields)
            if found:
                return found
        return None

    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            found = scan_payload(item, f"{path}[{index}]", sensitive_fields)
            if found:
                return found
        return None

    return None


def safe_field_label(path: str) -> str:
    """Field path fit for an error body; attacker-shaped keys are not echoed."""
    if path and _SAFE_LABEL_RE.match(path):
        return path
    return "unknown"


def redact_sensitive(value: Any, sensitive_fields: FrozenSet[str] = SENSITIVE_FIELDS) -> Any:
    """Copy of a payload with sensitive fields masked, for audit logs."""
    if isinstance(value, dict):
        return {
            key: "***" if str(key) in sensitive_fields else redact_sensitive(item, sensitive_fields)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact_sensitive(item, sensitive_fields) for item in value]
    return value
