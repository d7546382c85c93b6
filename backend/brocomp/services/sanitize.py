"""Text, HTML, file name and URL sanitization.

Markup is cleaned with nh3 (html5ever parser + ammonia), so fragments that
only become a tag after an inner tag is removed stay escaped text.
"""

import html
import re
from urllib.parse import urlparse

import nh3

# Patterns that indicate an injection attempt (script tags, inline handlers,
# embedded documents). Matched case-insensitively anywhere in the text.
MALICIOUS_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
)

ALLOWED_HTML_TAGS = frozenset({"b", "i", "em", "strong", "u", "p", "br", "span"})

# Elements dropped together with their contents.
CLEAN_CONTENT_TAGS = frozenset({"script", "style", "iframe"})

_PATH_SEPARATORS_RE = re.compile(r"[/\\]")
_UNSAFE_FILE_CHARS_RE = re.compile(r"[^a-zA-Z0-9._-]")

MAX_FILE_NAME_LENGTH = 255


def contains_malicious_content(text: str) -> bool:
    """Return True when text contains a script-like payload."""
    return any(pattern.search(text) for pattern in MALICIOUS_PATTERNS)


def sanitize_text(text: str) -> str:
    """Strip every tag, keeping text content, and trim.

    Leftover ``<``, ``>`` and ``&`` come back as entities.
    """
    return nh3.clean(
        text,
        tags=set(),
        clean_content_tags=set(CLEAN_CONTENT_TAGS),
        attributes={},
        link_rel=None,
        strip_comments=True,
    ).strip()


def sanitize_html(value: str) -> str:
    """Keep a small set of formatting tags, without attributes."""
    return nh3.clean(
        value,
        tags=set(ALLOWED_HTML_TAGS),
        clean_content_tags=set(CLEAN_CONTENT_TAGS),
        attributes={},
        link_rel=None,
        strip_comments=True,
    )


def sanitize_file_name(file_name: str) -> str:
    """Remove path separators and unsafe characters from an upload name."""
    cleaned = _PATH_SEPARATORS_RE.sub("", file_name)
    cleaned = _UNSAFE_FILE_CHARS_RE.sub("_", cleaned)
    return cleaned[:MAX_FILE_NAME_LENGTH]


def is_safe_url(url: str) -> bool:
    """Only http(s) links are allowed in notifications and profiles."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def escape_for_email(text: str | None) -> str:
    """Escape user content before interpolating it into an HTML email."""
    return html.escape(text or "", quote=True)


def escape_like(term: str) -> str:
    """Escape ``%``, ``_`` and the escape character for a LIKE pattern.

    Use with ``escape="\\\\"`` so user input matches literally.
    """
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
