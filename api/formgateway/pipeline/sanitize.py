"""
Rewrite passes applied to every submitted value before it is judged.

Order matters: script blocks are removed before HTML escaping, otherwise the
escaped tags would survive as text. Applying ``sanitize`` twice is not a no-op
because the escaping pass escapes ``&`` again.
"""

import re

from markupsafe import escape

# ============================================================================
# Patterns
# ============================================================================

# No word boundary on purpose: "Worldbcc:" loses its "bcc:" too.
_EMAIL_HEADER_RE = re.compile(r"(?:To|From|Bcc|Cc|Reply-To|Sender):", re.IGNORECASE | re.MULTILINE)

_SCRIPT_BLOCK_RE = re.compile(
    r"(?:<|&lt;)\s*script\s*(?:>|&gt;).*?(?:<|&lt;)\s*/\s*script\s*(?:>|&gt;)",
    re.IGNORECASE | re.MULTILINE,
)


# ============================================================================
# Passes
# ============================================================================

def _remove_until_stable(pattern: re.Pattern, s: str) -> str:
    # A single pass can splice a new match together ("TTo:o:" -> "To:").
    while True:
        stripped = pattern.sub("", s)
        if stripped == s:
            return s
        s = stripped


def remove_email_headers(s: str) -> str:
    """Delete header-like tokens that could be used for SMTP header injection."""
    return _remove_until_stable(_EMAIL_HEADER_RE, s)


def remove_script_tags_and_contents(s: str) -> str:
    """Delete ``<script>...</script>`` blocks, tags and content alike."""
    return _remove_until_stable(_SCRIPT_BLOCK_RE, s)


def escape_html(s: str) -> str:
    """HTML-escape ``& < > " '``; NUL becomes U+FFFD."""
    return str(escape(s.replace("\0", "\ufffd")))


def sanitize(raw: str) -> str:
    """Run the full pipeline: trim, header strip, script strip, HTML escape."""
    value = raw.strip()
    value = remove_email_headers(value)
    value = remove_script_tags_and_contents(value)
    return escape_html(value)
