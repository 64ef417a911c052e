"""Content identity hashing.

The hash is taken over a normalized form of the content so that purely
cosmetic reformatting does not change a file's identity. Normalization:

1. bytes are decoded as UTF-8; content that is not valid UTF-8 is binary
   and is hashed byte for byte instead (under a separate prefix)
2. a leading byte-order mark is dropped
3. CRLF and lone CR line endings become LF
4. trailing spaces and tabs are stripped from every line
5. trailing empty lines are dropped (so a final newline is irrelevant)

Everything else, including leading indentation and blank lines between
content, is significant.
"""

import hashlib
from typing import Optional, Union

from governance_hooks.storage import Storage

Content = Union[str, bytes]

# Domain prefix for content hashed as raw bytes
BINARY_PREFIX = b"bin\0"


def normalize_content(content: Content) -> str:
    """Apply the cosmetic normalization rules above.

    Raises:
        UnicodeDecodeError: If ``content`` is bytes that are not UTF-8.
    """
    text = content.decode("utf-8") if isinstance(content, bytes) else content
    if text.startswith("\ufeff"):
        text = text[1:]
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip(" \t") for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines)


def compute_content_hash(content: Content) -> str:
    """Lowercase hex SHA-256 of the normalized content (raw bytes for binary)."""
    try:
        data = normalize_content(content).encode("utf-8")
    except UnicodeDecodeError:
        data = BINARY_PREFIX + content
    return hashlib.sha256(data).hexdigest()


def hash_stored_file(storage: Storage, rel: str) -> Optional[str]:
    """Hash a file's current content, or None when it does not exist."""
    try:
        return compute_content_hash(storage.read_bytes(rel))
    except FileNotFoundError:
        return None
