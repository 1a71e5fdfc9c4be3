"""
Content digests for native dumps.

A dump header records the wall-clock time it was taken (``start_time``).
The digest blanks that value so two dumps of the same store state hash the
same no matter when each was written. The mask is a single leftmost
textual substitution on the header, not a JSON parse.
"""

import base64
import hashlib
import re
from pathlib import Path
from typing import Union

# Greedy within one line; "." does not cross newlines so only the header matches
_START_TIME_PATTERN = re.compile(r'"start_time":".*","db_info"')
_START_TIME_BLANK = '"start_time":"","db_info"'


def mask_start_time(text: str) -> str:
    """Blank the first start_time value that precedes db_info."""
    return _START_TIME_PATTERN.sub(_START_TIME_BLANK, text, count=1)


def digest_text(text: str) -> str:
    """Base64 SHA-1 of dump text with start_time masked."""
    h = hashlib.sha1(mask_start_time(text).encode("utf-8"))
    return base64.b64encode(h.digest()).decode("ascii")


def content_digest(filepath: Union[str, Path]) -> str:
    """
    Digest a dump file.

    Bytes that are not UTF-8 are replaced, so any file can be digested.

    Raises:
        OSError: If the file cannot be read
    """
    # newline="" keeps line endings exactly as written
    with open(filepath, "r", encoding="utf-8", errors="replace", newline="") as f:
        text = f.read()
    return digest_text(text)
