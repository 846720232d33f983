"""
Content fingerprints for exact-duplicate detection.
"""

import hashlib
from typing import Optional


def fingerprint(
    title: Optional[str],
    link: Optional[str],
    pub_date: Optional[str],
) -> str:
    """
    MD5 hex digest over ``title + link + pub_date``.

    Missing fields count as empty strings. Two articles with the same
    (title, link, pub_date) always share a fingerprint.
    """
    raw = (title or "") + (link or "") + (pub_date or "")
    return hashlib.md5(raw.encode("utf-8")).hexdigest()
