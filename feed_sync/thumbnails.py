"""Canonical sizing for CDN-hosted thumbnail URLs."""

from __future__ import annotations

import re
from typing import Optional

CARD_SIZE = "w1200-h630-c"
HERO_SIZE = "s1600"

# Blogger/Google image CDN encodes the rendition size either as a path
# segment (".../s72-c/photo.jpg") or as a trailing option ("...=w640-h360-c").
_SIZE_TOKEN = r"(?:s\d+(?:-[a-zA-Z])?|w\d+-h\d+(?:-[a-zA-Z])?)"
_PATH_SEGMENT = re.compile(r"/" + _SIZE_TOKEN + r"/")
_SUFFIX_OPTION = re.compile(r"=(?:s\d+|w\d+-h\d+)(?:-[a-zA-Z0-9]+)*$")


def normalize_thumbnail(url: Optional[str], size: str = CARD_SIZE) -> Optional[str]:
    """Rewrite a known size token in ``url`` to ``size``.

    URLs without a recognizable token, and anything that is not a non-empty
    string, are returned unchanged.
    """
    if not isinstance(url, str) or not url:
        return url

    rewritten, count = _PATH_SEGMENT.subn("/" + size + "/", url, count=1)
    if count:
        return rewritten
    return _SUFFIX_OPTION.sub("=" + size, url, count=1)
