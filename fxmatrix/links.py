"""Link extraction — find post URLs worth embedding in a message body."""

import logging
import re
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger("fxmatrix.links")

# Source and mirror hosts whose post URLs the embed API understands.
TARGET_HOSTS = frozenset({
    "cunnyx.com",
    "fixupx.com",
    "fixvx.com",
    "fxtwitter.com",
    "girlcockx.com",
    "hitlerx.com",
    "nitter.net",
    "nitter.poast.org",
    "twitter.com",
    "twittpr.com",
    "vxtwitter.com",
    "x.com",
    "xcancel.com",
    "xfixup.com",
})

# Marks an individual post, as opposed to a profile or home page.
POST_PATH_MARKER = "/status/"

_URL_RE = re.compile(r'[a-zA-Z][a-zA-Z0-9+.\-]*://[^\s<>"]+')
_TRAILING_PUNCT = ".,:;!?'\""
_BRACKETS = {")": "(", "]": "[", "}": "{"}


def _trim_candidate(candidate: str) -> str:
    """Drop sentence punctuation and unbalanced closing brackets from the end."""
    while candidate:
        last = candidate[-1]
        if last in _TRAILING_PUNCT:
            candidate = candidate[:-1]
        elif last in _BRACKETS and candidate.count(last) > candidate.count(_BRACKETS[last]):
            candidate = candidate[:-1]
        else:
            break
    return candidate


def _normalize(candidate: str) -> str | None:
    """Return the normalized form of a candidate, or None if it is filtered out.

    The fragment is dropped: it never reaches the embed API, so links that
    differ only by fragment are the same post.
    """
    try:
        parts = urlsplit(candidate)
        host = parts.hostname
    except ValueError:
        return None

    if parts.scheme != "https":
        return None
    if not host:
        return None
    if host.lower() not in TARGET_HOSTS:
        return None
    if POST_PATH_MARKER not in parts.path:
        return None

    netloc = host.lower()
    try:
        if parts.port is not None:
            netloc = f"{netloc}:{parts.port}"
    except ValueError:
        return None

    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, ""))


def extract_links(body: str) -> list[str]:
    """Extract embeddable post links from a message body.

    Links are returned in order of first occurrence, each at most once.
    An empty list is the common case and not an error.
    """
    seen: set[str] = set()
    links: list[str] = []
    for match in _URL_RE.finditer(body or ""):
        link = _normalize(_trim_candidate(match.group(0)))
        if link is None or link in seen:
            continue
        seen.add(link)
        links.append(link)
    if links:
        logger.debug(f"Extracted {len(links)} link(s)")
    return links
