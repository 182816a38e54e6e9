"""URL pattern generation and matching for field memories."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

_NUMERIC_SEGMENT = re.compile(r"\d+")
_UUID_SEGMENT = re.compile(r"[a-f0-9-]{36}")
_HEX32_SEGMENT = re.compile(r"[a-f0-9]{32}")

WILDCARD = "*"
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class UrlMatchingOptions:
    """Which parts of a URL take part in a pattern."""
    ignore_search_params: bool = True
    ignore_hash: bool = True
    exact_path: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "ignore_search_params": self.ignore_search_params,
            "ignore_hash": self.ignore_hash,
            "exact_path": self.exact_path,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UrlMatchingOptions":
        data = data or {}
        defaults = cls()
        return cls(
            ignore_search_params=bool(data.get("ignore_search_params", defaults.ignore_search_params)),
            ignore_hash=bool(data.get("ignore_hash", defaults.ignore_hash)),
            exact_path=bool(data.get("exact_path", defaults.exact_path)),
        )


def _collapse_segment(segment: str) -> str:
    if _NUMERIC_SEGMENT.fullmatch(segment) or _UUID_SEGMENT.fullmatch(segment) or _HEX32_SEGMENT.fullmatch(segment):
        return WILDCARD
    return segment


def generate_pattern(url: str, options: Optional[UrlMatchingOptions] = None) -> str:
    """
    Build the matching pattern for a URL.

    Args:
        url: Absolute URL
        options: Matching options (defaults ignore query and hash)

    Returns:
        ``protocol//hostname/path`` with numeric, UUID and 32-hex path
        segments replaced by ``*``; the URL itself if it cannot be parsed
    """
    options = options or UrlMatchingOptions()
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as e:
        logger.warning(f"Could not build URL pattern for {url}: {e}")
        return url
    if not parts.scheme or not hostname:
        logger.warning(f"Could not build URL pattern for {url}: not an absolute URL")
        return url

    path = parts.path or "/"
    if not options.exact_path:
        path = "/".join(_collapse_segment(segment) for segment in path.split("/"))

    pattern = f"{parts.scheme}://{hostname}{path}"
    if not options.ignore_search_params and parts.query:
        pattern += f"?{parts.query}"
    if not options.ignore_hash and parts.fragment:
        pattern += f"#{parts.fragment}"
    return pattern


def pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a wildcard pattern into an anchored regex; ``*`` spans one segment."""
    return re.compile("^" + re.escape(pattern).replace(r"\*", "[^/]*") + "$")


def url_matches(url: str, pattern: str, options: Optional[UrlMatchingOptions] = None) -> bool:
    """Whether a URL falls under a stored pattern."""
    return pattern_to_regex(pattern).match(generate_pattern(url, options)) is not None


def origin_of(url: str) -> str:
    """``scheme://host[:port]`` of a URL, empty when it has none.

    Credentials are dropped and a default port is left out, as browsers do.
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return ""
    host = parts.hostname
    if not parts.scheme or not host:
        return ""
    if ":" in host:
        host = f"[{host}]"
    scheme = parts.scheme.lower()
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def path_of(url: str) -> str:
    return urlsplit(url).path or "/"


def hostname_of(url: str) -> str:
    return urlsplit(url).hostname or ""
