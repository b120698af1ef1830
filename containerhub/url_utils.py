"""Utility functions for working with URLs."""

from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Validate if a URL string has a reasonable http(s) format."""
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False

    domain = parsed.hostname or ""
    if not domain or domain.startswith(".") or domain.endswith("."):
        return False
    if domain == "localhost":
        return True
    return "." in domain and ".." not in domain


def normalize_url(url: str) -> str:
    """Normalization used for duplicate detection: trimming only."""
    return (url or "").strip()


def extract_hostname(url: str) -> str:
    """Return the host without a leading ``www.``, or empty string."""
    try:
        host = urlparse((url or "").strip()).hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host
