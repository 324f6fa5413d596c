"""Check a storefront page for tracking scripts and meta tags.

Used by the admin integrations screen to confirm that a configured tag
(Facebook pixel, Google Analytics, site-verification meta tags) actually
appears in the live page source.
"""

import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from catalog.config import HEADERS, SEO_REQUEST_TIMEOUT
from catalog.logging_config import get_logger

__all__ = ["validate_url", "fetch_page", "find_tag_value", "check_tag"]

logger = get_logger("seo")

FB_PIXEL_RE = re.compile(r"""fbq\(\s*['"]init['"]\s*,\s*['"](\d+)['"]\s*\)""", re.IGNORECASE)
GA_SCRIPT_RE = re.compile(r"googletagmanager\.com/gtag/js\?id=((?:G|UA)-[A-Z0-9-]+)", re.IGNORECASE)
GA_CONFIG_RE = re.compile(
    r"""gtag\(\s*['"]config['"]\s*,\s*['"]((?:G|UA)-[A-Z0-9-]+)['"]""", re.IGNORECASE
)

# Tags whose presence cannot be seen in page source
SIMULATED_TAGS = {"mailchimp"}


def validate_url(url: str) -> str:
    """Strip and check a page URL; only http(s) URLs with a host pass.

    Raises:
        ValueError: If the URL is unusable
    """
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url!r}")
    return url


def fetch_page(url: str, session: Optional[requests.Session] = None) -> str:
    """GET a page with browser headers.

    Raises:
        ValueError: If the URL is invalid or the request fails
    """
    url = validate_url(url)
    sess = session or requests.Session()
    try:
        resp = sess.get(url, headers=HEADERS, timeout=SEO_REQUEST_TIMEOUT)
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status_code = e.response.status_code if e.response is not None else "unknown"
        logger.error(f"HTTP error fetching {url}: {e}")
        raise ValueError(f"HTTP Error {status_code}\nFailed to fetch: {url}") from e
    except requests.exceptions.Timeout as e:
        logger.error(f"Timeout fetching {url}: {e}")
        raise ValueError(f"Timeout fetching {url}: {e}") from e
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error fetching {url}: {e}")
        raise ValueError(f"Failed to fetch {url}: {e}") from e
    return str(resp.text)


def find_tag_value(html: str, tag_name: str) -> Optional[str]:
    """Return the configured value of ``tag_name`` in the page, if present."""
    if tag_name == "facebook-pixel":
        match = FB_PIXEL_RE.search(html)
        return match.group(1) if match else None

    if tag_name == "google-analytics":
        match = GA_SCRIPT_RE.search(html) or GA_CONFIG_RE.search(html)
        return match.group(1) if match else None

    soup = BeautifulSoup(html, "html.parser")
    meta = soup.find("meta", attrs={"name": re.compile(f"^{re.escape(tag_name)}$", re.IGNORECASE)})
    if meta is None:
        return None
    content = meta.get("content")
    return content.strip() if isinstance(content, str) and content.strip() else None


def check_tag(
    url: str,
    tag_name: str,
    expected: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """Check that ``tag_name`` is installed on the page at ``url``.

    Returns:
        ``{"status": "found", "value": ...}``, ``{"status": "mismatch",
        "found": ..., "expected": ...}``, ``{"status": "not_found"}`` or
        ``{"status": "simulation_active"}`` for tags that cannot be verified
        from page source.

    Raises:
        ValueError: If the page cannot be fetched
    """
    if not tag_name:
        raise ValueError("tag_name is required")
    if tag_name in SIMULATED_TAGS:
        return {"status": "simulation_active"}

    logger.info(f"Checking {tag_name} on {url}")
    html = fetch_page(url, session=session)
    value = find_tag_value(html, tag_name)

    if value is None:
        logger.info(f"Tag {tag_name} not found on {url}")
        return {"status": "not_found"}
    if expected and value != expected:
        return {"status": "mismatch", "found": value, "expected": expected}
    return {"status": "found", "value": value}
