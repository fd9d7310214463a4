"""Pick the few same-origin pages most likely to describe the business."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from . import config

logger = logging.getLogger(__name__)

# Matched as substrings of the lower-cased path.
PAGE_KEYWORDS = [
    "about", "about-us", "who-we-are", "our-story", "company",
    "contact", "contact-us", "get-in-touch", "reach-us",
    "faq", "faqs", "help", "support",
    "services", "what-we-do",
    "products", "shop", "store",
]
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class CandidateLink:
    url: str
    matched_keyword: str


def _origin(url: str) -> Optional[Tuple[str, str, int]]:
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        return None
    return scheme, parts.hostname.lower(), port or _DEFAULT_PORTS[scheme]


def _matched_keyword(path: str) -> Optional[str]:
    path = path.lower()
    # Longest keyword wins so "/about-us" reports "about-us", not "about".
    hits = [kw for kw in PAGE_KEYWORDS if kw in path]
    return max(hits, key=len) if hits else None


def find_candidate_links(base_url: str, html: str, limit: int = config.MAX_DISCOVERED_PAGES) -> List[CandidateLink]:
    base_origin = _origin(base_url)
    if base_origin is None:
        logger.warning(f"Cannot discover pages for non-http(s) base URL: {base_url}")
        return []

    soup = BeautifulSoup(html or "", "html.parser")
    candidates: List[CandidateLink] = []
    seen = set()

    for a_tag in soup.find_all("a", href=True):
        if len(candidates) >= limit:
            break
        href = a_tag["href"].strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            continue
        if _origin(absolute) != base_origin:
            continue

        parts = urlsplit(absolute)
        keyword = _matched_keyword(parts.path)
        if keyword is None:
            continue

        url = urlunsplit(parts._replace(fragment=""))
        if url in seen:
            continue
        seen.add(url)
        candidates.append(CandidateLink(url=url, matched_keyword=keyword))

    logger.info(f"Discovered {len(candidates)} candidate page(s) on {base_url}")
    return candidates


def discover_pages(base_url: str, homepage_html: str, limit: int = config.MAX_DISCOVERED_PAGES) -> List[str]:
    return [link.url for link in find_candidate_links(base_url, homepage_html, limit)]
