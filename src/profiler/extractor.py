"""HTML to named text sections.

The class/id heuristics below are a tunable extraction policy; they are
expected to miss things on unusual markup.
"""
import re
from dataclasses import dataclass, field
from typing import List

from bs4 import BeautifulSoup

from . import config

NOISE_TAGS = ["script", "style", "iframe", "noscript"]
# Selectors to try for the main content area, in order of preference.
MAIN_CONTENT_SELECTORS = [
    "main",
    "article",
    '[role="main"]',
    ".content",
    "#content",
    ".main",
    "#main",
    "body",  # Fallback
]
HEADER_SELECTOR = 'header, .header, [role="banner"]'
FOOTER_SELECTOR = 'footer, .footer, [role="contentinfo"]'
CONTACT_SELECTOR = '[class*="contact"], [id*="contact"], [class*="phone"], [class*="email"], [class*="address"]'
ABOUT_SELECTOR = '[class*="about"], [id*="about"], [class*="mission"], [class*="story"]'
PRODUCTS_SELECTOR = '[class*="product"], [id*="product"], [class*="service"], [id*="service"]'

_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


@dataclass
class PageSections:
    title: str = ""
    meta_description: str = ""
    og_description: str = ""
    headings: List[str] = field(default_factory=list)
    header: str = ""
    main: str = ""
    about: str = ""
    products: str = ""
    contact: str = ""
    footer: str = ""

    def is_empty(self) -> bool:
        return not any([self.title, self.meta_description, self.og_description,
                        self.headings, self.header, self.main, self.about,
                        self.products, self.contact, self.footer])

    def to_text(self, max_chars: int = config.MAX_CONTENT_CHARS) -> str:
        """Labelled single-line document, capped at ``max_chars``."""
        parts = [
            f"Title: {self.title}",
            f"Meta Description: {self.meta_description}",
            f"OG Description: {self.og_description}",
            f"Headings: {' | '.join(self.headings)}",
            f"Header Section: {self.header}",
            f"Main Content: {self.main}",
            f"About/Mission Info: {self.about}",
            f"Products/Services Info: {self.products}",
            f"Contact Information: {self.contact}",
            f"Footer Section: {self.footer}",
        ]
        return collapse_whitespace(" ".join(parts))[:max_chars]


def _select_text(soup: BeautifulSoup, selector: str) -> str:
    return collapse_whitespace(" ".join(el.get_text(" ") for el in soup.select(selector)))


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return collapse_whitespace(tag.get("content") or "")


def _main_content(soup: BeautifulSoup) -> str:
    for selector in MAIN_CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            return collapse_whitespace(element.get_text(" "))
    # No <body> at all (fragment markup)
    return collapse_whitespace(soup.get_text(" "))


def extract_sections(html: str) -> PageSections:
    soup = BeautifulSoup(html or "", "html.parser")
    for el in soup.find_all(NOISE_TAGS):
        el.decompose()

    title_tag = soup.find("title")
    headings = [
        text for text in (collapse_whitespace(h.get_text(" ")) for h in soup.find_all(["h1", "h2", "h3"]))
        if text
    ]

    return PageSections(
        title=collapse_whitespace(title_tag.get_text(" ")) if title_tag else "",
        meta_description=_meta_content(soup, name="description"),
        og_description=_meta_content(soup, property="og:description"),
        headings=headings,
        header=_select_text(soup, HEADER_SELECTOR),
        main=_main_content(soup),
        about=_select_text(soup, ABOUT_SELECTOR),
        products=_select_text(soup, PRODUCTS_SELECTOR),
        contact=_select_text(soup, CONTACT_SELECTOR),
        footer=_select_text(soup, FOOTER_SELECTOR),
    )
