"""HTML extraction for crawled pages.

Every extractor takes raw HTML plus the page URL and returns plain dataclasses;
none of them perform I/O.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from app.models.source import SourceCategory
from pipelines.crawl import ExtractionError

HTML_PARSER = "html.parser"

PRODUCT_VOCABULARY: tuple[str, ...] = (
    "furnace oil",
    "fo",
    "diesel",
    "hsd",
    "ldo",
    "lshs",
    "bitumen",
    "bunker",
    "hexane",
    "solvent",
    "sulphur",
    "propylene",
    "kerosene",
    "jute batch oil",
    "turpentine",
    "boiler",
    "generator",
    "power plant",
    "captive power",
)

# Abbreviations this short would match inside ordinary words ("fo" in "for").
_WORD_BOUNDED_MAX_LEN = 3

ARTICLE_SELECTOR = "article, .news-item, .article-item, [class*='news']"
ARTICLE_TITLE_SELECTOR = "h1, h2, h3, .title"
ARTICLE_DESCRIPTION_SELECTOR = "p, .description"
ARTICLE_DATE_SELECTOR = "time, .date, [class*='date']"

_PHONE_PATTERN = re.compile(r"(?:\+91[-\s]?)?[6-9]\d{9}|\d{3}-\d{3}-\d{4}")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_DEADLINE_PATTERN = re.compile(
    r"(?:deadline|last date|closing date)[\s:]+(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})", re.I
)
_ADDRESS_MIN_LEN = 20
_ADDRESS_MAX_LEN = 300


@dataclass(frozen=True)
class ExtractedArticle:
    """One candidate mention surfaced by an extractor."""

    title: str
    description: str
    link: str | None
    date_text: str | None
    keywords: list[str] = field(default_factory=list)
    organization: str | None = None
    industry: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class CompanyInfo:
    name: str | None
    description: str | None
    phone: str | None
    email: str | None
    address: str | None
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TenderInfo:
    title: str | None
    description: str | None
    organization: str | None
    deadline: str | None
    keywords: list[str] = field(default_factory=list)


Extractor = Callable[[str, str], list[ExtractedArticle]]


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    escaped = re.escape(keyword)
    if len(keyword) <= _WORD_BOUNDED_MAX_LEN:
        return re.compile(rf"\b{escaped}\b")
    return re.compile(escaped)


_KEYWORD_PATTERNS = tuple((keyword, _keyword_pattern(keyword)) for keyword in PRODUCT_VOCABULARY)


def extract_product_keywords(text: str) -> list[str]:
    """Return vocabulary terms present in ``text``, in vocabulary order."""
    lowered = (text or "").lower()
    return [keyword for keyword, pattern in _KEYWORD_PATTERNS if pattern.search(lowered)]


def parse_html(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html or "", HTML_PARSER)
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(f"Unable to parse HTML: {exc}", code="E_EXTRACT") from exc


def _text(element: Tag | None) -> str:
    if element is None:
        return ""
    return element.get_text(" ", strip=True)


def _meta(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = tag.get("content")
    return content.strip() if isinstance(content, str) and content.strip() else None


def extract_news_articles(html: str, page_url: str) -> list[ExtractedArticle]:
    """Surface article-like blocks that mention at least one product term."""
    soup = parse_html(html)
    articles: list[ExtractedArticle] = []
    seen: set[tuple[str, str | None]] = set()
    for block in soup.select(ARTICLE_SELECTOR):
        title = _text(block.select_one(ARTICLE_TITLE_SELECTOR))
        description = _text(block.select_one(ARTICLE_DESCRIPTION_SELECTOR))
        keywords = extract_product_keywords(f"{title} {description}")
        if not keywords:
            continue
        anchor = block.find("a", href=True)
        link = urljoin(page_url, anchor["href"]) if anchor is not None else None
        # Containers matched by the class wildcard repeat their children.
        if (title, link) in seen:
            continue
        seen.add((title, link))
        date_text = _text(block.select_one(ARTICLE_DATE_SELECTOR)) or None
        articles.append(
            ExtractedArticle(
                title=title,
                description=description,
                link=link,
                date_text=date_text,
                keywords=keywords,
            )
        )
    return articles


def extract_company_info(html: str) -> CompanyInfo:
    soup = parse_html(html)
    title_text = _text(soup.title)
    name = (
        _meta(soup, property="og:site_name")
        or _meta(soup, name="company")
        or _text(soup.find("h1"))
        or (title_text.split("|")[0].strip() if title_text else "")
        or None
    )
    description = (
        _meta(soup, name="description")
        or _meta(soup, property="og:description")
        or _text(soup.find("p"))
        or None
    )
    body_text = _text(soup.body) if soup.body else _text(soup)
    phone_match = _PHONE_PATTERN.search(body_text)
    email_match = _EMAIL_PATTERN.search(body_text)

    address = None
    for element in soup.select("address, [class*='address'], [class*='location']"):
        candidate = _text(element)
        if _ADDRESS_MIN_LEN < len(candidate) < _ADDRESS_MAX_LEN:
            address = candidate
            break

    meta_keywords = _meta(soup, name="keywords")
    keywords = [item.strip() for item in meta_keywords.split(",") if item.strip()] if meta_keywords else []
    return CompanyInfo(
        name=name,
        description=description,
        phone=phone_match.group(0) if phone_match else None,
        email=email_match.group(0) if email_match else None,
        address=address,
        keywords=keywords,
    )


def extract_tender_info(html: str) -> TenderInfo:
    soup = parse_html(html)
    title = _text(soup.select_one("h1, .tender-title, [class*='title']")) or None
    description = " ".join(
        _text(element) for element in soup.select(".tender-description, .description, [class*='detail']")
    ).strip() or None
    organization = (
        _text(soup.select_one(".organization, .org-name, [class*='organisation'], [class*='organization']"))
        or None
    )
    body_text = _text(soup.body) if soup.body else _text(soup)
    deadline_match = _DEADLINE_PATTERN.search(body_text)
    return TenderInfo(
        title=title,
        description=description,
        organization=organization,
        deadline=deadline_match.group(1) if deadline_match else None,
        keywords=extract_product_keywords(f"{title or ''} {description or ''}"),
    )


EXTRACTORS: dict[SourceCategory, Extractor] = {
    SourceCategory.NEWS: extract_news_articles,
}


def extractor_for(category: SourceCategory) -> Extractor | None:
    """Return the registered extractor; categories without one yield no candidates."""
    return EXTRACTORS.get(category)
