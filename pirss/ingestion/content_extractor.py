"""
Content Extractor
=================

Locates the article body inside arbitrary page markup and sanitizes it.

This module provides:
- An ordered cascade of candidate rules evaluated by a first-match-wins driver
- A content-sufficiency predicate shared by the structural rules
- Boilerplate removal, tracking-attribute stripping and CDN image rewriting
- JSON-LD article metadata extraction
"""

import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from ..config.settings import PiRSSSettings, get_settings
from ..utils.exceptions import ContentNotFoundError
from ..utils.logging import get_logger_for_component
from ..utils.validators import host_matches, resolve_url


PLACEHOLDER_RULE = "placeholder"

# Most site-specific first, generic class-name substrings last
CONTENT_SELECTORS = [
    ".article__main__content",
    ".article__main__wrapper",
    ".article-body",
    ".article-detail",
    ".article-content",
    ".content-body",
    ".post-content",
    ".entry-content",
    '[class*="article__main__"]',
    '[class*="article-body"]',
    '[class*="article-content"]',
    '[class*="post-content"]',
    "article .body",
    "article .content",
    "article > div",
    "main article",
    '[data-type="article"]',
    ".ql-editor",
    ".markdown-body",
    '[class*="content"]',
    '[class*="article"]',
    '[class*="post"]',
]

JSON_LD_ARTICLE_TYPES = {"Article", "NewsArticle", "BlogPosting"}

BOILERPLATE_CLASSES = [
    ".emoji",
    ".comp__Emoji",
    ".comments",
    ".comment-section",
    ".reactions",
    ".interaction",
    ".ad",
    ".advertisement",
    ".sidebar",
    ".side-bar",
    ".share",
    ".social-share",
    ".author-card",
    ".related-articles",
]

# Case-sensitive class attribute substrings
BOILERPLATE_CLASS_SUBSTRINGS = ["emoji", "Emoji", "comment", "reaction", "promo", "share", "related"]

BOILERPLATE_TAGS = ["nav", "script", "style", "noscript", "iframe", "header", "footer"]

BOILERPLATE_SELECTOR = ", ".join(
    BOILERPLATE_CLASSES
    + [f'[class*="{substring}"]' for substring in BOILERPLATE_CLASS_SUBSTRINGS]
    + BOILERPLATE_TAGS
)

_WHITESPACE = re.compile(r"\s+")

# Characters encodeURIComponent leaves alone beyond quote's defaults
URI_COMPONENT_SAFE = "!*'()"


@dataclass
class ArticleMetadata:
    """Article fields published as JSON-LD."""

    headline: Optional[str] = None
    author: Optional[str] = None
    date_published: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ExtractionResult:
    """Sanitized article body and the rule that produced it."""

    html: str
    rule: str
    metadata: ArticleMetadata = field(default_factory=ArticleMetadata)

    @property
    def is_placeholder(self) -> bool:
        return self.rule == PLACEHOLDER_RULE


@dataclass(frozen=True)
class CascadeRule:
    """One candidate strategy: where to look, what to accept, what to emit."""

    name: str
    candidates: Callable[[BeautifulSoup], Iterable[Any]]
    accept: Callable[[Any], bool]
    render: Callable[[Any], str]


def run_cascade(rules: Iterable[CascadeRule], soup: BeautifulSoup,
                finish: Optional[Callable[[str], str]] = None) -> Optional[Tuple[str, str]]:
    """Evaluate ``rules`` in order; the first accepted candidate wins.

    Args:
        rules: Candidate rules in priority order
        soup: Parsed page
        finish: Post-processing applied to the rendered html; a blank
            result rejects the candidate and the cascade moves on

    Returns:
        ``(rule name, rendered html)`` or None when nothing was accepted
    """
    for rule in rules:
        for candidate in rule.candidates(soup):
            if not rule.accept(candidate):
                continue
            output = rule.render(candidate)
            if finish is not None:
                output = finish(output)
                if not output.strip():
                    continue
            return rule.name, output
    return None


def stripped_text_length(node: Tag) -> int:
    return len(_WHITESPACE.sub("", node.get_text()))


def load_json_ld(raw: Optional[str]) -> Optional[Any]:
    """Parse a JSON-LD block; malformed input is treated as absent."""
    if not raw or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def iter_json_ld_objects(soup: BeautifulSoup) -> Iterable[Dict[str, Any]]:
    """Yield every JSON object found in ld+json script blocks, in order."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        data = load_json_ld(script.string or script.get_text())
        pending = [data]
        while pending:
            item = pending.pop(0)
            if isinstance(item, list):
                pending.extend(item)
            elif isinstance(item, dict):
                yield item
                if isinstance(item.get("@graph"), list):
                    pending.extend(item["@graph"])


def is_article_object(data: Dict[str, Any]) -> bool:
    types = data.get("@type")
    if isinstance(types, str):
        types = [types]
    return bool(types) and any(t in JSON_LD_ARTICLE_TYPES for t in types if isinstance(t, str))


def _author_name(author: Any) -> Optional[str]:
    if isinstance(author, list):
        author = author[0] if author else None
    if isinstance(author, dict):
        author = author.get("name")
    if isinstance(author, str) and author.strip():
        return author.strip()
    return None


def extract_metadata(soup: BeautifulSoup) -> ArticleMetadata:
    """Headline, author, date and description from the last JSON-LD article."""
    metadata = ArticleMetadata()
    for data in iter_json_ld_objects(soup):
        if not is_article_object(data):
            continue
        metadata = ArticleMetadata(
            headline=data.get("headline"),
            author=_author_name(data.get("author")),
            date_published=data.get("datePublished"),
            description=data.get("description"),
        )
    return metadata


def _first(soup: BeautifulSoup, name: str) -> List[Tag]:
    node = soup.find(name)
    return [node] if node is not None else []


class ContentExtractor:
    """Runs the candidate cascade and sanitizes the winning fragment."""

    def __init__(self, settings: Optional[PiRSSSettings] = None, cdn_domain: Optional[str] = None,
                 source_label: Optional[str] = None):
        """Initialize the extractor.

        Args:
            settings: Application settings (default: global settings)
            cdn_domain: Image host rewritten through the proxy (default: primary CDN)
            source_label: Site name used in the placeholder link
        """
        self.settings = settings or get_settings()
        self.extraction = self.settings.extraction
        self.cdn_domain = cdn_domain or self.settings.primary.cdn_domain
        self.source_label = source_label or self.settings.primary.source_label
        self.logger = get_logger_for_component("content_extractor")
        self.rules = self._build_rules()

    def _build_rules(self) -> List[CascadeRule]:
        rules = [
            CascadeRule(
                name=selector,
                candidates=lambda soup, selector=selector: soup.select(selector),
                accept=self.is_usable,
                render=lambda node: node.decode_contents(),
            )
            for selector in CONTENT_SELECTORS
        ]
        rules.extend([
            CascadeRule(
                name="json-ld",
                candidates=lambda soup: (
                    data.get("articleBody") for data in iter_json_ld_objects(soup) if is_article_object(data)
                ),
                accept=lambda body: isinstance(body, str) and bool(body.strip()),
                render=lambda body: body,
            ),
            CascadeRule(
                name="article",
                candidates=lambda soup: _first(soup, "article"),
                accept=self.is_usable,
                render=lambda node: node.decode_contents(),
            ),
            CascadeRule(
                name="main",
                candidates=lambda soup: _first(soup, "main"),
                accept=self.is_usable,
                render=lambda node: node.decode_contents(),
            ),
            CascadeRule(
                name="paragraphs",
                candidates=lambda soup: [soup.find_all("p")],
                accept=self._paragraphs_sufficient,
                render=lambda paragraphs: "".join(str(p) for p in paragraphs),
            ),
        ])
        return rules

    def is_usable(self, node: Tag) -> bool:
        """Sufficient content that is not itself a boilerplate block."""
        return not self.is_boilerplate(node) and self.is_sufficient(node)

    def is_boilerplate(self, node: Tag) -> bool:
        """True when ``node`` itself would be dropped by ``sanitize``."""
        return node.css.match(BOILERPLATE_SELECTOR)

    def is_sufficient(self, node: Tag) -> bool:
        """Accept nodes with paragraph/figure descendants or enough text."""
        if node.find(["p", "figure"]) is not None:
            return True
        return stripped_text_length(node) > self.extraction.min_text_length

    def _paragraphs_sufficient(self, paragraphs: List[Tag]) -> bool:
        if len(paragraphs) <= self.extraction.min_paragraph_count:
            return False
        return sum(len(p.get_text()) for p in paragraphs) > self.extraction.min_text_length

    def locate(self, page_html: str, article_url: str) -> ExtractionResult:
        """Find and sanitize the article body.

        Raises:
            ContentNotFoundError: No rule before the placeholder matched
        """
        soup = BeautifulSoup(page_html or "", "html.parser")
        match = run_cascade(self.rules, soup, finish=lambda fragment: self.sanitize(fragment, article_url))

        if match is None:
            self._log_diagnostics(soup, article_url)
            raise ContentNotFoundError("Could not find article content", article_url=article_url)

        rule, fragment = match
        self.logger.debug(f"Found content using rule: {rule}", extra={"article_url": article_url})
        return ExtractionResult(
            html=fragment,
            rule=rule,
            metadata=extract_metadata(soup),
        )

    def extract(self, page_html: str, article_url: str) -> ExtractionResult:
        """Like ``locate`` but never raises; misses yield the placeholder."""
        try:
            return self.locate(page_html, article_url)
        except ContentNotFoundError:
            return self.placeholder(article_url)
        except Exception as e:
            self.logger.error(f"Error extracting article {article_url}: {e}", exc_info=True)
            return self.placeholder(article_url)

    def placeholder(self, article_url: str) -> ExtractionResult:
        """Fragment linking back to the original article."""
        link = html.escape(article_url or "", quote=True)
        label = html.escape(self.source_label)
        return ExtractionResult(
            html=f'<p>Failed to fetch full article content. <a href="{link}">Read on {label}</a></p>',
            rule=PLACEHOLDER_RULE,
        )

    def sanitize(self, fragment_html: str, article_url: Optional[str] = None) -> str:
        """Return a cleaned copy of ``fragment_html``.

        Boilerplate blocks are dropped, tracking attributes stripped and
        CDN images routed through the image proxy. Relative and
        protocol-relative CDN sources are resolved against ``article_url``
        first so the proxy receives an absolute https URL.
        """
        soup = BeautifulSoup(fragment_html, "html.parser")

        for node in self._boilerplate_nodes(soup):
            node.extract()

        prefix = self.extraction.tracking_attribute_prefix
        for tag in soup.find_all(True):
            for attr in [name for name in tag.attrs if name.startswith(prefix)]:
                del tag[attr]

        for img in soup.find_all("img"):
            src = img.get("src")
            if not host_matches(src, self.cdn_domain):
                continue
            absolute = resolve_url(src, article_url or "")
            if absolute:
                img["src"] = self.proxy_url(absolute)

        return str(soup)

    def proxy_url(self, image_url: str) -> str:
        """Relative image-proxy link carrying ``image_url`` URL-encoded."""
        return f"{self.extraction.image_proxy_path}?url={quote(image_url, safe=URI_COMPONENT_SAFE)}"

    def _boilerplate_nodes(self, soup: BeautifulSoup) -> List[Tag]:
        nodes = soup.select(BOILERPLATE_SELECTOR)
        for img in soup.select('img[alt*="emoji"]'):
            parent = img.parent
            nodes.append(parent if isinstance(parent, Tag) and parent is not soup else img)
        return nodes

    def _log_diagnostics(self, soup: BeautifulSoup, article_url: str) -> None:
        title = soup.title.get_text(strip=True) if soup.title else ""
        self.logger.warning(
            f"No content found with any rule for {article_url}",
            extra={
                "article_url": article_url,
                "article_tags": len(soup.find_all("article")),
                "main_tags": len(soup.find_all("main")),
                "p_tags": len(soup.find_all("p")),
                "content_class_nodes": len(soup.select('[class*="content"]')),
                "article_class_nodes": len(soup.select('[class*="article"]')),
                "page_title": title,
            },
        )
