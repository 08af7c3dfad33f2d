#!/usr/bin/env python3
"""
Content Extractor Tests
=======================

Rule ordering, the sufficiency predicate, sanitization and placeholder
behaviour.
"""

from urllib.parse import parse_qs, urlparse

import pytest
from bs4 import BeautifulSoup

from conftest import TEST_CDN_DOMAIN
from pirss.ingestion.content_extractor import (
    CONTENT_SELECTORS,
    CascadeRule,
    ContentExtractor,
    PLACEHOLDER_RULE,
    run_cascade,
)
from pirss.utils.exceptions import ContentNotFoundError
from pirss.utils.validators import URLValidator


ARTICLE_URL = "https://sspai.com/post/12345"

LONG_SENTENCE = "This paragraph carries enough words to look like real article prose. "


def page(body: str, head: str = "") -> str:
    return f"<html><head><title>Test page</title>{head}</head><body>{body}</body></html>"


@pytest.fixture
def extractor(settings):
    return ContentExtractor(settings)


class TestCascadeOrder:
    """Test that specific rules win over generic ones."""

    def test_specific_selector_beats_generic_content_class(self, extractor):
        html = page(
            '<div class="page-content">Unrelated teaser</div>'
            '<div class="article-body"><p>Alpha paragraph</p><p>Beta paragraph</p><p>Gamma paragraph</p></div>'
        )

        result = extractor.extract(html, ARTICLE_URL)

        assert result.rule == ".article-body"
        assert "<p>Alpha paragraph</p>" in result.html
        assert "<p>Gamma paragraph</p>" in result.html
        assert "Unrelated teaser" not in result.html

    def test_sparse_match_rejected_in_favour_of_main(self, extractor):
        paragraphs = "".join(f"<p>Main paragraph {i}</p>" for i in range(5))
        html = page(f'<div class="article-body">note</div><main>{paragraphs}</main>')

        result = extractor.extract(html, ARTICLE_URL)

        assert result.rule == "main"
        assert "note" not in result.html
        assert result.html.count("<p>") == 5

    def test_long_text_without_paragraphs_accepted(self, extractor):
        text = "word " * 60
        result = extractor.extract(page(f'<div class="post-content">{text}</div>'), ARTICLE_URL)

        assert result.rule == ".post-content"
        assert "word word" in result.html

    def test_figure_only_candidate_accepted(self, extractor):
        html = page('<div class="entry-content"><figure><img src="https://x.example/a.jpg"></figure></div>')

        assert extractor.extract(html, ARTICLE_URL).rule == ".entry-content"

    def test_json_ld_article_body(self, extractor):
        head = (
            '<script type="application/ld+json">'
            '{"@type": "NewsArticle", "headline": "Hello", "articleBody": "<p>From structured data</p>",'
            ' "author": {"name": "Li Lei"}, "datePublished": "2025-01-06"}'
            "</script>"
        )

        result = extractor.extract(page("<span>tiny</span>", head=head), ARTICLE_URL)

        assert result.rule == "json-ld"
        assert "From structured data" in result.html
        assert result.metadata.headline == "Hello"
        assert result.metadata.author == "Li Lei"
        assert result.metadata.date_published == "2025-01-06"

    def test_malformed_json_ld_treated_as_absent(self, extractor):
        head = '<script type="application/ld+json">{"@type": "Article", "articleBody": </script>'

        result = extractor.extract(page("<span>tiny</span>", head=head), ARTICLE_URL)

        assert result.is_placeholder

    def test_article_container(self, extractor):
        html = page("<article><h1>Title</h1><p>Body text</p></article>")

        result = extractor.extract(html, ARTICLE_URL)

        assert result.rule == "article"
        assert "<p>Body text</p>" in result.html

    def test_page_wide_paragraph_fallback(self, extractor):
        html = page("".join(f"<p>{LONG_SENTENCE}{i}</p>" for i in range(4)))

        result = extractor.extract(html, ARTICLE_URL)

        assert result.rule == "paragraphs"
        assert result.html.count("<p>") == 4

    def test_three_paragraphs_not_enough_for_fallback(self, extractor):
        html = page("".join(f"<p>{LONG_SENTENCE}{i}</p>" for i in range(3)))

        assert extractor.extract(html, ARTICLE_URL).is_placeholder

    def test_paragraph_fallback_counts_text_not_markup(self, extractor):
        tracking = "x" * 60
        html = page("".join(f'<p data-track="{tracking}">Short line {i}</p>' for i in range(5)))

        assert extractor.extract(html, ARTICLE_URL).is_placeholder

    def test_candidate_emptied_by_sanitization_is_skipped(self, extractor):
        paragraphs = "".join(f"<p>Main paragraph {i}</p>" for i in range(4))
        html = page(
            '<div class="post-content"><div class="related-posts">'
            "<p>Other story one</p><p>Other story two</p></div></div>"
            f"<main>{paragraphs}</main>"
        )

        result = extractor.extract(html, ARTICLE_URL)

        assert result.rule == "main"
        assert "Other story" not in result.html
        assert result.html.count("<p>") == 4

    def test_boilerplate_only_page_yields_placeholder(self, extractor):
        html = page(
            '<div class="post-content"><div class="related-posts">'
            "<p>Other story one</p><p>Other story two</p></div></div>"
        )

        result = extractor.extract(html, ARTICLE_URL)

        assert result.is_placeholder
        assert result.html.strip()


class TestPlaceholder:
    """Test the terminal rule."""

    def test_placeholder_links_to_original(self, extractor):
        result = extractor.extract(page("<span>nothing here</span>"), ARTICLE_URL)

        assert result.rule == PLACEHOLDER_RULE
        assert f'<a href="{ARTICLE_URL}">Read on SSPAI</a>' in result.html

    def test_locate_raises_when_nothing_matches(self, extractor):
        with pytest.raises(ContentNotFoundError):
            extractor.locate(page(""), ARTICLE_URL)

    @pytest.mark.parametrize("markup", ["", None, "<<<>>>", "<div class=", "\x00\x01binary"])
    def test_extract_never_raises(self, extractor, markup):
        result = extractor.extract(markup, ARTICLE_URL)

        assert result.html

    def test_unexpected_fault_degrades_to_placeholder(self, extractor, monkeypatch):
        def explode(fragment, article_url=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(extractor, "sanitize", explode)
        result = extractor.extract(page('<div class="article-body"><p>x</p></div>'), ARTICLE_URL)

        assert result.is_placeholder


class TestSanitization:
    """Test boilerplate removal and image rewriting."""

    def test_cdn_image_routed_through_proxy(self, extractor):
        html = page(
            '<div class="article-body"><p>Intro</p>'
            f'<img src="https://{TEST_CDN_DOMAIN}/x.jpg">'
            '<img src="https://other.example.org/y.jpg">'
            "</div>"
        )

        result = extractor.extract(html, ARTICLE_URL)

        assert f'src="/image-proxy?url=https%3A%2F%2F{TEST_CDN_DOMAIN}%2Fx.jpg"' in result.html
        assert 'src="https://other.example.org/y.jpg"' in result.html

    def test_protocol_relative_cdn_image_gets_absolute_proxy_link(self, extractor):
        cleaned = extractor.sanitize(f'<p>Intro</p><img src="//{TEST_CDN_DOMAIN}/a.jpg">', ARTICLE_URL)

        src = BeautifulSoup(cleaned, "html.parser").img["src"]
        assert src == f"/image-proxy?url=https%3A%2F%2F{TEST_CDN_DOMAIN}%2Fa.jpg"
        proxied = parse_qs(urlparse(src).query)["url"][0]
        assert URLValidator.validate_image_url(proxied, TEST_CDN_DOMAIN) == f"https://{TEST_CDN_DOMAIN}/a.jpg"

    def test_path_relative_cdn_image_left_alone(self, extractor):
        cleaned = extractor.sanitize('<img src="/local/a.jpg">', ARTICLE_URL)

        assert 'src="/local/a.jpg"' in cleaned

    def test_boilerplate_removed(self, extractor):
        fragment = (
            "<p>Keep me</p>"
            '<div class="social-share-bar">share</div>'
            '<section class="comment-list">comments</section>'
            '<div class="reaction-box">+1</div>'
            '<aside class="promo-banner">buy</aside>'
            '<div class="related-posts">more</div>'
            '<div class="comp__Emoji">:)</div>'
            '<span><img alt="emoji smile" src="e.png"></span>'
            "<nav>menu</nav><script>track()</script><style>p{}</style>"
            "<header>top</header><footer>bottom</footer><iframe src='x'></iframe>"
            '<div class="sidebar">side</div><div class="ad">ad</div>'
        )

        cleaned = extractor.sanitize(fragment)

        assert "<p>Keep me</p>" in cleaned
        for gone in ["share", "comments", "+1", "buy", "more", ":)", "emoji", "menu",
                     "track()", "top", "bottom", "iframe", "side", ">ad<"]:
            assert gone not in cleaned

    def test_class_substring_match_is_case_sensitive(self, extractor):
        cleaned = extractor.sanitize('<div class="ShareBlock">kept</div><div class="Emoji-row">gone</div>')

        assert "kept" in cleaned
        assert "gone" not in cleaned

    def test_tracking_attributes_stripped(self, extractor):
        cleaned = extractor.sanitize('<p data-v-1a2b3c="" data-id="7" class="lead">Text</p>')

        soup = BeautifulSoup(cleaned, "html.parser")
        attrs = soup.p.attrs
        assert "data-v-1a2b3c" not in attrs
        assert attrs["data-id"] == "7"
        assert attrs["class"] == ["lead"]

    def test_sanitize_does_not_touch_source_document(self, extractor):
        source = BeautifulSoup('<div><p>a</p><nav>n</nav></div>', "html.parser")
        before = str(source)

        extractor.sanitize(source.div.decode_contents())

        assert str(source) == before


class TestCascadeDriver:
    """Test the generic first-match-wins driver."""

    def test_first_accepted_candidate_wins(self):
        soup = BeautifulSoup("<b>1</b><i>2</i>", "html.parser")
        rules = [
            CascadeRule("never", lambda s: s.find_all("b"), lambda n: False, str),
            CascadeRule("italic", lambda s: s.find_all("i"), lambda n: True, lambda n: n.get_text()),
            CascadeRule("bold", lambda s: s.find_all("b"), lambda n: True, lambda n: n.get_text()),
        ]

        assert run_cascade(rules, soup) == ("italic", "2")

    def test_no_match(self):
        soup = BeautifulSoup("<b>1</b>", "html.parser")
        assert run_cascade([CascadeRule("x", lambda s: [], lambda n: True, str)], soup) is None

    def test_selector_rules_follow_configured_order(self, extractor):
        names = [rule.name for rule in extractor.rules]

        assert names[: len(CONTENT_SELECTORS)] == CONTENT_SELECTORS
        assert names[len(CONTENT_SELECTORS):] == ["json-ld", "article", "main", "paragraphs"]
