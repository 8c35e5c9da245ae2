import threading
from unittest.mock import patch

import pytest

from app.features.scan.services.fetchers.ai_readiness_analyzer import HtmlAIReadinessAnalyzer, analyze_page

from scan_fakes import HOMEPAGE_HTML

WELL_MARKED_UP_HTML = """
<html>
<head>
  <meta property="og:site_name" content="Acme Plumbing">
  <script type="application/ld+json">
  {"@context": "https://schema.org", "@graph": [
    {"@type": "Plumber", "name": "Acme Plumbing"},
    {"@type": "LocalBusiness", "name": "Acme Plumbing", "email": "hi@example.com",
     "address": {"@type": "PostalAddress", "addressLocality": "Sacramento"},
     "sameAs": ["https://www.facebook.com/acme", "https://www.yelp.com/biz/acme"]},
    {"@type": "WebSite", "url": "https://example.com"},
    {"@type": "FAQPage"},
    {"@type": "BreadcrumbList"},
    {"@type": "Service", "name": "Drain Cleaning"}
  ]}
  </script>
</head>
<body>
  <main>
    <h2>How much does drain cleaning cost?</h2>
    <p>%s</p>
    <ol><li>Call us</li><li>We inspect</li></ol>
  </main>
</body>
</html>
""" % " ".join(["Most drain cleaning visits in Sacramento cost between one and three hundred dollars."] * 4)


def test_homepage_scores_and_findings():
    result = analyze_page(HOMEPAGE_HTML, "https://example.com/")

    assert result.structured_data_coverage == 20
    assert result.entity_coverage == 75
    assert result.llm_answerability == 50
    assert 0 <= result.ai_visibility_score <= 100
    assert result.schema_types == ("LocalBusiness",)

    failing = {f.key for f in result.findings}
    assert failing == {"faq_schema", "same_as_profiles", "answer_passages"}
    assert all(f.title.startswith("Missing: ") for f in result.findings)
    assert len(result.checklist) == 9


def test_fully_marked_up_page_passes_every_check():
    result = analyze_page(WELL_MARKED_UP_HTML, "https://example.com/")

    assert result.findings == ()
    assert all(item.passed for item in result.checklist)
    assert result.structured_data_coverage == 100
    assert result.entity_coverage == 100
    assert result.llm_answerability == 100
    assert result.ai_visibility_score == 100


def test_empty_page_fails_everything():
    result = analyze_page("", "https://example.com/")

    assert result.ai_visibility_score == 0
    assert len(result.findings) == 9
    assert result.findings[0].severity == "high"


@pytest.mark.asyncio
async def test_analyzer_wraps_analyze_page():
    result = await HtmlAIReadinessAnalyzer().analyze(HOMEPAGE_HTML, "https://example.com/")

    assert result == analyze_page(HOMEPAGE_HTML, "https://example.com/")


@pytest.mark.asyncio
async def test_analyzer_parses_off_the_event_loop():
    threads = []

    def recording_analyze_page(html, url):
        threads.append(threading.get_ident())
        return analyze_page(html, url)

    with patch(
        "app.features.scan.services.fetchers.ai_readiness_analyzer.analyze_page",
        side_effect=recording_analyze_page,
    ):
        await HtmlAIReadinessAnalyzer().analyze(HOMEPAGE_HTML, "https://example.com/")

    assert threads and threads[0] != threading.get_ident()
