from app.features.scan.schemas.pipeline import PhaseAOutput
from app.features.scan.services.keywords.keyword_builder import (
    build_fallback_keywords,
    build_serp_keywords,
    city_of,
    derive_keyword_plan,
    domain_base_name,
)
from app.features.scan.services.keywords.service_detection import (
    deduplicate,
    is_service_phrase,
    scan_homepage_services,
)

from scan_fakes import HOMEPAGE_HTML


def test_service_detection_on_plumbing_homepage():
    scan = scan_homepage_services(HOMEPAGE_HTML, "https://example.com")

    services = [s.lower().strip() for s in scan.services]
    assert "drain cleaning" in services
    assert "water heater installation" in services
    assert "leak detection" in services
    assert "home" not in services
    assert scan.business_name == "Acme Plumbing"
    assert scan.location_cues[:2] == ("Sacramento", "CA")
    assert "plumbing" in scan.service_categories
    assert 0 < scan.confidence <= 1


def test_service_phrase_filter():
    assert is_service_phrase("Drain Cleaning")
    assert not is_service_phrase("Contact Us")
    assert not is_service_phrase("abc")
    assert not is_service_phrase("2024")
    assert not is_service_phrase("https://example.com/a")


def test_deduplicate_keeps_first_spelling():
    assert deduplicate(["drain cleaning", "Drain Cleaning!", "Leak Detection"]) == ["drain cleaning", "Leak Detection"]


def test_keyword_variants_for_a_service():
    keywords = build_serp_keywords(["Drain Cleaning"], "Sacramento, CA", "example.com")

    assert [k.keyword for k in keywords] == [
        "drain cleaning sacramento",
        "drain cleaning near me",
        "drain cleaning company",
        "drain cleaning services",
        "drain cleaning cost",
        "drain cleaning reviews",
        "drain cleaning pricing",
        "drain cleaning",
    ]
    assert keywords[0].intent == "local"
    assert keywords[-1].intent == "informational"
    assert {k.source for k in keywords} == {"Drain Cleaning"}


def test_no_doubled_suffix():
    keywords = [k.keyword for k in build_serp_keywords(["Plumbing Services"], None, "example.com")]

    assert "plumbing services services" not in keywords
    assert "plumbing services near me" in keywords


def test_keywords_are_capped_and_unique():
    services = ["Drain Cleaning", "drain cleaning", "Leak Detection", "Water Heaters", "Sewer Repair"]

    keywords = [k.keyword for k in build_serp_keywords(services, "Sacramento, CA", "example.com", cap=15)]

    assert len(keywords) == 15
    assert len(set(keywords)) == 15


def test_domain_fallback_when_too_few_keywords():
    keywords = build_serp_keywords([], "Folsom, CA", "www.acme-plumbing.com")

    assert [k.keyword for k in keywords] == [
        "acme-plumbing folsom",
        "acme-plumbing near me",
        "acme-plumbing services",
        "best acme-plumbing",
    ]
    assert all(k.source == "domain_fallback" for k in keywords)


def test_fallback_keywords_from_title_and_description():
    keywords = build_fallback_keywords(
        "Acme | Home Repairs", "Roof repair, gutter cleaning.", None, "example.com"
    )

    phrases = {k.source for k in keywords}
    assert {"Acme", "Home Repairs", "Roof repair", "gutter cleaning"} <= phrases


def test_helpers():
    assert domain_base_name("www.Example.co.uk") == "example"
    assert city_of("Sacramento, CA") == "Sacramento"
    assert city_of(None) is None
    assert city_of(" , CA") is None


def test_plan_from_crawled_homepage_uses_detected_location():
    phase_a = PhaseAOutput(crawl_ok=True, raw_html=HOMEPAGE_HTML)

    plan = derive_keyword_plan(phase_a, "example.com", None)

    assert plan.service_detection_warning is False
    assert plan.location == "Sacramento, CA"
    assert plan.homepage_scan.business_name == "Acme Plumbing"
    assert "drain cleaning sacramento" in [k.keyword for k in plan.keywords]
    assert len(plan.keywords) <= 15


def test_plan_prefers_request_location():
    phase_a = PhaseAOutput(crawl_ok=True, raw_html=HOMEPAGE_HTML)

    plan = derive_keyword_plan(phase_a, "example.com", "Folsom, CA")

    assert plan.location == "Folsom, CA"
    assert any(k.keyword.endswith(" folsom") for k in plan.keywords)


def test_plan_without_crawl_content_uses_domain():
    plan = derive_keyword_plan(PhaseAOutput(crawl_ok=False), "acme-plumbing.com", None)

    assert plan.service_detection_warning is True
    assert plan.homepage_scan is None
    assert [k.keyword for k in plan.keywords] == [
        "acme-plumbing near me",
        "acme-plumbing company",
        "acme-plumbing services",
        "acme-plumbing cost",
        "acme-plumbing reviews",
        "acme-plumbing pricing",
        "acme-plumbing",
    ]


def test_plan_without_services_falls_back_to_page_signals():
    html = "<html><head><title>Home</title></head><body><p>Welcome</p></body></html>"

    plan = derive_keyword_plan(PhaseAOutput(crawl_ok=True, raw_html=html), "acme-plumbing.com", None)

    assert plan.service_detection_warning is True
    assert plan.homepage_scan is not None
    assert plan.keywords
