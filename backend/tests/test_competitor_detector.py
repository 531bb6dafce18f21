"""Tests for competitor detection and merging."""

import pytest

from factories import make_analysis
from visibility_engine.schemas import (
    Citation,
    CitationBucket,
    CompetitorMention,
    DetectionSource,
)
from visibility_engine.services.competitor_detector import (
    CompetitorDetector,
    guess_domain,
    is_generic_domain,
    name_from_domain,
    normalize_name,
)


def competitor_citation(domain: str) -> Citation:
    return Citation(
        url=f"https://{domain}/compare",
        resolved_domain=domain,
        bucket=CitationBucket.COMPETITOR,
        influence_score=0.3,
        relevance_score=0.5,
    )


@pytest.fixture
def detector() -> CompetitorDetector:
    return CompetitorDetector()


class TestNameHelpers:
    """Tests for name and domain helpers."""

    def test_normalize_name(self) -> None:
        assert normalize_name("Rival Corp.") == "rival"
        assert normalize_name("  Data-Dog, Inc ") == "data dog"

    def test_guess_domain_is_best_effort(self) -> None:
        """Guessed domains look plausible, not necessarily real."""
        guessed = guess_domain("Acme Cloud")

        assert guessed is not None
        assert "acmecloud" in guessed
        assert guessed.endswith(".com")
        assert guess_domain("!!!") is None

    def test_name_from_domain(self) -> None:
        assert name_from_domain("https://www.acme-cloud.io/") == "Acme Cloud"

    def test_generic_domains(self) -> None:
        assert is_generic_domain("en.wikipedia.org")
        assert not is_generic_domain("rival.io")


class TestCompetitorDetector:
    """Tests for CompetitorDetector."""

    def test_seed_profiles(self, detector, company) -> None:
        """Request competitors are manual with full confidence."""
        seeds = detector.seed_profiles(company)

        assert len(seeds) == 1
        assert seeds[0].name == "Rival Corp"
        assert seeds[0].domain == "rival.io"
        assert seeds[0].confidence == 1.0
        assert seeds[0].detected_from == DetectionSource.MANUAL

    def test_industry_seeds_are_opt_in(self, detector, company) -> None:
        """Known industry players are added only on request."""
        seeds = detector.seed_profiles(company, include_industry=True)

        assert len(seeds) > 1
        assert seeds[0].detected_from == DetectionSource.MANUAL
        assert all(s.detected_from == DetectionSource.KNOWN_LIST for s in seeds[1:])
        assert detector.domains(seeds)[0] == "rival.io"

    def test_mentions_merge_into_seed(self, detector, company) -> None:
        """A mention of a seeded competitor does not duplicate it."""
        seeds = detector.seed_profiles(company)
        analyses = [make_analysis("q1", competitors=["Rival Corp."]), make_analysis("q2", competitors=["Rival"])]

        profiles = detector.detect(company, analyses, seeds)

        assert len(profiles) == 1
        assert profiles[0].detected_from == DetectionSource.MANUAL

    def test_company_is_never_a_competitor(self, detector, company) -> None:
        """The company itself is filtered out by name or domain."""
        analysis = make_analysis("q1", competitors=["ACME Cloud Inc", "Other Vendor"])
        analysis = analysis.model_copy(update={
            "citations": [competitor_citation("acmecloud.com")],
        })

        profiles = detector.detect(company, [analysis])

        assert [p.name for p in profiles] == ["Other Vendor"]

    def test_higher_confidence_source_wins(self, detector, company) -> None:
        """A mention outranks a citation for the same domain."""
        analysis = make_analysis("q1").model_copy(update={
            "competitors": [CompetitorMention(name="CloudZap", domain="cloudzap.io")],
            "citations": [competitor_citation("cloudzap.io")],
        })

        profiles = detector.detect(company, [analysis])

        assert len(profiles) == 1
        assert profiles[0].detected_from == DetectionSource.MENTION
        assert profiles[0].confidence == pytest.approx(0.8)

    def test_citation_only_competitor(self, detector, company) -> None:
        """Competitor-bucket citations surface competitors by domain."""
        analysis = make_analysis("q1").model_copy(update={
            "citations": [competitor_citation("cost-zen.io"), competitor_citation("github.com")],
        })

        profiles = detector.detect(company, [analysis])

        assert len(profiles) == 1
        assert profiles[0].domain == "cost-zen.io"
        assert profiles[0].name == "Cost Zen"
        assert profiles[0].detected_from == DetectionSource.CITATION

    def test_sorted_by_confidence(self, detector, company) -> None:
        """Profiles are ordered strongest first."""
        analysis = make_analysis("q1", competitors=["Zeta Metrics"]).model_copy(update={
            "citations": [competitor_citation("alpha-costs.io")],
        })

        profiles = detector.detect(company, [analysis], detector.seed_profiles(company))

        assert [p.confidence for p in profiles] == sorted((p.confidence for p in profiles), reverse=True)
        assert profiles[0].name == "Rival Corp"

    def test_empty(self, detector, company) -> None:
        assert detector.detect(company, []) == []
