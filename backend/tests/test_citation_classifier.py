"""Tests for citation classification."""

import pytest

from factories import make_citation
from visibility_engine.adapters.parsing import CitationClassifier, build_domain_hints
from visibility_engine.schemas import CitationBucket, CompanyIdentity
from visibility_engine.services.scoring_engine import ScoringEngine


@pytest.fixture
def classifier() -> CitationClassifier:
    return CitationClassifier()


class TestCitationClassifier:
    """Tests for CitationClassifier.classify."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://acmecloud.com/pricing",
            "https://www.AcmeCloud.com/blog/post",
            "http://docs.acmecloud.com",
            "acmecloud.com/about",
            "https://acme-docs.dev/guide",
        ],
    )
    def test_owned_domains(self, classifier, company, url) -> None:
        """The company domain, its subdomains and owned domains are owned."""
        citation = classifier.classify(url, company)

        assert citation.bucket == CitationBucket.OWNED
        assert citation.influence_score >= 0.9

    def test_operated_domain(self, classifier, company) -> None:
        """Configured operated domains are operated."""
        citation = classifier.classify("https://community.acmehub.org/t/42", company)

        assert citation.bucket == CitationBucket.OPERATED
        assert citation.influence_score == pytest.approx(0.85)

    def test_company_profile_on_platform(self, classifier, company) -> None:
        """A platform URL carrying the company token is operated."""
        citation = classifier.classify("https://www.linkedin.com/company/acme-cloud", company)

        assert citation.bucket == CitationBucket.OPERATED

    def test_platform_without_company_token(self, classifier, company) -> None:
        """A platform URL about someone else is earned."""
        citation = classifier.classify("https://www.linkedin.com/company/somebody-else", company)

        assert citation.bucket == CitationBucket.EARNED
        assert citation.influence_score == pytest.approx(0.7)

    def test_high_authority_media(self, classifier, company) -> None:
        """Known publications are earned with high influence."""
        citation = classifier.classify("https://techcrunch.com/2024/01/01/article", company)

        assert citation.bucket == CitationBucket.EARNED
        assert citation.influence_score == pytest.approx(0.85)
        assert "high-authority" in citation.reasoning

    def test_news_like_host(self, classifier, company) -> None:
        """Hosts that read like news outlets get news influence."""
        citation = classifier.classify("https://citytimes.com/story", company)

        assert citation.bucket == CitationBucket.EARNED
        assert citation.influence_score == pytest.approx(0.8)

    def test_competitor_domain(self, classifier, company) -> None:
        """Known competitor domains are competitor."""
        citation = classifier.classify("https://www.rival.io/features", company, ["rival.io"])

        assert citation.bucket == CitationBucket.COMPETITOR
        assert citation.influence_score == pytest.approx(0.3)

    @pytest.mark.parametrize(
        "domain",
        ["postmarkapp.com", "timescale.com", "newsapi.org", "rival.io"],
    )
    def test_competitor_domain_beats_news_guess(self, classifier, domain) -> None:
        """A listed competitor stays competitor even if its host reads like news."""
        company = CompanyIdentity(name="Acme Mail", domain="acmemail.com")

        citation = classifier.classify(f"https://{domain}/pricing", company, [domain])

        assert citation.bucket == CitationBucket.COMPETITOR
        assert citation.influence_score == pytest.approx(0.3)

    def test_comparison_page(self, classifier, company) -> None:
        """Comparison and alternatives pages are competitor."""
        versus = classifier.classify("https://someblog.com/acme-vs-rival", company)
        alternatives = classifier.classify("https://reviews.example.org/alternatives-to-acme", company)

        assert versus.bucket == CitationBucket.COMPETITOR
        assert alternatives.bucket == CitationBucket.COMPETITOR

    def test_unknown_third_party(self, classifier, company) -> None:
        """Anything else defaults to earned."""
        citation = classifier.classify("https://example.org/article", company)

        assert citation.bucket == CitationBucket.EARNED
        assert citation.influence_score == pytest.approx(0.7)
        assert citation.resolved_domain == "example.org"

    def test_owned_wins_over_competitor_list(self, classifier, company) -> None:
        """The company domain stays owned even if listed as a competitor."""
        citation = classifier.classify("https://acmecloud.com", company, ["acmecloud.com"])

        assert citation.bucket == CitationBucket.OWNED

    @pytest.mark.parametrize("url", ["", "not a url", "https://"])
    def test_malformed_url_does_not_raise(self, classifier, company, url) -> None:
        """Malformed URLs become earned with neutral influence."""
        citation = classifier.classify(url, company)

        assert citation.bucket == CitationBucket.EARNED
        assert citation.influence_score == pytest.approx(0.5)
        assert citation.reasoning.startswith("Classification error")

    def test_classification_is_pure(self, classifier, company) -> None:
        """Same input gives the same citation."""
        url = "https://www.g2.com/products/acmecloud/reviews"

        assert classifier.classify(url, company) == classifier.classify(url, company)

    def test_relevance_score(self, classifier, company) -> None:
        """Company tokens and intent keywords raise relevance."""
        plain = classifier.classify("https://example.org/article", company)
        about = classifier.classify("https://example.org/acmecloud-review", company)

        assert plain.relevance_score == pytest.approx(0.5)
        assert about.relevance_score == pytest.approx(1.0)

    def test_extra_platforms(self, company) -> None:
        """Callers can extend the operated platform list."""
        classifier = CitationClassifier(extra_operated_platforms=["https://www.mastodon.social/"])

        citation = classifier.classify("https://mastodon.social/@acmecloud", company)

        assert citation.bucket == CitationBucket.OPERATED


class TestCitationQualityExample:
    """One citation per bucket."""

    def test_quality_score(self, classifier) -> None:
        """owned, operated, earned and competitor average to 0.6."""
        company = CompanyIdentity(name="Brand", domain="company.com")
        urls = [
            "https://company.com",
            "https://linkedin.com/company/brand",
            "https://techcrunch.com/article",
            "https://competitor.com",
        ]

        citations = classifier.classify_many(urls, company, ["competitor.com"])

        assert [c.bucket for c in citations] == [
            CitationBucket.OWNED,
            CitationBucket.OPERATED,
            CitationBucket.EARNED,
            CitationBucket.COMPETITOR,
        ]
        assert ScoringEngine.citation_quality_score(citations) == pytest.approx(0.6)


class TestClassificationStats:
    """Tests for classification_stats and prompt hints."""

    def test_stats(self) -> None:
        """Counts every bucket and averages scores."""
        citations = [
            make_citation(CitationBucket.OWNED, 0.95),
            make_citation(CitationBucket.EARNED, 0.7),
            make_citation(CitationBucket.EARNED, 0.85),
        ]

        stats = CitationClassifier.classification_stats(citations)

        assert stats.total == 3
        assert stats.by_bucket == {"owned": 1, "operated": 0, "earned": 2, "competitor": 0}
        assert stats.avg_influence == pytest.approx(0.8333, abs=1e-4)
        assert stats.avg_relevance == pytest.approx(0.5)

    def test_empty_stats(self) -> None:
        """No citations gives empty stats."""
        assert CitationClassifier.classification_stats([]).total == 0

    def test_domain_hints(self) -> None:
        """One hint line per citation."""
        hints = build_domain_hints([make_citation(CitationBucket.OWNED, url="https://acmecloud.com")])

        assert hints == ["https://acmecloud.com (owned: )"]
