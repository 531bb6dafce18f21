"""
Citation Classifier
Deterministic owned / operated / earned / competitor bucketing of cited URLs
"""

import logging
import re
from collections import Counter
from typing import Iterable, List, Sequence, Tuple
from urllib.parse import urlparse

from visibility_engine.config import CITATION_INFLUENCE
from visibility_engine.errors import ClassificationError
from visibility_engine.schemas import (
    Citation,
    CitationBucket,
    ClassificationStats,
    CompanyIdentity,
    normalize_domain,
)

logger = logging.getLogger(__name__)


def _matches_domain(host: str, domain: str) -> bool:
    """True if host equals domain or is a subdomain of it"""
    return bool(domain) and (host == domain or host.endswith("." + domain))


class CitationClassifier:
    """
    Classifies a citation URL relative to a company.

    Rules, first match wins:
    1. host is the company domain or a subdomain     -> owned
    2. host is an operated domain, or a known social /
       directory / developer platform whose URL
       carries a company token                        -> operated
    3. host is a known media or platform domain       -> earned
    4. host is a competitor domain, or the URL reads
       like a comparison page                         -> competitor
    5. anything else, news-like hosts ranked higher   -> earned

    The classifier holds no per-call state; classify() is pure.
    """

    # Platforms a company typically runs its own presence on
    OPERATED_PLATFORMS = (
        "linkedin.com",
        "twitter.com",
        "x.com",
        "facebook.com",
        "instagram.com",
        "youtube.com",
        "tiktok.com",
        "g2.com",
        "capterra.com",
        "trustpilot.com",
        "glassdoor.com",
        "crunchbase.com",
        "angel.co",
        "github.com",
        "npmjs.com",
        "stackshare.io",
        "producthunt.com",
        "apps.apple.com",
        "play.google.com",
    )

    # Editorial and reference sources
    EARNED_MEDIA = (
        "techcrunch.com",
        "venturebeat.com",
        "theverge.com",
        "wired.com",
        "forbes.com",
        "bloomberg.com",
        "reuters.com",
        "cnn.com",
        "hbr.org",
        "mckinsey.com",
        "deloitte.com",
        "accenture.com",
        "wikipedia.org",
        "investopedia.com",
    )

    HIGH_AUTHORITY = (
        "techcrunch.com",
        "venturebeat.com",
        "theverge.com",
        "wired.com",
        "forbes.com",
        "bloomberg.com",
        "reuters.com",
        "wsj.com",
        "nytimes.com",
        "washingtonpost.com",
        "cnn.com",
        "bbc.com",
        "bbc.co.uk",
        "wikipedia.org",
        "investopedia.com",
        "hbr.org",
    )

    NEWS_KEYWORDS = ("news", "times", "post", "herald", "journal", "tribune")

    INTENT_KEYWORDS = ("review", "pricing", "alternative", "comparison", "features")

    COMPARISON_PATTERN = re.compile(
        r"(?:^|[/\-_.=])(?:vs|versus)(?:[/\-_.]|$)|alternatives?-to|compare-|competitor-"
    )

    def __init__(
        self,
        extra_operated_platforms: Sequence[str] = (),
        extra_earned_media: Sequence[str] = (),
    ):
        self.operated_platforms = tuple(self.OPERATED_PLATFORMS) + tuple(
            normalize_domain(d) for d in extra_operated_platforms
        )
        self.earned_media = tuple(self.EARNED_MEDIA) + tuple(
            normalize_domain(d) for d in extra_earned_media
        )

    # ------------------------------------------------------------------ #
    # Tokens and scores
    # ------------------------------------------------------------------ #

    @staticmethod
    def company_tokens(company: CompanyIdentity) -> List[str]:
        """Lowercase strings that identify the company inside a URL"""
        name = company.name.strip().lower()
        tokens = []
        if name:
            tokens.extend([
                re.sub(r"\s+", "", name),
                re.sub(r"\s+", "-", name),
                re.sub(r"\s+", "_", name),
            ])
        if company.brand_token:
            tokens.append(company.brand_token)
        seen = []
        for token in tokens:
            if token and token not in seen:
                seen.append(token)
        return seen

    def relevance_score(self, url: str, company: CompanyIdentity) -> float:
        """How much a URL is about the company"""
        url_lower = url.lower()
        score = 0.5

        compact_name = re.sub(r"\s+", "", company.name.strip().lower())
        if compact_name and compact_name in url_lower:
            score += 0.3

        if company.brand_token and company.brand_token in url_lower:
            score += 0.2

        for keyword in self.INTENT_KEYWORDS:
            if keyword in url_lower:
                score += 0.1

        return round(min(1.0, score), 4)

    def _is_news_host(self, host: str) -> bool:
        labels = host.split(".")
        return labels[-1] == "news" or any(k in label for label in labels[:-1] for k in self.NEWS_KEYWORDS)

    def _earned_influence(self, host: str) -> Tuple[float, str]:
        if any(_matches_domain(host, d) for d in self.HIGH_AUTHORITY):
            return CITATION_INFLUENCE["earned_high_authority"], "high-authority publication"
        if self._is_news_host(host):
            return CITATION_INFLUENCE["earned_news"], "news media"
        return CITATION_INFLUENCE["earned"], "known platform"

    # ------------------------------------------------------------------ #
    # Classification
    # ------------------------------------------------------------------ #

    @staticmethod
    def parse_host(url: str) -> Tuple[str, str]:
        """
        Return (host, path_and_query) for a URL; scheme-less URLs are accepted.

        Raises:
            ClassificationError: no usable hostname
        """
        raw = (url or "").strip()
        if not raw:
            raise ClassificationError("Empty URL", url)
        candidate = raw if "://" in raw else f"https://{raw}"
        try:
            parsed = urlparse(candidate)
            host = parsed.hostname or ""
        except ValueError as e:
            raise ClassificationError(f"Unparseable URL: {e}", url)
        host = normalize_domain(host)
        if not host or "." not in host or " " in host:
            raise ClassificationError(f"No valid hostname in {raw!r}", url)
        path = parsed.path or ""
        if parsed.query:
            path = f"{path}?{parsed.query}"
        return host, path.lower()

    def classify(
        self,
        url: str,
        company: CompanyIdentity,
        competitor_domains: Iterable[str] = (),
    ) -> Citation:
        """Classify one URL; never raises"""
        try:
            host, path = self.parse_host(url)
        except ClassificationError as e:
            logger.debug("Citation classification failed for %r: %s", url, e.message)
            return Citation(
                url=url or "",
                resolved_domain="",
                bucket=CitationBucket.EARNED,
                influence_score=CITATION_INFLUENCE["classification_error"],
                relevance_score=0.5,
                reasoning=f"Classification error: {e.message}",
            )

        bucket, influence, reasoning = self._bucket_for(host, path, company, competitor_domains)
        return Citation(
            url=url,
            resolved_domain=host,
            bucket=bucket,
            influence_score=influence,
            relevance_score=self.relevance_score(url, company),
            reasoning=reasoning,
        )

    def _bucket_for(
        self,
        host: str,
        path: str,
        company: CompanyIdentity,
        competitor_domains: Iterable[str],
    ) -> Tuple[CitationBucket, float, str]:
        owned = [company.domain] + list(company.owned_domains)
        if any(_matches_domain(host, d) for d in owned):
            return CitationBucket.OWNED, CITATION_INFLUENCE["owned"], f"Company-owned domain {host}"

        if any(_matches_domain(host, d) for d in company.operated_domains):
            return CitationBucket.OPERATED, CITATION_INFLUENCE["operated"], f"Company-operated domain {host}"

        platform = next((d for d in self.operated_platforms if _matches_domain(host, d)), None)
        if platform and any(token in path for token in self.company_tokens(company)):
            return (
                CitationBucket.OPERATED,
                CITATION_INFLUENCE["operated"],
                f"Company presence on {platform}",
            )

        known = platform or next((d for d in self.earned_media if _matches_domain(host, d)), None)
        if known is None and any(_matches_domain(host, d) for d in self.HIGH_AUTHORITY):
            known = host
        if known:
            influence, kind = self._earned_influence(host)
            return CitationBucket.EARNED, influence, f"Third-party coverage on {kind} {host}"

        competitors = [normalize_domain(d) for d in competitor_domains]
        if any(_matches_domain(host, d) for d in competitors if d):
            return CitationBucket.COMPETITOR, CITATION_INFLUENCE["competitor"], f"Competitor domain {host}"

        if self.COMPARISON_PATTERN.search(host) or self.COMPARISON_PATTERN.search(path):
            return CitationBucket.COMPETITOR, CITATION_INFLUENCE["competitor"], "Comparison or alternatives page"

        if self._is_news_host(host):
            return CitationBucket.EARNED, CITATION_INFLUENCE["earned_news"], f"Third-party coverage on news media {host}"

        return CitationBucket.EARNED, CITATION_INFLUENCE["earned"], f"Independent third-party source {host}"

    def classify_many(
        self,
        urls: Iterable[str],
        company: CompanyIdentity,
        competitor_domains: Iterable[str] = (),
    ) -> List[Citation]:
        competitor_domains = list(competitor_domains)
        return [self.classify(url, company, competitor_domains) for url in urls]

    @staticmethod
    def classification_stats(citations: Sequence[Citation]) -> ClassificationStats:
        if not citations:
            return ClassificationStats()
        counts = Counter(c.bucket.value for c in citations)
        total = len(citations)
        return ClassificationStats(
            total=total,
            by_bucket={bucket.value: counts.get(bucket.value, 0) for bucket in CitationBucket},
            avg_influence=round(sum(c.influence_score for c in citations) / total, 4),
            avg_relevance=round(sum(c.relevance_score for c in citations) / total, 4),
        )


def build_domain_hints(citations: Sequence[Citation]) -> List[str]:
    """One line per citation for the analysis prompt"""
    return [f"{c.url} ({c.bucket.value}: {c.reasoning})" for c in citations]

