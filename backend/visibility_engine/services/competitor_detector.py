"""
Competitor Detector
Builds run-level competitor profiles from analyses, citations and seeds
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from rapidfuzz import fuzz, process

from visibility_engine.config import INDUSTRY_COMPETITORS
from visibility_engine.schemas import (
    CitationBucket,
    CompanyIdentity,
    CompetitorProfile,
    DetectionSource,
    QuestionAnalysis,
    normalize_domain,
)

logger = logging.getLogger(__name__)


GENERIC_DOMAINS = (
    "wikipedia.org",
    "youtube.com",
    "reddit.com",
    "medium.com",
    "quora.com",
    "stackoverflow.com",
    "github.com",
    "google.com",
    "linkedin.com",
    "twitter.com",
    "x.com",
    "facebook.com",
)

_TLD_SUFFIX = re.compile(r"\.(com|io|ai|net|org|co|dev|app)(\.[a-z]{2})?$")
_NAME_SUFFIX = re.compile(r"\b(inc|llc|ltd|corp|corporation|co|gmbh)\.?$", re.IGNORECASE)


def normalize_name(name: str) -> str:
    """Lowercased name without punctuation or legal suffixes"""
    cleaned = _NAME_SUFFIX.sub("", name.strip().lower()).strip(" ,.")
    return re.sub(r"[^a-z0-9]+", " ", cleaned).strip()


def guess_domain(name: str) -> Optional[str]:
    """Best-effort name -> domain guess, e.g. 'Acme Cloud' -> 'acmecloud.com'"""
    compact = re.sub(r"[^a-z0-9]", "", normalize_name(name).replace(" ", ""))
    return f"{compact}.com" if compact else None


def name_from_domain(domain: str) -> str:
    """'acme-cloud.io' -> 'Acme Cloud'"""
    stem = _TLD_SUFFIX.sub("", normalize_domain(domain))
    stem = stem.split(".")[-1] if stem else ""
    return " ".join(part.capitalize() for part in re.split(r"[-_]+", stem) if part)


def is_generic_domain(domain: str) -> bool:
    domain = normalize_domain(domain)
    return any(domain == g or domain.endswith("." + g) for g in GENERIC_DOMAINS)


class CompetitorDetector:
    """
    Collects competitor candidates from four sources:
    - mention: competitors the analysis service extracted from answers
    - citation: domains the classifier put in the competitor bucket
    - manual: competitors supplied with the request
    - known-list: well-known players for the company's industry (opt-in)

    Candidates with similar names or the same domain are merged; the
    highest-confidence candidate wins.
    """

    # Minimum fuzzy similarity for two names to be the same competitor
    FUZZY_THRESHOLD = 85

    CONFIDENCE = {
        DetectionSource.MANUAL: 1.0,
        DetectionSource.KNOWN_LIST: 0.9,
        DetectionSource.MENTION: 0.8,
        DetectionSource.CITATION: 0.6,
    }

    def seed_profiles(
        self,
        company: CompanyIdentity,
        include_industry: bool = False,
    ) -> List[CompetitorProfile]:
        """Competitors known before any question is asked"""
        candidates = [
            CompetitorProfile(
                name=seed.name.strip(),
                domain=seed.domain or guess_domain(seed.name),
                confidence=self.CONFIDENCE[DetectionSource.MANUAL],
                detected_from=DetectionSource.MANUAL,
            )
            for seed in company.competitors
        ]
        if include_industry and company.industry:
            for name, domain in INDUSTRY_COMPETITORS.get(company.industry.lower(), []):
                candidates.append(CompetitorProfile(
                    name=name,
                    domain=domain,
                    confidence=self.CONFIDENCE[DetectionSource.KNOWN_LIST],
                    detected_from=DetectionSource.KNOWN_LIST,
                ))
        return self.merge(candidates, company)

    def from_analyses(self, analyses: Sequence[QuestionAnalysis]) -> List[CompetitorProfile]:
        candidates = []
        for analysis in analyses:
            for competitor in analysis.competitors:
                candidates.append(CompetitorProfile(
                    name=competitor.name,
                    domain=competitor.domain or guess_domain(competitor.name),
                    confidence=self.CONFIDENCE[DetectionSource.MENTION],
                    detected_from=DetectionSource.MENTION,
                ))
            for citation in analysis.citations:
                if citation.bucket != CitationBucket.COMPETITOR or not citation.resolved_domain:
                    continue
                if is_generic_domain(citation.resolved_domain):
                    continue
                name = name_from_domain(citation.resolved_domain)
                if not name:
                    continue
                candidates.append(CompetitorProfile(
                    name=name,
                    domain=citation.resolved_domain,
                    confidence=self.CONFIDENCE[DetectionSource.CITATION],
                    detected_from=DetectionSource.CITATION,
                ))
        return candidates

    def detect(
        self,
        company: CompanyIdentity,
        analyses: Sequence[QuestionAnalysis],
        seeds: Iterable[CompetitorProfile] = (),
    ) -> List[CompetitorProfile]:
        """All competitors for a run, merged and ordered by confidence"""
        return self.merge(list(seeds) + self.from_analyses(analyses), company)

    def _is_company(self, profile: CompetitorProfile, company: CompanyIdentity) -> bool:
        if profile.domain and company.domain:
            if normalize_domain(profile.domain) == company.domain:
                return True
        own = normalize_name(company.name)
        return bool(own) and fuzz.ratio(normalize_name(profile.name), own) >= self.FUZZY_THRESHOLD

    def merge(
        self,
        candidates: Iterable[CompetitorProfile],
        company: Optional[CompanyIdentity] = None,
    ) -> List[CompetitorProfile]:
        merged: Dict[str, CompetitorProfile] = {}
        by_domain: Dict[str, str] = {}

        for candidate in candidates:
            key = normalize_name(candidate.name)
            if not key:
                continue
            if company is not None and self._is_company(candidate, company):
                continue

            domain = normalize_domain(candidate.domain) if candidate.domain else ""
            existing_key = by_domain.get(domain) if domain else None
            if existing_key is None and merged:
                match = process.extractOne(
                    key,
                    list(merged.keys()),
                    scorer=fuzz.ratio,
                    score_cutoff=self.FUZZY_THRESHOLD,
                )
                if match:
                    existing_key = match[0]

            if existing_key is None:
                merged[key] = candidate
                if domain:
                    by_domain[domain] = key
                continue

            current = merged[existing_key]
            if candidate.confidence > current.confidence:
                merged[existing_key] = candidate
                if domain:
                    by_domain[domain] = existing_key

        profiles = sorted(merged.values(), key=lambda p: (-p.confidence, p.name.lower()))
        logger.debug("Merged %d competitor profiles", len(profiles))
        return profiles

    @staticmethod
    def domains(profiles: Iterable[CompetitorProfile]) -> List[str]:
        return [p.domain for p in profiles if p.domain]
