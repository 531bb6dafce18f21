"""
Visibility Scoring Engine
Reduces per-question analyses to one bounded, hard-to-inflate score
"""

import statistics
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from visibility_engine.config import (
    CITATION_BUCKET_WEIGHTS,
    CITATION_QUALITY_POINTS,
    DEFAULT_QUESTION_WEIGHT,
    NICHE_BONUS_TIERS,
    POSITION_MULTIPLIERS,
    QUESTION_TYPE_WEIGHTS,
    SCORE_CAP,
    SCORE_FLOOR,
    SENTIMENT_MULTIPLIERS,
    SHARE_OF_VOICE_TIERS,
)
from visibility_engine.schemas import (
    Citation,
    CitationBreakdown,
    CitationBucket,
    QuestionAnalysis,
    ScoreDetails,
    VisibilityScore,
)


@dataclass
class CompetitiveMetrics:
    """Competitive landscape across one run"""
    competitor_count: int
    niche_tier: str
    bonus: float
    company_mentions: int
    competitor_mentions: int
    share_of_voice: float


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class ScoringEngine:
    """
    Calculates the visibility score with full transparency.

    Scoring Model:
    1. Difficulty-weighted mention score
       sum(weight x position x sentiment) over mentioned questions / sum(weight)
    2. Competitive bonus
       micro (<=3 competitors) x0.8, niche (<=10) x1.0, broad x1.3;
       then x1.3 if share of voice > 0.6, else x1.15 if > 0.4
    3. Citation quality
       mean bucket weight (owned 1.0, operated 0.7, earned 0.9,
       competitor -0.2), floored at 0
    4. Tough curve
       base = weighted x 100 x bonus + quality x 20
       x = min(1, base / 100), curved = 100 x^2 (3 - 2x)
       floor 5 when anything was mentioned, cap 95, one decimal

    Pure and synchronous; identical input gives identical output.
    """

    @staticmethod
    def question_weight(analysis: QuestionAnalysis) -> float:
        return QUESTION_TYPE_WEIGHTS.get(analysis.question.type.value, DEFAULT_QUESTION_WEIGHT)

    @staticmethod
    def quality(analysis: QuestionAnalysis) -> float:
        """position x sentiment for one question, 0 when not mentioned"""
        mention = analysis.mention
        if not mention.mention_detected:
            return 0.0
        return POSITION_MULTIPLIERS[mention.position.value] * SENTIMENT_MULTIPLIERS[mention.sentiment.value]

    def weighted_mention_score(self, analyses: Sequence[QuestionAnalysis]) -> float:
        total_weight = sum(self.question_weight(a) for a in analyses)
        if total_weight <= 0:
            return 0.0
        contribution = sum(self.question_weight(a) * self.quality(a) for a in analyses)
        return _clamp01(contribution / total_weight)

    def competitive_metrics(self, analyses: Sequence[QuestionAnalysis]) -> CompetitiveMetrics:
        names = {
            competitor.name.strip().lower()
            for analysis in analyses
            for competitor in analysis.competitors
            if competitor.name.strip()
        }
        competitor_count = len(names)

        niche_tier, bonus = NICHE_BONUS_TIERS[-1][1], NICHE_BONUS_TIERS[-1][2]
        for limit, tier, tier_bonus in NICHE_BONUS_TIERS:
            if limit is None or competitor_count <= limit:
                niche_tier, bonus = tier, tier_bonus
                break

        company_mentions = sum(1 for a in analyses if a.mention.mention_detected)
        competitor_mentions = sum(len(a.competitors) for a in analyses)
        total_mentions = company_mentions + competitor_mentions
        share_of_voice = company_mentions / total_mentions if total_mentions else 0.0

        for threshold, multiplier in SHARE_OF_VOICE_TIERS:
            if share_of_voice > threshold:
                bonus *= multiplier
                break

        return CompetitiveMetrics(
            competitor_count=competitor_count,
            niche_tier=niche_tier,
            bonus=bonus,
            company_mentions=company_mentions,
            competitor_mentions=competitor_mentions,
            share_of_voice=share_of_voice,
        )

    @staticmethod
    def citation_quality_score(citations: Sequence[Citation]) -> float:
        if not citations:
            return 0.0
        total = sum(CITATION_BUCKET_WEIGHTS[c.bucket.value] for c in citations)
        return max(0.0, total / len(citations))

    @staticmethod
    def tough_curve(weighted_score: float, competitive_bonus: float, citation_quality: float) -> Tuple[float, float]:
        """Return (overall, base) for the given components"""
        base = weighted_score * 100 * competitive_bonus + citation_quality * CITATION_QUALITY_POINTS
        x = max(0.0, min(1.0, base / 100))
        curved = 100 * x * x * (3 - 2 * x)
        if weighted_score > 0:
            curved = max(curved, SCORE_FLOOR)
        curved = min(curved, SCORE_CAP)
        return round(curved, 1), base

    @staticmethod
    def citation_breakdown(citations: Sequence[Citation]) -> CitationBreakdown:
        counts = {bucket.value: 0 for bucket in CitationBucket}
        for citation in citations:
            counts[citation.bucket.value] += 1
        return CitationBreakdown(**counts)

    def response_consistency(self, analyses: Sequence[QuestionAnalysis]) -> float:
        """1 - 2 x population stdev of per-question quality; 0 when nothing was mentioned"""
        if not any(a.mention.mention_detected for a in analyses):
            return 0.0
        qualities = [self.quality(a) for a in analyses]
        spread = statistics.pstdev(qualities) if len(qualities) > 1 else 0.0
        return _clamp01(1 - 2 * spread)

    def score(self, analyses: Sequence[QuestionAnalysis]) -> VisibilityScore:
        """Score one run; never raises for empty or all-zero input"""
        if not analyses:
            return VisibilityScore.empty()

        citations = [c for a in analyses for c in a.citations]
        mentioned = [a for a in analyses if a.mention.mention_detected]

        weighted = self.weighted_mention_score(analyses)
        competitive = self.competitive_metrics(analyses)
        citation_quality = self.citation_quality_score(citations)
        overall, base = self.tough_curve(weighted, competitive.bonus, citation_quality)

        mention_quality = (
            _clamp01(sum(self.quality(a) for a in mentioned) / len(mentioned)) if mentioned else 0.0
        )
        source_influence = (
            _clamp01(sum(c.influence_score for c in citations) / len(citations)) if citations else 0.0
        )

        details = ScoreDetails(
            total_questions=len(analyses),
            mentioned_questions=len(mentioned),
            weighted_score=round(weighted, 4),
            competitor_count=competitive.competitor_count,
            niche_tier=competitive.niche_tier,
            competitive_bonus=round(competitive.bonus, 4),
            share_of_voice=round(competitive.share_of_voice, 4),
            citation_quality_score=round(citation_quality, 4),
            base_score=round(base, 2),
        )

        return VisibilityScore(
            overall=overall,
            mention_rate=round(len(mentioned) / len(analyses), 4),
            mention_quality=round(mention_quality, 4),
            source_influence=round(source_influence, 4),
            competitive_positioning=round(_clamp01(competitive.share_of_voice), 4),
            response_consistency=round(self.response_consistency(analyses), 4),
            citation_breakdown=self.citation_breakdown(citations),
            details=details,
            explanation=self._generate_explanation(details, overall),
        )

    def _generate_explanation(self, details: ScoreDetails, overall: float) -> List[str]:
        """Human-readable calculation lines"""
        parts = [
            f"Mentioned in {details.mentioned_questions} of {details.total_questions} questions "
            f"(difficulty-weighted score {details.weighted_score:.2f})",
            f"{details.competitor_count} competitors seen ({details.niche_tier} market, "
            f"share of voice {details.share_of_voice:.0%}, bonus x{details.competitive_bonus:.2f})",
            f"Citation quality {details.citation_quality_score:.2f} "
            f"(+{details.citation_quality_score * CITATION_QUALITY_POINTS:.1f} points)",
            f"Base {details.base_score:.1f} after tough curve: {overall:.1f}",
        ]
        if details.weighted_score > 0 and overall == SCORE_FLOOR:
            parts.append(f"Raised to the {SCORE_FLOOR:.0f}-point floor for any mention")
        if overall == SCORE_CAP:
            parts.append(f"Capped at {SCORE_CAP:.0f}")
        return parts
