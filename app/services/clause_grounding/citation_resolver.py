"""Resolve atomic conclusions to ranked, classified citations.

Scoring is a token-overlap ratio: the number of distinct statement tokens a
chunk contains, divided by the number of distinct statement tokens. Only the
threshold semantics (direct > supporting > contextual > none) and the
deterministic ordering are contractual; the formula itself is tunable.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from app.core.exceptions import ConfigurationError
from app.schemas.clause_grounding import (
    AtomicConclusion,
    Citation,
    CitationRelevance,
    CitedConclusion,
    ConfidenceLevel,
)
from app.services.clause_grounding.anchor_index import AnchorIndex, IndexedChunk
from app.utils.hashing import hash_excerpt
from app.utils.logging import get_logger
from app.utils.text import slugify_anchor, tokenize, truncate_at_word_boundary

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ResolverConfig:
    """Tunables for citation resolution."""

    direct_threshold: float = 0.5
    supporting_threshold: float = 0.3
    min_threshold: float = 0.15
    max_citations: int = 3
    max_excerpt_length: int = 300
    chunks_per_page: int = 2

    def __post_init__(self):
        if not 0 < self.min_threshold <= self.supporting_threshold <= self.direct_threshold <= 1:
            raise ConfigurationError(
                "Grounding thresholds must satisfy 0 < min <= supporting <= direct <= 1 "
                f"(got min={self.min_threshold}, supporting={self.supporting_threshold}, "
                f"direct={self.direct_threshold})"
            )
        if self.max_citations < 1:
            raise ConfigurationError(f"max_citations must be >= 1 (got {self.max_citations})")
        if self.max_excerpt_length < 20:
            raise ConfigurationError(
                f"max_excerpt_length must be >= 20 (got {self.max_excerpt_length})"
            )
        if self.chunks_per_page < 1:
            raise ConfigurationError(f"chunks_per_page must be >= 1 (got {self.chunks_per_page})")


@dataclass(frozen=True)
class ScoredCandidate:
    score: float
    index: AnchorIndex
    chunk: IndexedChunk

    @property
    def sort_key(self) -> Tuple[float, str, int]:
        return (-self.score, self.index.form_version_id, self.chunk.index)


class CitationResolver:
    """Scores every chunk of every referenced form version jointly.

    Example usage:
        resolver = CitationResolver(indexes, ResolverConfig())
        cited = resolver.resolve(conclusion, order=0)
    """

    def __init__(self, indexes: Sequence[AnchorIndex], config: ResolverConfig = None):
        self.indexes = sorted(indexes, key=lambda idx: idx.form_version_id)
        self.config = config or ResolverConfig()

    def resolve(self, conclusion: AtomicConclusion, order: int) -> CitedConclusion:
        """Ground one conclusion.

        No candidate above the minimum threshold is a normal outcome: the
        conclusion comes back with zero citations and low confidence.
        """
        candidates = self.rank_candidates(conclusion.statement)
        citations = [self._build_citation(candidate) for candidate in candidates]

        return CitedConclusion(
            id=conclusion.id,
            order=order,
            type=conclusion.type,
            statement=conclusion.statement,
            reasoning=self._build_reasoning(candidates, citations),
            confidence=self.confidence_for(citations),
            citations=citations,
        )

    def rank_candidates(self, statement: str) -> List[ScoredCandidate]:
        """Top-N chunks above the minimum threshold, best first."""
        tokens = set(tokenize(statement))
        if not tokens:
            return []

        scored: List[ScoredCandidate] = []
        for index in self.indexes:
            for chunk_index, shared in index.candidates(tokens).items():
                score = shared / len(tokens)
                if score >= self.config.min_threshold:
                    scored.append(ScoredCandidate(score, index, index.get_chunk(chunk_index)))

        scored.sort(key=lambda candidate: candidate.sort_key)
        return scored[: self.config.max_citations]

    def relevance_for(self, score: float) -> CitationRelevance:
        if score >= self.config.direct_threshold:
            return CitationRelevance.DIRECT
        if score >= self.config.supporting_threshold:
            return CitationRelevance.SUPPORTING
        return CitationRelevance.CONTEXTUAL

    @staticmethod
    def confidence_for(citations: List[Citation]) -> ConfidenceLevel:
        relevances = {citation.relevance for citation in citations}
        if CitationRelevance.DIRECT in relevances:
            return ConfidenceLevel.HIGH
        if CitationRelevance.SUPPORTING in relevances:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def estimate_page(self, chunk: IndexedChunk) -> int:
        if chunk.page_start:
            return chunk.page_start
        return chunk.index // self.config.chunks_per_page + 1

    def _build_citation(self, candidate: ScoredCandidate) -> Citation:
        chunk = candidate.chunk
        excerpt = truncate_at_word_boundary(chunk.text, self.config.max_excerpt_length)
        return Citation(
            form_version_id=candidate.index.form_version_id,
            form_label=candidate.index.form_label,
            section_path=chunk.section_path,
            anchor_slug=slugify_anchor(chunk.section_path),
            page=self.estimate_page(chunk),
            chunk_index=chunk.index,
            excerpt=excerpt,
            excerpt_hash=hash_excerpt(excerpt),
            relevance=self.relevance_for(candidate.score),
        )

    def _build_reasoning(
        self,
        candidates: List[ScoredCandidate],
        citations: List[Citation],
    ) -> str:
        if not citations:
            return (
                "No clause in the referenced forms shares enough terms with this "
                "statement to ground it."
            )

        locations: Dict[str, None] = {}
        for citation in citations:
            location = citation.form_label
            if citation.section_path:
                location = f"{citation.form_label}, {citation.section_path}"
            locations.setdefault(location, None)

        best = citations[0]
        return (
            f"Grounded in {len(citations)} excerpt(s) from {'; '.join(locations)}. "
            f"Strongest match is {best.relevance.value} "
            f"({candidates[0].score:.0%} of statement terms found)."
        )
