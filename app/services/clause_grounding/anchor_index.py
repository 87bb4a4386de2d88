"""Searchable token index over the chunks of one form version."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from app.schemas.ingestion import FormIngestionChunk, FormIngestionSection, FormSourceSnapshot
from app.utils.logging import get_logger
from app.utils.text import tokenize

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class IndexedChunk:
    """A chunk as seen by the resolver: raw text plus its owning section."""

    index: int
    text: str
    section_path: str
    page_start: Optional[int] = None


@dataclass
class AnchorIndex:
    """Token -> chunk-index postings for a single form version.

    Chunk text and the owning section heading are both tokenized into the
    chunk's postings, so a statement naming a section ("Coverage A") scores
    against every chunk filed under it.
    """

    form_version_id: str
    form_label: str
    postings: Dict[str, FrozenSet[int]] = field(default_factory=dict)
    chunks: Dict[int, IndexedChunk] = field(default_factory=dict)
    jurisdictions: Tuple[str, ...] = ()

    def get_chunk(self, index: int) -> IndexedChunk:
        return self.chunks[index]

    def candidates(self, tokens: Iterable[str]) -> Dict[int, int]:
        """Count how many of ``tokens`` each chunk contains."""
        counts: Dict[int, int] = {}
        for token in set(tokens):
            for chunk_index in self.postings.get(token, ()):
                counts[chunk_index] = counts.get(chunk_index, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self.chunks)


def build_anchor_index(
    source: FormSourceSnapshot,
    sections: List[FormIngestionSection],
    chunks: List[FormIngestionChunk],
) -> AnchorIndex:
    """Build the anchor index for one form version.

    Idempotent: the same chunk list always yields identical postings.
    Empty or very short chunks are kept addressable but contribute no tokens.

    Args:
        source: Snapshot of the form version (label, jurisdictions)
        sections: Ingested sections, any order
        chunks: Ingested chunks, any order

    Returns:
        AnchorIndex for ``source.form_version_id``
    """
    sections_by_id = {section.id: section for section in sections}
    postings: Dict[str, set] = {}
    indexed: Dict[int, IndexedChunk] = {}

    for chunk in sorted(chunks, key=lambda c: c.index):
        section = sections_by_id.get(chunk.section_id) if chunk.section_id else None
        section_path = section.path if section else ""
        if chunk.section_id and section is None:
            LOGGER.warning(
                "Chunk references unknown section",
                extra={
                    "form_version_id": source.form_version_id,
                    "chunk_index": chunk.index,
                    "section_id": chunk.section_id,
                },
            )

        indexed[chunk.index] = IndexedChunk(
            index=chunk.index,
            text=chunk.text,
            section_path=section_path,
            page_start=chunk.page_start,
        )

        chunk_tokens = set(tokenize(chunk.text))
        if not chunk_tokens:
            continue
        if section:
            chunk_tokens.update(tokenize(section.heading))
        for token in chunk_tokens:
            postings.setdefault(token, set()).add(chunk.index)

    LOGGER.debug(
        "Built anchor index",
        extra={
            "form_version_id": source.form_version_id,
            "chunk_count": len(indexed),
            "token_count": len(postings),
        },
    )

    return AnchorIndex(
        form_version_id=source.form_version_id,
        form_label=source.form_label,
        postings={token: frozenset(ids) for token, ids in postings.items()},
        chunks=indexed,
        jurisdictions=tuple(source.jurisdictions),
    )
