"""Synthesize the "what we still need to know" checklist for a grounding run.

Rules, in emission order:
    missing_fact            a conclusion relies on a dollar amount, a date or a
                            named peril that the scenario never states; the
                            determination is insufficient_information; a
                            recommendation asks to verify/confirm/obtain something
    ambiguous_clause        a conclusion has low confidence; the analysis text
                            itself flags uncertainty
    conflicting_provisions  two conclusions of different types cite the same
                            section but pull coverage in opposite directions
    jurisdictional          the scenario has a location and no cited form
                            version declares coverage there

Questions are deduplicated by (category, question); a duplicate only adds its
conclusion ids to the first occurrence.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.schemas.claims_analysis import ClaimScenario, CoverageDetermination
from app.schemas.clause_grounding import (
    CitedConclusion,
    ConclusionType,
    ConfidenceLevel,
    GroundingInput,
    OpenQuestion,
    OpenQuestionCategory,
)
from app.utils.hashing import stable_id
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

IMPACT_TEMPLATES: Dict[OpenQuestionCategory, str] = {
    OpenQuestionCategory.MISSING_FACT: (
        "Until this fact is known the coverage outcome and the dollar exposure "
        "cannot be confirmed."
    ),
    OpenQuestionCategory.AMBIGUOUS_CLAUSE: (
        "No policy language clearly supports this point, so the coverage outcome "
        "could change once the governing clause is identified."
    ),
    OpenQuestionCategory.CONFLICTING_PROVISIONS: (
        "The cited provisions point in opposite directions; whichever controls "
        "decides whether coverage applies."
    ),
    OpenQuestionCategory.JURISDICTIONAL: (
        "State-specific law or mandatory endorsements may override the form "
        "language and change the coverage outcome."
    ),
}

DOLLAR_RE = re.compile(r"\$\s?\d[\d,]*(?:\.\d+)?|\b\d[\d,]*\s?(?:dollars|usd)\b", re.IGNORECASE)
DOLLAR_TERMS_RE = re.compile(
    r"\b(?:limits?|deductibles?|sub-?limits?|retentions?|thresholds?)\b", re.IGNORECASE
)
DATE_RE = re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b|\b\d{4}-\d{2}-\d{2}\b")
DATE_TERMS_RE = re.compile(
    r"\b(?:date of loss|policy period|effective date|expiration date|within \d+ days)\b",
    re.IGNORECASE,
)
NEGATION_RE = re.compile(r"\b(?:not|no|never|none|neither|nor|cannot)\b|n't", re.IGNORECASE)
FOLLOW_UP_RE = re.compile(
    r"\b(?:verify|confirm|obtain|check whether|review additional)\b", re.IGNORECASE
)
UNCERTAINTY_RE = re.compile(
    r"\b(?:it is unclear|cannot determine|insufficient information|not enough information|"
    r"unable to assess|further review (?:is )?needed|more information is needed|"
    r"depending on whether|if the (?:insured|policy|endorsement))\b",
    re.IGNORECASE,
)
SENTENCE_RE = re.compile(r"[^.!?\n]+[.!?]?")

NAMED_PERILS: Tuple[str, ...] = (
    "fire", "lightning", "windstorm", "hail", "hurricane", "tornado", "flood",
    "earthquake", "explosion", "smoke", "theft", "vandalism", "collapse", "mold",
    "sewer backup", "water damage", "freezing",
)
COUNTRYWIDE = frozenset({"ALL", "COUNTRYWIDE", "NATIONWIDE"})
MIN_UNCERTAINTY_SENTENCE_LENGTH = 20


@dataclass
class _Collected:
    category: OpenQuestionCategory
    question: str
    affected: List[str] = field(default_factory=list)


def question_id(category: OpenQuestionCategory, question: str) -> str:
    return stable_id("oq", category.value, question)


def coverage_effect(conclusion: CitedConclusion) -> Optional[int]:
    """+1 if the statement supports coverage, -1 if it takes it away, None if neutral."""
    if conclusion.type == ConclusionType.EXCLUSION:
        base = -1
    elif conclusion.type in (ConclusionType.COVERAGE_GRANT, ConclusionType.CONDITION):
        base = 1
    else:
        return None
    return -base if NEGATION_RE.search(conclusion.statement) else base


def _scenario_text(scenario: ClaimScenario) -> str:
    parts = [
        scenario.facts_narrative,
        scenario.cause_of_loss.replace("_", " "),
        scenario.cause_of_loss_detail or "",
        " ".join(damage.replace("_", " ") for damage in scenario.damage_types),
    ]
    for key, value in scenario.additional_facts.items():
        parts.append(f"{key.replace('_', ' ')} {value}")
    return " ".join(parts).lower()


def _mentions(term: str, text: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE) is not None


def location_matches(location: str, jurisdictions: Iterable[str]) -> bool:
    """True if any declared jurisdiction covers ``location``."""
    upper_location = location.upper()
    for jurisdiction in jurisdictions:
        declared = jurisdiction.strip().upper()
        if not declared:
            continue
        if declared in COUNTRYWIDE:
            return True
        if re.search(rf"\b{re.escape(declared)}\b", upper_location):
            return True
    return False


class OpenQuestionDetector:
    """Detects open questions from cited conclusions and scenario facts."""

    def detect(
        self,
        conclusions: List[CitedConclusion],
        grounding_input: GroundingInput,
    ) -> List[OpenQuestion]:
        collected: Dict[Tuple[OpenQuestionCategory, str], _Collected] = {}

        def add(category: OpenQuestionCategory, question: str, affected: Iterable[str] = ()):
            key = (category, question)
            entry = collected.setdefault(key, _Collected(category, question))
            for conclusion_id in affected:
                if conclusion_id not in entry.affected:
                    entry.affected.append(conclusion_id)

        self._missing_facts(conclusions, grounding_input, add)
        self._ambiguous_clauses(conclusions, grounding_input.output_markdown, add)
        self._conflicting_provisions(conclusions, add)
        self._jurisdictional(conclusions, grounding_input, add)

        questions = [
            OpenQuestion(
                id=question_id(entry.category, entry.question),
                order=order,
                category=entry.category,
                question=entry.question,
                impact=IMPACT_TEMPLATES[entry.category],
                affected_conclusion_ids=entry.affected,
            )
            for order, entry in enumerate(collected.values())
        ]

        LOGGER.debug(
            "Detected open questions",
            extra={
                "question_count": len(questions),
                "categories": sorted({q.category.value for q in questions}),
            },
        )
        return questions

    def _missing_facts(self, conclusions, grounding_input: GroundingInput, add) -> None:
        scenario = grounding_input.scenario
        facts = _scenario_text(scenario)
        has_amount = scenario.estimated_damages is not None or bool(DOLLAR_RE.search(facts))
        has_date = bool(scenario.loss_date) or bool(DATE_RE.search(facts))

        if grounding_input.structured_fields.determination == CoverageDetermination.INSUFFICIENT_INFORMATION:
            add(
                OpenQuestionCategory.MISSING_FACT,
                "What additional facts are needed for a definitive coverage determination?",
            )

        for conclusion in conclusions:
            statement = conclusion.statement
            if not has_amount and (DOLLAR_RE.search(statement) or DOLLAR_TERMS_RE.search(statement)):
                add(
                    OpenQuestionCategory.MISSING_FACT,
                    "What is the estimated dollar amount of the loss?",
                    [conclusion.id],
                )
            if not has_date and (DATE_RE.search(statement) or DATE_TERMS_RE.search(statement)):
                add(OpenQuestionCategory.MISSING_FACT, "What is the date of loss?", [conclusion.id])
            for peril in NAMED_PERILS:
                if _mentions(peril, statement) and not _mentions(peril, facts):
                    add(
                        OpenQuestionCategory.MISSING_FACT,
                        f"Was {peril} involved in the loss?",
                        [conclusion.id],
                    )
            if conclusion.type == ConclusionType.RECOMMENDATION and FOLLOW_UP_RE.search(statement):
                add(OpenQuestionCategory.MISSING_FACT, statement, [conclusion.id])

    def _ambiguous_clauses(self, conclusions, markdown: str, add) -> None:
        for conclusion in conclusions:
            if conclusion.confidence == ConfidenceLevel.LOW:
                add(
                    OpenQuestionCategory.AMBIGUOUS_CLAUSE,
                    f'Which policy provision governs: "{conclusion.statement}"?',
                    [conclusion.id],
                )

        for match in SENTENCE_RE.finditer(markdown or ""):
            sentence = match.group(0).strip().lstrip("#*->• ").strip()
            if len(sentence) > MIN_UNCERTAINTY_SENTENCE_LENGTH and UNCERTAINTY_RE.search(sentence):
                add(OpenQuestionCategory.AMBIGUOUS_CLAUSE, sentence)

    def _conflicting_provisions(self, conclusions, add) -> None:
        cited_sections: Dict[str, Set[Tuple[str, str]]] = {}
        for conclusion in conclusions:
            cited_sections[conclusion.id] = {
                (c.form_version_id, c.section_path or f"#chunk-{c.chunk_index}")
                for c in conclusion.citations
            }

        for i, left in enumerate(conclusions):
            left_effect = coverage_effect(left)
            if left_effect is None:
                continue
            for right in conclusions[i + 1:]:
                if right.type == left.type:
                    continue
                right_effect = coverage_effect(right)
                if right_effect is None or right_effect == left_effect:
                    continue
                shared = cited_sections[left.id] & cited_sections[right.id]
                if not shared:
                    continue
                sections = ", ".join(path for _, path in sorted(shared))
                add(
                    OpenQuestionCategory.CONFLICTING_PROVISIONS,
                    f'How do the provisions in {sections} reconcile "{left.statement}" '
                    f'with "{right.statement}"?',
                    [left.id, right.id],
                )

    def _jurisdictional(self, conclusions, grounding_input: GroundingInput, add) -> None:
        location = grounding_input.scenario.loss_location or grounding_input.state_code
        if not location or not location.strip():
            return

        cited_ids = {c.form_version_id for conclusion in conclusions for c in conclusion.citations}
        cited_sources = [s for s in grounding_input.sources if s.form_version_id in cited_ids]
        if any(location_matches(location, source.jurisdictions) for source in cited_sources):
            return

        add(
            OpenQuestionCategory.JURISDICTIONAL,
            f"No cited form version declares coverage for {location.strip()}. "
            "Do state-specific forms or mandatory endorsements apply?",
            [conclusion.id for conclusion in conclusions if conclusion.citations],
        )
