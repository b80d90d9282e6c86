import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from app.settings import settings
from domain.archetypes import Archetype, archetypes_for, parameterize, resolve_parameters
from domain.errors import ScaffoldGenerationFailed, ScaffoldRejected, UpstreamRateLimited
from domain.schemas import Question, RoleContextFlags
from domain.services.dimension_selector import DimensionSelection, DimensionSelector, default_selector

logger = logging.getLogger(__name__)


class ScaffoldSource(Protocol):
    async def generate_scaffold(self, role_context: str, dimensions: Sequence[str]) -> Dict[str, Any]: ...

    async def generate_question(self, role_context: str, scenario: str) -> str: ...

    async def score_question(self, question: str, criteria: str) -> int: ...


@dataclass(frozen=True)
class PreparedRole:
    definition: Dict[str, Any]
    flags: RoleContextFlags
    selection: DimensionSelection
    bank_id: str


@dataclass
class ScaffoldResult:
    scaffold_data: Dict[str, Any]
    scaffold_preview_html: str
    questions: List[Question] = field(default_factory=list)


def merge_clarifier_answers(base: Mapping[str, Any],
                            answers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Overlay non-empty clarifier answers on a role definition.

    Answers are flattened to trimmed text the same way extracted fields
    are (lists joined with ", "); an empty or missing answer never
    replaces an existing value.
    """
    merged = {k: v.strip() if isinstance(v, str) else v for k, v in base.items()}
    for key, value in (answers or {}).items():
        text = _answer_text(value)
        if text:
            merged[key] = text
    return merged


def _answer_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v).strip() for v in value if v is not None and str(v).strip())
    return str(value).strip()


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.split())
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def compute_bank_id(definition: Mapping[str, Any], flags: RoleContextFlags,
                    dimensions: Sequence[str]) -> str:
    canonical = json.dumps(
        {
            "definition": _normalize(definition),
            "flags": _normalize(flags.model_dump()),
            "dimensions": list(dimensions),
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    return "bank_" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def role_context(definition: Mapping[str, Any], flags: RoleContextFlags) -> str:
    lines = [
        f"Role: {definition.get('role_title', 'Not specified')} "
        f"({flags.role_family}, {flags.seniority})",
        f"Summary: {definition.get('job_summary', 'Not specified')}",
        f"Primary Goals: {definition.get('goals', 'Not specified')}",
        f"Key Stakeholders: {definition.get('stakeholders', 'Not specified')}",
        f"Decision Horizon: {definition.get('decision_horizon', 'Not specified')}",
        f"Tools: {definition.get('tools', 'Not specified')}",
        f"KPIs: {definition.get('kpis', 'Not specified')}",
        f"Constraints: {definition.get('constraints', 'Not specified')}",
        f"Startup context: {'yes' if flags.is_startup_context else 'no'}",
        f"People management: {'yes' if flags.is_people_management else 'no'}",
    ]
    return "\n".join(lines)


class AuditionScaffoldBuilder:
    def __init__(
        self,
        source: ScaffoldSource,
        selector: DimensionSelector = default_selector,
        questions_per_dimension: Optional[int] = None,
        min_quality_score: Optional[int] = None,
        max_retries_per_question: Optional[int] = None,
    ):
        self.source = source
        self.selector = selector
        self.questions_per_dimension = (
            settings.QUESTIONS_PER_DIMENSION if questions_per_dimension is None
            else questions_per_dimension)
        self.min_quality_score = (
            settings.MIN_QUALITY_SCORE if min_quality_score is None else min_quality_score)
        self.max_retries_per_question = (
            settings.MAX_RETRIES_PER_QUESTION if max_retries_per_question is None
            else max_retries_per_question)

    def prepare(self, definition_data: Mapping[str, Any], context_flags: Any,
                clarifier_answers: Optional[Mapping[str, Any]] = None) -> PreparedRole:
        flags = (context_flags if isinstance(context_flags, RoleContextFlags)
                 else RoleContextFlags.model_validate(context_flags or {}))
        definition = merge_clarifier_answers(definition_data, clarifier_answers)
        selection = self.selector.select(flags)
        bank_id = compute_bank_id(definition, flags, selection.labels)
        return PreparedRole(definition=definition, flags=flags,
                            selection=selection, bank_id=bank_id)

    async def generate(self, prepared: PreparedRole) -> ScaffoldResult:
        context = role_context(prepared.definition, prepared.flags)
        labels = prepared.selection.labels
        logger.info("Generating scaffold for %s with dimensions %s", prepared.bank_id, labels)

        payload = await self.source.generate_scaffold(context, labels)
        scaffold_data = payload.get("scaffold_data") if isinstance(payload, dict) else None
        if not isinstance(scaffold_data, dict):
            raise ScaffoldRejected(raw=json.dumps(payload, default=str)[:2000])

        proposed = scaffold_data.get("chosen_dimensions")
        if proposed and list(proposed) != labels:
            logger.info("Overriding generated dimensions %s with %s", proposed, labels)
        scaffold_data = dict(scaffold_data)
        scaffold_data["chosen_dimensions"] = list(labels)
        scaffold_data["dimension_justification"] = prepared.selection.justification

        preview = payload.get("scaffold_preview_html")
        preview = preview if isinstance(preview, str) else ""

        questions = await self._generate_questions(prepared, context)
        return ScaffoldResult(scaffold_data=scaffold_data,
                              scaffold_preview_html=preview,
                              questions=questions)

    async def _generate_questions(self, prepared: PreparedRole, context: str) -> List[Question]:
        questions: List[Question] = []
        usage: Dict[str, int] = {}
        flags = prepared.flags.model_dump()
        for dimension in prepared.selection.dimensions:
            pool = archetypes_for(dimension)
            if not pool:
                raise ScaffoldGenerationFailed(f"No archetypes available for {dimension.value}")
            for _ in range(self.questions_per_dimension):
                archetype = min(pool, key=lambda a: usage.get(a.archetype_id, 0))
                usage[archetype.archetype_id] = usage.get(archetype.archetype_id, 0) + 1
                question = await self._question_with_retry(
                    archetype, prepared.definition, flags, context, len(questions) + 1)
                questions.append(question)
                logger.info("Q%s: %s (%s) - score %s", len(questions), dimension.value,
                            archetype.archetype_id, question.quality_score)
        return questions

    async def _question_with_retry(self, archetype: Archetype, definition: Mapping[str, Any],
                                   flags: Mapping[str, Any], context: str,
                                   number: int) -> Question:
        used = resolve_parameters(archetype, definition, flags)
        scenario = parameterize(archetype, used)
        last_score = None
        for attempt in range(self.max_retries_per_question + 1):
            try:
                text = await self.source.generate_question(context, scenario)
                score = await self.source.score_question(text, archetype.quality_evals_prompt)
            except UpstreamRateLimited:
                if attempt == self.max_retries_per_question:
                    raise
                logger.warning("Rate limited generating %s, retrying", archetype.archetype_id)
                continue
            if score >= self.min_quality_score:
                return Question(
                    question_id=f"Q{number:03d}_{archetype.archetype_id}",
                    dimension=archetype.dimension.value,
                    archetype_id=archetype.archetype_id,
                    question_text=text,
                    quality_score=score,
                    context_used=used,
                )
            last_score = score
            logger.info("Question score %s too low for %s (attempt %s)",
                        score, archetype.archetype_id, attempt + 1)
        raise ScaffoldGenerationFailed(
            f"Failed to generate a quality question for {archetype.archetype_id} "
            f"(last score {last_score})")
