import html
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from app.settings import settings
from domain.errors import (
    ExtractionFailed,
    PayloadTooLarge,
    UpstreamMalformed,
    UpstreamUnavailable,
    ValidationError,
)
from domain.schemas import RoleContextFlags, RoleDefinitionData

logger = logging.getLogger(__name__)

_BLOCK_TAGS = re.compile(r"<\s*(script|style)[^>]*>.*?<\s*/\s*\1\s*>", re.I | re.S)
_TAGS = re.compile(r"<[^>]{0,1000}>")
_BLANK_RUNS = re.compile(r"[ \t]+")


class RoleDefinitionSource(Protocol):
    async def extract_role_definition(self, jd_text: str) -> Dict[str, Any]: ...


@dataclass
class ExtractionResult:
    definition_data: Dict[str, Any]
    context_flags: RoleContextFlags
    clarifier_questions: List[str] = field(default_factory=list)


def sanitize_jd_text(text: str) -> str:
    text = _BLOCK_TAGS.sub(" ", text)
    text = _TAGS.sub(" ", text)
    text = html.unescape(text)
    text = _BLANK_RUNS.sub(" ", text)
    return text.strip()


def _clarifiers(raw: Any) -> List[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [str(q).strip() for q in raw if q is not None and str(q).strip()]


def normalize_extraction(payload: Dict[str, Any]) -> ExtractionResult:
    """Fill defaults over a raw extraction payload; raises ExtractionFailed if unusable."""
    definition = payload.get("definition_data")
    if not isinstance(definition, dict):
        raise ExtractionFailed(raw=json.dumps(payload)[:2000])
    try:
        data = RoleDefinitionData.model_validate(definition)
    except PydanticValidationError as exc:
        logger.warning("Extraction missing required fields: %s", exc)
        raise ExtractionFailed(raw=json.dumps(payload)[:2000]) from exc

    flags_raw = payload.get("context_flags")
    flags = RoleContextFlags.model_validate(flags_raw if isinstance(flags_raw, dict) else {})
    return ExtractionResult(
        definition_data=data.model_dump(),
        context_flags=flags,
        clarifier_questions=_clarifiers(payload.get("clarifier_questions")),
    )


class RoleDefinitionExtractor:
    def __init__(self, source: RoleDefinitionSource,
                 min_chars: Optional[int] = None, max_chars: Optional[int] = None):
        self.source = source
        self.min_chars = settings.JD_MIN_CHARS if min_chars is None else min_chars
        self.max_chars = settings.JD_MAX_CHARS if max_chars is None else max_chars

    def validate(self, jd_text: Any) -> str:
        if not isinstance(jd_text, str):
            raise ValidationError("Job description text is required")
        if len(jd_text) > self.max_chars:
            raise PayloadTooLarge(
                f"Payload too large. Maximum size is {self.max_chars:,} characters.")
        sanitized = sanitize_jd_text(jd_text)
        if not sanitized:
            raise ValidationError("Job description text is required")
        if len(sanitized) < self.min_chars:
            raise ValidationError(
                "Job description text is required and must be at least "
                f"{self.min_chars} characters")
        return sanitized

    async def extract(self, jd_text: Any) -> ExtractionResult:
        sanitized = self.validate(jd_text)
        logger.info("Extracting role definition from %s chars of JD text", len(sanitized))
        try:
            payload = await self.source.extract_role_definition(sanitized)
        except UpstreamMalformed as exc:
            logger.error("Unparsable extraction payload: %s | raw=%r", exc, exc.raw)
            raise ExtractionFailed(raw=exc.raw) from exc
        except UpstreamUnavailable as exc:
            logger.error("Extraction call failed: %s", exc)
            raise ExtractionFailed() from exc

        try:
            result = normalize_extraction(payload)
        except ExtractionFailed as exc:
            logger.error("Extraction payload unusable | raw=%r", exc.raw)
            raise
        logger.info(
            "Extracted role '%s' (family=%s, seniority=%s, clarifiers=%s)",
            result.definition_data.get("role_title"),
            result.context_flags.role_family,
            result.context_flags.seniority,
            len(result.clarifier_questions),
        )
        return result
