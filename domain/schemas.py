from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional

NOT_SPECIFIED = "Not specified"

ROLE_FAMILIES = (
    "Product Mgmt",
    "Engineering",
    "Sales",
    "Operations",
    "Design / UX",
    "Compliance / Risk",
    "Finance",
    "Marketing",
    "Human Resources",
    "Customer Support",
    "Leadership / Strat",
    "Growth PM",
    "RevOps",
    "UX Research",
)
OTHER_FAMILY = "Other"
SENIORITY_LEVELS = ("Junior", "Senior", "Manager", NOT_SPECIFIED)

ESSENTIAL_FIELDS = (
    "goals",
    "stakeholders",
    "decision_horizon",
    "tools",
    "kpis",
    "constraints",
    "cognitive_type",
    "team_topology",
    "cultural_tone",
)


class Dimension(str, Enum):
    COGNITIVE = "Cognitive"
    EXECUTION = "Execution"
    COMMUNICATION = "Communication"
    EMOTIONAL_INTELLIGENCE = "Emotional Intelligence"
    ADAPTABILITY = "Adaptability"
    JUDGMENT = "Judgment"

    @property
    def key(self) -> str:
        return DIMENSION_KEYS[self]

    @classmethod
    def parse(cls, value: str) -> "Dimension":
        dim = DIMENSION_SYNONYMS.get(" ".join(str(value).split()).lower())
        if dim is None:
            raise ValueError(f"Unknown dimension: {value!r}")
        return dim


DIMENSION_KEYS = {
    Dimension.COGNITIVE: "cognitive",
    Dimension.EXECUTION: "execution",
    Dimension.COMMUNICATION: "communication_collaboration",
    Dimension.EMOTIONAL_INTELLIGENCE: "emotional_intelligence",
    Dimension.ADAPTABILITY: "adaptability_learning",
    Dimension.JUDGMENT: "judgment_ethics",
}

# every spelling seen across prompts, stored payloads and the UI
DIMENSION_SYNONYMS = {
    "cognitive": Dimension.COGNITIVE,
    "execution": Dimension.EXECUTION,
    "communication": Dimension.COMMUNICATION,
    "communication_collaboration": Dimension.COMMUNICATION,
    "communication & collaboration": Dimension.COMMUNICATION,
    "emotional intelligence": Dimension.EMOTIONAL_INTELLIGENCE,
    "emotional_intelligence": Dimension.EMOTIONAL_INTELLIGENCE,
    "adaptability": Dimension.ADAPTABILITY,
    "adaptability_learning": Dimension.ADAPTABILITY,
    "adaptability & learning agility": Dimension.ADAPTABILITY,
    "judgment": Dimension.JUDGMENT,
    "judgment_ethics": Dimension.JUDGMENT,
    "judgment & ethics": Dimension.JUDGMENT,
}


class ScaffoldStatus(str, Enum):
    GENERATING = "GENERATING"
    READY = "READY"
    FAILED = "FAILED"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


class RoleContextFlags(BaseModel):
    role_family: str = OTHER_FAMILY
    seniority: str = NOT_SPECIFIED
    is_startup_context: bool = False
    is_people_management: bool = False

    @field_validator("role_family", mode="before")
    @classmethod
    def _known_family(cls, value):
        text = " ".join(str(value or "").split()).lower()
        for family in ROLE_FAMILIES:
            if family.lower() == text:
                return family
        return OTHER_FAMILY

    @field_validator("seniority", mode="before")
    @classmethod
    def _known_seniority(cls, value):
        text = str(value or "").strip().lower()
        for level in SENIORITY_LEVELS:
            if level.lower() == text:
                return level
        return NOT_SPECIFIED

    @field_validator("is_startup_context", "is_people_management", mode="before")
    @classmethod
    def _coerce_bool(cls, value):
        return _as_bool(value)


class RoleDefinitionData(BaseModel):
    model_config = ConfigDict(extra="allow")

    role_title: str = Field(..., min_length=1)
    job_summary: str = Field(..., min_length=1)
    goals: str = NOT_SPECIFIED
    stakeholders: str = NOT_SPECIFIED
    decision_horizon: str = NOT_SPECIFIED
    tools: str = NOT_SPECIFIED
    kpis: str = NOT_SPECIFIED
    constraints: str = NOT_SPECIFIED
    cognitive_type: str = NOT_SPECIFIED
    team_topology: str = NOT_SPECIFIED
    cultural_tone: str = NOT_SPECIFIED
    company_name: Optional[str] = None
    key_skills: List[str] = Field(default_factory=list)
    experience_level: Optional[str] = None

    @field_validator("company_name", "experience_level", mode="before")
    @classmethod
    def _optional_text(cls, value):
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    @field_validator("key_skills", mode="before")
    @classmethod
    def _skill_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            value = [value]
        return [str(v).strip() for v in value if v is not None and str(v).strip()]

    @field_validator("role_title", "job_summary", mode="before")
    @classmethod
    def _trim_required(cls, value):
        if value is None:
            return value
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value if v is not None)
        return str(value).strip()

    @field_validator(*ESSENTIAL_FIELDS, mode="before")
    @classmethod
    def _fill_blank(cls, value):
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value if v is not None)
        if value is None or not str(value).strip():
            return NOT_SPECIFIED
        return str(value).strip()


class Question(BaseModel):
    question_id: str
    dimension: str
    archetype_id: str
    question_text: str
    quality_score: int
    context_used: Dict[str, str] = Field(default_factory=dict)


class ExtractRequest(BaseModel):
    jd_text: str
    project_id: Optional[str] = None


class ExtractionResponse(BaseModel):
    definition_data: Dict[str, Any]
    context_flags: RoleContextFlags
    clarifier_questions: List[str] = Field(default_factory=list)


class CreateProjectRequest(BaseModel):
    job_description: Optional[str] = None


class ProjectResponse(BaseModel):
    id: str
    status: str


class ScaffoldRequest(BaseModel):
    project_id: str
    definition_data: Optional[Any] = None
    context_flags: Optional[Dict[str, Any]] = None
    clarifier_answers: Optional[Dict[str, Any]] = None
    restart: bool = False


class AuditionScaffold(BaseModel):
    bank_id: Optional[str] = None
    status: ScaffoldStatus
    questions: List[Question] = Field(default_factory=list)
    cache_hit: bool = False
    elapsed_minutes: int = 0
    estimated_remaining_minutes: int = 0
    chosen_dimensions: List[str] = Field(default_factory=list)
    dimension_justification: Optional[str] = None
    scaffold_data: Optional[Dict[str, Any]] = None
    scaffold_preview_html: Optional[str] = None
    attempt: int = 1
    approved: bool = False
    error: Optional[str] = None


class ApproveResponse(BaseModel):
    project_id: str
    status: str
