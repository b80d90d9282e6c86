"""Question archetypes used to seed the audition question bank.

Each archetype is a scenario template for one dimension. Bracketed
placeholders are filled from the role definition before generation.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Tuple

from domain.schemas import Dimension, NOT_SPECIFIED


@dataclass(frozen=True)
class Archetype:
    archetype_id: str
    dimension: Dimension
    logic_prompt: str
    parameters_needed: Tuple[str, ...]
    quality_evals_prompt: str


def _first(value: str, fallback: str) -> str:
    head = (value or "").split(",")[0].strip()
    return head if head and head != NOT_SPECIFIED else fallback


def _or(value: str, fallback: str) -> str:
    value = (value or "").strip()
    return value if value and value != NOT_SPECIFIED else fallback


Resolver = Callable[[Mapping[str, str], Mapping[str, object]], str]

PARAMETER_MAP: Dict[str, Resolver] = {
    "metric": lambda d, f: _first(d.get("kpis", ""), "key performance metric"),
    "dataset type": lambda d, f: _or(d.get("tools", ""), "relevant data source"),
    "competing inputs": lambda d, f: (
        f"{_or(d.get('stakeholders', ''), 'stakeholders')} and "
        f"{_or(d.get('constraints', ''), 'tight constraints')}"),
    "deliverable goal": lambda d, f: _or(d.get("goals", ""), "the team's main deliverable"),
    "resource limit": lambda d, f: _or(d.get("constraints", ""), "a limited budget"),
    "audience": lambda d, f: _or(d.get("stakeholders", ""), "senior leadership"),
    "stakeholder": lambda d, f: _first(d.get("stakeholders", ""), "key stakeholder"),
    "teams": lambda d, f: _or(d.get("team_topology", ""), "partner teams"),
    "project": lambda d, f: f"{f.get('role_family', 'Other')} project",
    "new info": lambda d, f: "an unexpected constraint or opportunity",
    "power dynamic": lambda d, f: "senior peer" if f.get("is_people_management") else "manager",
    "risk type": lambda d, f: "operational risk",
    "decision horizon": lambda d, f: _or(d.get("decision_horizon", ""), "the next quarter"),
}

ARCHETYPES: Tuple[Archetype, ...] = (
    Archetype(
        "COG_DIAGNOSE", Dimension.COGNITIVE,
        "A drop in [metric] shows up in the [dataset type]. Ask how the candidate would diagnose the root cause.",
        ("metric", "dataset type"),
        "Is the problem concrete, data-grounded and solvable in a short written answer?",
    ),
    Archetype(
        "COG_TRADEOFF", Dimension.COGNITIVE,
        "The candidate must weigh [competing inputs] over [decision horizon]. Ask for a structured recommendation.",
        ("competing inputs", "decision horizon"),
        "Does the question force an explicit trade-off with reasoning that can be checked?",
    ),
    Archetype(
        "EXE_PLAN", Dimension.EXECUTION,
        "Deliver [deliverable goal] with [resource limit]. Ask for the first two weeks of the plan.",
        ("deliverable goal", "resource limit"),
        "Does the question ask for a sequenced, realistic plan with owners and checkpoints?",
    ),
    Archetype(
        "EXE_RESCUE", Dimension.EXECUTION,
        "The [project] is slipping because of [new info]. Ask how the candidate gets it back on track.",
        ("project", "new info"),
        "Is the scenario specific enough that a strong answer shows prioritisation under pressure?",
    ),
    Archetype(
        "COM_BRIEF", Dimension.COMMUNICATION,
        "Write a short update for [audience] about progress on [deliverable goal].",
        ("audience", "deliverable goal"),
        "Does the question test clarity and audience awareness in a written artifact?",
    ),
    Archetype(
        "COM_ALIGN", Dimension.COMMUNICATION,
        "Two groups across [teams] disagree on the approach to [project]. Ask how the candidate aligns them.",
        ("teams", "project"),
        "Does the question require concrete collaboration moves rather than generic advice?",
    ),
    Archetype(
        "EI_FEEDBACK", Dimension.EMOTIONAL_INTELLIGENCE,
        "A frustrated [stakeholder] pushes back on work in front of a [power dynamic]. Ask how the candidate responds.",
        ("stakeholder", "power dynamic"),
        "Does the question probe empathy and self-regulation in a realistic interaction?",
    ),
    Archetype(
        "ADA_PIVOT", Dimension.ADAPTABILITY,
        "Midway through [project], [new info] invalidates the plan. Ask what the candidate changes first.",
        ("project", "new info"),
        "Does the question reward fast re-planning and learning rather than a fixed script?",
    ),
    Archetype(
        "JDG_RISK", Dimension.JUDGMENT,
        "Hitting [metric] quickly would introduce [risk type]. Ask whether and how the candidate proceeds.",
        ("metric", "risk type"),
        "Does the question present a genuine judgment call with ethical or risk trade-offs?",
    ),
)


def archetypes_for(dimension: Dimension) -> Tuple[Archetype, ...]:
    return tuple(a for a in ARCHETYPES if a.dimension == dimension)


def resolve_parameters(archetype: Archetype, definition: Mapping[str, str],
                       flags: Mapping[str, object]) -> Dict[str, str]:
    return {
        name: PARAMETER_MAP[name](definition, flags)
        for name in archetype.parameters_needed if name in PARAMETER_MAP
    }


def parameterize(archetype: Archetype, context: Mapping[str, str]) -> str:
    prompt = archetype.logic_prompt
    for name, value in context.items():
        prompt = re.sub(rf"\[{re.escape(name)}\]", lambda _m: value, prompt, flags=re.I)
    return prompt
