"""Deterministic mapping from role context flags to performance dimensions.

The selected set always has 3 or 4 members, and at least two of them are
high-observability dimensions (Cognitive, Execution, Communication). The
result overrides whatever dimensions a generation step proposes.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

from domain.schemas import Dimension, RoleContextFlags

C = Dimension.COGNITIVE
X = Dimension.EXECUTION
M = Dimension.COMMUNICATION
EI = Dimension.EMOTIONAL_INTELLIGENCE
A = Dimension.ADAPTABILITY
J = Dimension.JUDGMENT

HIGH_OBSERVABILITY = frozenset({C, X, M})
DEFAULT_BASE: Tuple[Dimension, ...] = (C, X, M)
FALLBACK_ORDER: Tuple[Dimension, ...] = (C, X, M, J, A, EI)
MIN_DIMENSIONS = 3
MAX_DIMENSIONS = 4
MIN_HIGH_OBSERVABILITY = 2

DEFAULT_ROLE_FAMILY_TABLE: Mapping[str, Tuple[Dimension, ...]] = MappingProxyType({
    "Product Mgmt": (C, M, J),
    "Engineering": (C, X, M),
    "Sales": (M, EI, X),
    "Operations": (X, C, J),
    "Design / UX": (C, M, X),
    "Compliance / Risk": (J, C, X),
    "Finance": (C, X, J),
    "Marketing": (M, C, X),
    "Human Resources": (EI, M, J),
    "Customer Support": (M, EI, X),
    "Leadership / Strat": (J, C, M),
    "Growth PM": (C, X, A),
    "RevOps": (X, C, M),
    "UX Research": (C, M, EI),
})

GENERIC_FAMILY_LABEL = "general"


@dataclass(frozen=True)
class DimensionSelection:
    dimensions: Tuple[Dimension, ...]
    justification: str

    @property
    def labels(self) -> List[str]:
        return [d.value for d in self.dimensions]


def _observable_count(dims: Sequence[Dimension]) -> int:
    return sum(1 for d in dims if d in HIGH_OBSERVABILITY)


class DimensionSelector:
    def __init__(self, table: Optional[Mapping[str, Sequence[Dimension]]] = None):
        source = DEFAULT_ROLE_FAMILY_TABLE if table is None else table
        self._table = MappingProxyType({
            family: tuple(dims) for family, dims in source.items()
        })
        self._lookup = {family.strip().lower(): family for family in self._table}

    @property
    def table(self) -> Mapping[str, Tuple[Dimension, ...]]:
        return self._table

    def _resolve_family(self, role_family: str) -> Optional[str]:
        return self._lookup.get(" ".join(str(role_family or "").split()).lower())

    def select(self, flags: RoleContextFlags) -> DimensionSelection:
        family = self._resolve_family(flags.role_family)
        base = list(self._table[family]) if family else list(DEFAULT_BASE)

        expanded = list(base)
        notes: List[str] = []
        if str(flags.seniority).strip().lower() in {"senior", "manager"}:
            expanded.append(J)
            notes.append("Judgment because the role is senior")
        if flags.is_startup_context:
            expanded.append(A)
            notes.append("Adaptability for the startup context")
        if flags.is_people_management:
            expanded.append(EI)
            notes.append("Emotional Intelligence to reflect people leadership")

        final: List[Dimension] = []
        for dim in expanded:
            if dim not in final:
                final.append(dim)

        self._raise_observability(final)

        for dim in FALLBACK_ORDER:
            if len(final) >= MIN_DIMENSIONS:
                break
            if dim not in final:
                final.append(dim)

        while len(final) > MAX_DIMENSIONS:
            for idx in range(len(final) - 1, -1, -1):
                if final[idx] not in HIGH_OBSERVABILITY:
                    del final[idx]
                    break
            else:
                final.pop()
        self._repair_observability(final)

        label = family or GENERIC_FAMILY_LABEL
        justification = (
            f"Based on the {label} role family, we are prioritizing "
            f"{', '.join(d.value for d in base)}."
        )
        if notes:
            justification += f" We added {' and '.join(notes)}."
        return DimensionSelection(dimensions=tuple(final), justification=justification)

    @staticmethod
    def _raise_observability(final: List[Dimension]) -> None:
        for dim in DEFAULT_BASE:
            if _observable_count(final) >= MIN_HIGH_OBSERVABILITY:
                return
            if dim not in final:
                final.append(dim)

    @staticmethod
    def _repair_observability(final: List[Dimension]) -> None:
        # swap a non-observable member for a missing base dimension
        for dim in DEFAULT_BASE:
            if _observable_count(final) >= MIN_HIGH_OBSERVABILITY:
                return
            if dim in final:
                continue
            for idx in range(len(final) - 1, -1, -1):
                if final[idx] not in HIGH_OBSERVABILITY:
                    final[idx] = dim
                    break
            else:
                final.append(dim)


default_selector = DimensionSelector()


def select_dimensions(flags: RoleContextFlags) -> DimensionSelection:
    return default_selector.select(flags)
