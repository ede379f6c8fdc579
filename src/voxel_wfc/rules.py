"""
Adjacency rules.

A rule is one of three immutable shapes:

- RuleExplicit: connector (module, index) may touch connector (module, index).
- RuleTyped: a connector carries a type; connectors of equal type facing
  each other may touch.
- RuleIndifferent: a wildcard connector that may touch any other indifferent
  connector facing it, unless a more specific rule claims either end.

Names and types are case-insensitive and stored lower-cased. Validity is
reported through ``is_valid`` / ``why_not`` instead of exceptions.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from voxel_wfc.contracts import INDIFFERENT_TAG

ConnectorRef = Tuple[str, int]


def _normalized(value: str, what: str) -> str:
    if value is None:
        raise ValueError(f"{what} is missing")
    return str(value).strip().lower()


@dataclass(frozen=True, eq=False)
class RuleExplicit:
    """Symmetric connection between two connectors."""
    source_module: str
    source_connector: int
    target_module: str
    target_connector: int

    def __post_init__(self):
        object.__setattr__(self, "source_module", _normalized(self.source_module, "Source module name"))
        object.__setattr__(self, "target_module", _normalized(self.target_module, "Target module name"))

    @property
    def source(self) -> ConnectorRef:
        return (self.source_module, self.source_connector)

    @property
    def target(self) -> ConnectorRef:
        return (self.target_module, self.target_connector)

    def canonical(self) -> "RuleExplicit":
        """The same rule with the smaller end first."""
        if self.source <= self.target:
            return self
        return RuleExplicit(*self.target, *self.source)

    def involves(self, ref: ConnectorRef) -> bool:
        return ref == self.source or ref == self.target

    @property
    def is_valid(self) -> bool:
        return not self.why_not

    @property
    def why_not(self) -> str:
        if not self.source_module:
            return "Source module name is empty"
        if not self.target_module:
            return "Target module name is empty"
        if self.source == self.target:
            return "The connector connects to itself"
        return ""

    def __eq__(self, other) -> bool:
        if not isinstance(other, RuleExplicit):
            return NotImplemented
        return (self.source, self.target) in (
            (other.source, other.target),
            (other.target, other.source),
        )

    def __hash__(self) -> int:
        return hash(("explicit",) + tuple(sorted((self.source, self.target))))

    def __str__(self) -> str:
        return (
            f"Explicit connection: {self.source_module}:{self.source_connector}"
            f" -> {self.target_module}:{self.target_connector}"
        )


@dataclass(frozen=True)
class RuleTyped:
    """Assigns a connector type to one connector."""
    module: str
    connector: int
    connector_type: str

    def __post_init__(self):
        object.__setattr__(self, "module", _normalized(self.module, "Module name"))
        object.__setattr__(self, "connector_type", _normalized(self.connector_type, "Connector type"))

    @property
    def ref(self) -> ConnectorRef:
        return (self.module, self.connector)

    @property
    def is_valid(self) -> bool:
        return not self.why_not

    @property
    def why_not(self) -> str:
        if not self.module:
            return "Module name is empty"
        if not self.connector_type:
            return "Connector type name is empty"
        if self.connector_type == INDIFFERENT_TAG:
            return f"Connector type '{INDIFFERENT_TAG}' is reserved, use an indifferent rule"
        return ""

    def __str__(self) -> str:
        return f"Typed connector: {self.module}:{self.connector} = {self.connector_type}"


@dataclass(frozen=True)
class RuleIndifferent:
    """Marks a connector as a wildcard."""
    module: str
    connector: int

    def __post_init__(self):
        object.__setattr__(self, "module", _normalized(self.module, "Module name"))

    @property
    def ref(self) -> ConnectorRef:
        return (self.module, self.connector)

    @property
    def is_valid(self) -> bool:
        return bool(self.module)

    @property
    def why_not(self) -> str:
        return "" if self.module else "Module name is empty"

    def __str__(self) -> str:
        return f"Indifferent connector: {self.module}:{self.connector}"


Rule = Union[RuleExplicit, RuleTyped, RuleIndifferent]


def rule_sort_key(rule: Rule) -> Tuple:
    """Deterministic ordering across all rule variants."""
    if isinstance(rule, RuleExplicit):
        c = rule.canonical()
        return (0, c.source_module, c.source_connector, c.target_module, c.target_connector)
    if isinstance(rule, RuleTyped):
        return (1, rule.module, rule.connector, rule.connector_type, 0)
    if isinstance(rule, RuleIndifferent):
        return (2, rule.module, rule.connector, "", 0)
    raise TypeError(f"Not a rule: {rule!r}")


@dataclass(frozen=True, order=True)
class SolverRule:
    """Part-level adjacency consumed by the solver.

    ``low_part`` sits on the negative side of ``high_part`` along ``axis``.
    """
    axis: str
    low_part: str
    high_part: str

    def __str__(self) -> str:
        return f"{self.axis}: {self.low_part} -> {self.high_part}"
