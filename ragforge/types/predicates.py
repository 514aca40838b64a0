"""
Structural Predicates

Property and relationship predicates used by filter stages. Predicates are
plain data: each storage backend compiles them into its own query language
(DuckDB SQL for the Parquet store, direct evaluation for the memory store).

Models:
    - FieldPredicate: Property comparison (eq, ne, contains, starts_with,
      ends_with, gt, gte, lt, lte, in)
    - RelationshipPredicate: Relationship existence, optionally constrained
      by a predicate on the node at the other end
    - AllOf: Conjunction of predicates

Example:
    >>> pred = where(type="function", file={"contains": "ingest"})
    >>> pred.field_names()
    {'type', 'file'}
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ragforge.types.context import Direction

FieldOperator = Literal[
    "eq", "ne", "contains", "starts_with", "ends_with", "gt", "gte", "lt", "lte", "in"
]

# Accept the camelCase spellings used by generated query clients
_OPERATOR_ALIASES: dict[str, str] = {
    "equals": "eq",
    "startsWith": "starts_with",
    "endsWith": "ends_with",
    "startswith": "starts_with",
    "endswith": "ends_with",
}

_VALID_OPERATORS = {
    "eq", "ne", "contains", "starts_with", "ends_with", "gt", "gte", "lt", "lte", "in",
}


class FieldPredicate(BaseModel):
    """Compare one property of the entity against a value."""

    kind: Literal["field"] = "field"
    field: str
    op: FieldOperator = "eq"
    value: Any

    model_config = ConfigDict(frozen=True)

    def field_names(self) -> set[str]:
        return {self.field}

    def relationship_types(self) -> set[str]:
        return set()

    def matches(self, record: dict[str, Any]) -> bool:
        """Evaluate against an in-memory record. Missing properties never match."""
        if self.field not in record or record[self.field] is None:
            return False
        actual = record[self.field]
        value = self.value
        op = self.op

        if op == "eq":
            return bool(actual == value)
        if op == "ne":
            return bool(actual != value)
        if op == "in":
            return actual in value
        if op == "contains":
            if isinstance(actual, (list, tuple)):
                return value in actual
            return str(value) in str(actual)
        if op == "starts_with":
            return str(actual).startswith(str(value))
        if op == "ends_with":
            return str(actual).endswith(str(value))

        try:
            if op == "gt":
                return bool(actual > value)
            if op == "gte":
                return bool(actual >= value)
            if op == "lt":
                return bool(actual < value)
            return bool(actual <= value)
        except TypeError:
            return False


class RelationshipPredicate(BaseModel):
    """
    Require at least one relationship of the given type.

    With a target predicate, the node at the other end must also satisfy it
    (e.g. "IMPORTS something named Neo4jClient").
    """

    kind: Literal["relationship"] = "relationship"
    relationship_type: str
    direction: Direction = "outgoing"
    target: FieldPredicate | None = None

    model_config = ConfigDict(frozen=True)

    def field_names(self) -> set[str]:
        return set()

    def relationship_types(self) -> set[str]:
        return {self.relationship_type}


class AllOf(BaseModel):
    """Every sub-predicate must hold."""

    kind: Literal["all"] = "all"
    predicates: list["Predicate"]

    model_config = ConfigDict(frozen=True)

    def field_names(self) -> set[str]:
        names: set[str] = set()
        for p in self.predicates:
            names |= p.field_names()
        return names

    def relationship_types(self) -> set[str]:
        types: set[str] = set()
        for p in self.predicates:
            types |= p.relationship_types()
        return types


Predicate = Annotated[
    Union[FieldPredicate, RelationshipPredicate, AllOf],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()


def where(**conditions: Any) -> FieldPredicate | AllOf:
    """
    Build a predicate from keyword conditions.

    A plain value means equality; a dict maps operators to values:
        where(type="function")
        where(file={"contains": "ingest"}, startLine={"gte": 10})

    Raises:
        ValueError: On an empty condition set or an unknown operator
    """
    predicates: list[FieldPredicate] = []
    for field, condition in conditions.items():
        if isinstance(condition, dict):
            if not condition:
                raise ValueError(f"Empty condition for field {field!r}")
            for raw_op, value in condition.items():
                op = _OPERATOR_ALIASES.get(raw_op, raw_op)
                if op not in _VALID_OPERATORS:
                    raise ValueError(f"Unknown operator {raw_op!r} for field {field!r}")
                predicates.append(FieldPredicate(field=field, op=op, value=value))
        else:
            predicates.append(FieldPredicate(field=field, op="eq", value=condition))

    if not predicates:
        raise ValueError("where() requires at least one condition")
    if len(predicates) == 1:
        return predicates[0]
    return AllOf(predicates=predicates)


def iter_field_predicates(predicate: "Predicate") -> list[FieldPredicate]:
    """Flatten the top-level field predicates of a predicate tree."""
    if isinstance(predicate, FieldPredicate):
        return [predicate]
    if isinstance(predicate, AllOf):
        out: list[FieldPredicate] = []
        for p in predicate.predicates:
            out.extend(iter_field_predicates(p))
        return out
    return []
