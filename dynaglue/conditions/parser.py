"""
Composite condition compiler.

A CompositeCondition is a dict tree evaluated against the stored ``value``
attribute of a wrapped document:

    {"$or": [
        {"status": {"$eq": "active"}},
        {"profile.age": {"$gte": 18}, "deleted": {"$exists": False}},
    ]}

compile_condition() turns it into a DynamoDB ConditionExpression, filling
the supplied NameMapper / ValueMapper with the placeholders it used.

Invariants:
    - Logical clauses (``$and``, ``$or``, ``$not``) must be the only key of
      their dict; every other dict is a key-path clause
    - Multiple key paths in one clause are ANDed in insertion order
    - Every subclause is parenthesised, so operator precedence of the
      generated expression never depends on the input tree shape

How to change safely:
    - Add new operators to both CONDITION_OPERATORS and _compile_operator
    - Error messages carry a parse path; keep extending it as nesting grows
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import InvalidCompositeConditionException
from .mappers import NameMapper, ValueMapper

CompositeCondition = Dict[str, Any]
ParsePath = Tuple[Union[str, int], ...]

VALUE_NAME = "value"
VALUE_PLACEHOLDER = "#value"

MAX_IN_VALUES = 100

LOGICAL_OPERATORS = ("$and", "$or", "$not")

COMPARISON_OPERATORS = {
    "$eq": "=",
    "$neq": "<>",
    "$gt": ">",
    "$gte": ">=",
    "$lt": "<",
    "$lte": "<=",
}

FUNCTION_OPERATORS = {
    "$type": "attribute_type",
    "$beginsWith": "begins_with",
    "$contains": "contains",
}

CONDITION_OPERATORS = frozenset(
    [*LOGICAL_OPERATORS, *COMPARISON_OPERATORS, *FUNCTION_OPERATORS, "$between", "$in", "$exists"]
)


def map_key_path(path: str, name_mapper: NameMapper) -> str:
    """Map a dotted document path to an expression path under ``value``.

    Numeric segments address list elements: ``tags.0`` becomes
    ``#value.#attr0[0]``.
    """
    expression = name_mapper.map(VALUE_NAME, VALUE_PLACEHOLDER)
    for segment in path.split("."):
        if segment.isdigit():
            expression += f"[{int(segment)}]"
        else:
            expression += "." + name_mapper.map(segment)
    return expression


def compile_condition(
    condition: CompositeCondition,
    name_mapper: NameMapper,
    value_mapper: ValueMapper,
    parse_path: ParsePath = (),
) -> str:
    """Compile a CompositeCondition into a condition expression.

    Args:
        condition: The condition tree
        name_mapper: Receives the attribute name placeholders
        value_mapper: Receives the value placeholders
        parse_path: Location of ``condition`` in the enclosing tree

    Returns:
        The expression string

    Raises:
        InvalidCompositeConditionException: If the tree is malformed
    """
    if not isinstance(condition, Mapping):
        raise InvalidCompositeConditionException("expected a condition object", parse_path)

    if len(condition) == 1:
        (key,) = condition.keys()
        if key in ("$and", "$or"):
            return _compile_junction(key, condition[key], name_mapper, value_mapper, parse_path)
        if key == "$not":
            subclause = compile_condition(
                condition[key], name_mapper, value_mapper, (*parse_path, key)
            )
            return f"NOT ({subclause})"

    return _compile_key_paths(condition, name_mapper, value_mapper, parse_path)


def _compile_junction(
    operator: str,
    subconditions: Any,
    name_mapper: NameMapper,
    value_mapper: ValueMapper,
    parse_path: ParsePath,
) -> str:
    junction_path = (*parse_path, operator)
    if isinstance(subconditions, (str, bytes, Mapping)) or not isinstance(subconditions, Sequence):
        raise InvalidCompositeConditionException(f"{operator} must be an array of conditions", junction_path)
    if not subconditions:
        raise InvalidCompositeConditionException(f"{operator} must have at least one condition", junction_path)

    subclauses = [
        compile_condition(subcondition, name_mapper, value_mapper, (*junction_path, index))
        for index, subcondition in enumerate(subconditions)
    ]
    joiner = " AND " if operator == "$and" else " OR "
    return joiner.join(f"({subclause})" for subclause in subclauses)


def _compile_key_paths(
    clause: Mapping[str, Any],
    name_mapper: NameMapper,
    value_mapper: ValueMapper,
    parse_path: ParsePath,
) -> str:
    if len(clause) < 1:
        raise InvalidCompositeConditionException("expected at least one key path with operator", parse_path)

    for key in clause:
        if key in CONDITION_OPERATORS:
            raise InvalidCompositeConditionException("unexpected condition key", (*parse_path, key))

    clauses: List[str] = []
    for path, operation in clause.items():
        key_parse_path = (*parse_path, path)
        if not isinstance(operation, Mapping) or len(operation) != 1:
            raise InvalidCompositeConditionException(
                "expected an object with exactly one operator", key_parse_path
            )
        clauses.append(_compile_operator(path, operation, name_mapper, value_mapper, key_parse_path))
    return " AND ".join(clauses)


def _compile_operator(
    path: str,
    operation: Mapping[str, Any],
    name_mapper: NameMapper,
    value_mapper: ValueMapper,
    parse_path: ParsePath,
) -> str:
    (operator, operand) = next(iter(operation.items()))
    mapped_path = map_key_path(path, name_mapper)

    if operator in COMPARISON_OPERATORS:
        return f"{mapped_path} {COMPARISON_OPERATORS[operator]} {value_mapper.map(operand)}"

    if operator in FUNCTION_OPERATORS:
        return f"{FUNCTION_OPERATORS[operator]}({mapped_path},{value_mapper.map(operand)})"

    if operator == "$exists":
        function = "attribute_exists" if operand else "attribute_not_exists"
        return f"{function}({mapped_path})"

    if operator == "$between":
        bounds = _between_bounds(operand)
        if bounds is None:
            raise InvalidCompositeConditionException(
                "$between must be an object with values for $lte and $gte", parse_path
            )
        lower = value_mapper.map(bounds[0])
        upper = value_mapper.map(bounds[1])
        return f"{mapped_path} BETWEEN {lower} AND {upper}"

    if operator == "$in":
        if isinstance(operand, (str, bytes, Mapping)) or not isinstance(operand, Sequence):
            raise InvalidCompositeConditionException("$in must be an array of values", parse_path)
        if len(operand) > MAX_IN_VALUES:
            raise InvalidCompositeConditionException("$in condition has too many values", parse_path)
        if len(operand) == 0:
            raise InvalidCompositeConditionException("$in condition must have at least one value", parse_path)
        names = ",".join(value_mapper.map(value) for value in operand)
        return f"{mapped_path} IN ({names})"

    raise InvalidCompositeConditionException("unknown operator", (*parse_path, operator))


def _between_bounds(operand: Any) -> Optional[Tuple[Any, Any]]:
    if not isinstance(operand, Mapping):
        return None
    if operand.get("$gte") is None or operand.get("$lte") is None:
        return None
    return operand["$gte"], operand["$lte"]
