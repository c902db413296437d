"""
Condition and update expression evaluation for the in-memory backend.

Supports the subset of the DynamoDB expression grammars that the condition
compiler and the operations emit:

    condition  := or
    or         := and ("OR" and)*
    and        := not ("AND" not)*
    not        := "NOT" not | primary
    primary    := "(" condition ")"
                | function "(" path ["," operand] ")"
                | operand comparator operand
                | operand "BETWEEN" operand "AND" operand
                | operand "IN" "(" operand ("," operand)* ")"
    path       := name ("." name | "[" digits "]")*

    update     := clause+
    clause     := "SET" path "=" operand ("," path "=" operand)*
                | "REMOVE" path ("," path)*

Names may be ``#placeholders`` or bare attribute names; values must be
``:placeholders``.

Invariants:
    - Comparing values of different types is false, as in DynamoDB
    - A comparison with a missing attribute is false, except ``<>``
    - Update operands are read from the item as it was before the update
    - Updates never modify the item passed in
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<op><>|<=|>=|=|<|>)|(?P<punct>[(),.\[\]])|(?P<value>:[A-Za-z0-9_]+)"
    r"|(?P<name>#[A-Za-z0-9_]+)|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)|(?P<number>\d+))"
)

_KEYWORDS = frozenset(["AND", "OR", "NOT", "BETWEEN", "IN"])
_FUNCTIONS = frozenset(["attribute_exists", "attribute_not_exists", "attribute_type", "begins_with", "contains"])
_UPDATE_CLAUSES = frozenset(["SET", "REMOVE"])

_MISSING = object()

DocumentPath = Tuple[Union[str, int], ...]


class ExpressionError(ValueError):
    """The expression is malformed or references an undefined placeholder."""


def _tokenize(expression: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    position = 0
    expression = expression.rstrip()
    while position < len(expression):
        match = _TOKEN_RE.match(expression, position)
        if match is None or match.end() == position:
            raise ExpressionError(f"Invalid syntax near position {position}: {expression[position:]!r}")
        kind = match.lastgroup
        text = match.group(kind)
        if kind == "ident" and text.upper() in _KEYWORDS:
            kind, text = "keyword", text.upper()
        tokens.append((kind, text))
        position = match.end()
    return tokens


def dynamo_type(value: Any) -> Optional[str]:
    """Return the DynamoDB type descriptor of a native value."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, (int, float, Decimal)):
        return "N"
    if isinstance(value, str):
        return "S"
    if isinstance(value, (bytes, bytearray)):
        return "B"
    if isinstance(value, Mapping):
        return "M"
    if isinstance(value, (list, tuple)):
        return "L"
    if isinstance(value, (set, frozenset)):
        members = {dynamo_type(member) for member in value}
        if members == {"S"}:
            return "SS"
        if members == {"N"}:
            return "NS"
        if members == {"B"}:
            return "BS"
    return None


def _comparable(left: Any, right: Any) -> bool:
    if left is _MISSING or right is _MISSING:
        return False
    left_type = dynamo_type(left)
    return left_type is not None and left_type == dynamo_type(right)


def _descend(current: Any, element: Union[str, int]) -> Any:
    if current is _MISSING:
        return _MISSING
    if isinstance(element, int):
        if isinstance(current, list) and 0 <= element < len(current):
            return current[element]
        return _MISSING
    if isinstance(current, Mapping) and element in current:
        return current[element]
    return _MISSING


def resolve_path(item: Any, path: DocumentPath) -> Any:
    """Follow ``path`` into ``item``; the ``_MISSING`` sentinel when absent."""
    current = item
    for element in path:
        current = _descend(current, element)
    return current


class _ExpressionParser:
    """Token cursor and the path/placeholder rules both grammars share."""

    def __init__(
        self,
        expression: str,
        names: Optional[Dict[str, str]],
        values: Optional[Dict[str, Any]],
    ) -> None:
        self.expression = expression
        self.names = names or {}
        self.values = values or {}
        self._tokens = _tokenize(expression)
        self._position = 0

    def _peek(self, offset: int = 0) -> Tuple[str, str]:
        index = self._position + offset
        if index < len(self._tokens):
            return self._tokens[index]
        return ("end", "")

    def _next(self) -> Tuple[str, str]:
        token = self._peek()
        if token[0] == "end":
            raise ExpressionError(f"Unexpected end of expression {self.expression!r}")
        self._position += 1
        return token

    def _expect(self, text: str) -> None:
        token = self._next()
        if token[1] != text:
            raise ExpressionError(f"Expected {text!r} but found {token[1]!r} in {self.expression!r}")

    def _parse_value(self) -> Any:
        _, text = self._next()
        if text not in self.values:
            raise ExpressionError(f"Value {text} is not defined in ExpressionAttributeValues")
        return self.values[text]

    def _parse_path_elements(self) -> DocumentPath:
        elements: List[Union[str, int]] = [self._parse_name()]
        while True:
            kind, text = self._peek()
            if (kind, text) == ("punct", "."):
                self._next()
                elements.append(self._parse_name())
            elif (kind, text) == ("punct", "["):
                self._next()
                index_kind, index_text = self._next()
                if index_kind != "number":
                    raise ExpressionError(f"Expected a list index but found {index_text!r}")
                self._expect("]")
                elements.append(int(index_text))
            else:
                return tuple(elements)

    def _parse_name(self) -> str:
        kind, text = self._next()
        if kind == "name":
            if text not in self.names:
                raise ExpressionError(f"Name {text} is not defined in ExpressionAttributeNames")
            return self.names[text]
        if kind == "ident":
            return text
        raise ExpressionError(f"Expected an attribute name but found {text!r} in {self.expression!r}")


class ConditionEvaluator(_ExpressionParser):
    """Evaluates one condition expression against one item.

    Example:
        >>> ConditionEvaluator(
        ...     "attribute_not_exists(#pk)", {"#pk": "id"}, None
        ... ).evaluate({})
        True
    """

    def __init__(
        self,
        expression: str,
        names: Optional[Dict[str, str]],
        values: Optional[Dict[str, Any]],
    ) -> None:
        super().__init__(expression, names, values)
        self._item: Mapping[str, Any] = {}

    def evaluate(self, item: Optional[Mapping[str, Any]]) -> bool:
        """Evaluate against ``item`` (None or empty for a missing item)."""
        self._item = item or {}
        self._position = 0
        result = self._parse_or()
        if self._position != len(self._tokens):
            raise ExpressionError(f"Unexpected token {self._peek()[1]!r} in {self.expression!r}")
        return result

    def _parse_or(self) -> bool:
        result = self._parse_and()
        while self._peek() == ("keyword", "OR"):
            self._next()
            right = self._parse_and()
            result = result or right
        return result

    def _parse_and(self) -> bool:
        result = self._parse_not()
        while self._peek() == ("keyword", "AND"):
            self._next()
            right = self._parse_not()
            result = result and right
        return result

    def _parse_not(self) -> bool:
        if self._peek() == ("keyword", "NOT"):
            self._next()
            return not self._parse_not()
        return self._parse_primary()

    def _parse_primary(self) -> bool:
        kind, text = self._peek()
        if kind == "punct" and text == "(":
            self._next()
            result = self._parse_or()
            self._expect(")")
            return result
        if kind == "ident" and text in _FUNCTIONS and self._peek(1) == ("punct", "("):
            return self._parse_function()

        left = self._parse_operand()
        kind, text = self._next()
        if kind == "op":
            return self._compare(text, left, self._parse_operand())
        if (kind, text) == ("keyword", "BETWEEN"):
            lower = self._parse_operand()
            self._expect("AND")
            upper = self._parse_operand()
            return self._compare(">=", left, lower) and self._compare("<=", left, upper)
        if (kind, text) == ("keyword", "IN"):
            self._expect("(")
            candidates = [self._parse_operand()]
            while self._peek() == ("punct", ","):
                self._next()
                candidates.append(self._parse_operand())
            self._expect(")")
            return any(self._compare("=", left, candidate) for candidate in candidates)
        raise ExpressionError(f"Expected a comparison but found {text!r} in {self.expression!r}")

    def _parse_function(self) -> bool:
        _, function = self._next()
        self._expect("(")
        subject = resolve_path(self._item, self._parse_path_elements())
        argument: Any = _MISSING
        if self._peek() == ("punct", ","):
            self._next()
            argument = self._parse_operand()
        self._expect(")")

        if function == "attribute_exists":
            return subject is not _MISSING
        if function == "attribute_not_exists":
            return subject is _MISSING
        if subject is _MISSING or argument is _MISSING:
            return False
        if function == "attribute_type":
            return dynamo_type(subject) == argument
        if function == "begins_with":
            return _comparable(subject, argument) and dynamo_type(subject) in ("S", "B") and subject.startswith(argument)
        # contains
        if isinstance(subject, str):
            return isinstance(argument, str) and argument in subject
        if isinstance(subject, (list, tuple, set, frozenset)):
            return any(_comparable(member, argument) and member == argument for member in subject)
        return False

    def _parse_operand(self) -> Any:
        if self._peek()[0] == "value":
            return self._parse_value()
        return resolve_path(self._item, self._parse_path_elements())

    @staticmethod
    def _compare(operator: str, left: Any, right: Any) -> bool:
        if operator == "<>":
            return not (_comparable(left, right) and left == right)
        if not _comparable(left, right):
            return False
        if operator == "=":
            return left == right
        if dynamo_type(left) not in ("N", "S", "B"):
            return False
        if operator == "<":
            return left < right
        if operator == "<=":
            return left <= right
        if operator == ">":
            return left > right
        return left >= right


class UpdateEvaluator(_ExpressionParser):
    """Applies one update expression (SET/REMOVE) to one item.

    Example:
        >>> UpdateEvaluator(
        ...     "SET #v.#n = :n", {"#v": "value", "#n": "name"}, {":n": "Ann"}
        ... ).apply({"value": {}})
        {'value': {'name': 'Ann'}}
    """

    def apply(self, item: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return an updated copy of ``item`` (None for a missing item).

        Raises:
            ExpressionError: If the expression is malformed, two actions
                overlap, or a SET path has no parent in the item
        """
        original = item or {}
        self._position = 0
        set_actions: List[Tuple[DocumentPath, Any]] = []
        remove_actions: List[DocumentPath] = []
        if self._peek()[0] == "end":
            raise ExpressionError("Update expression must not be empty")

        while self._peek()[0] != "end":
            kind, text = self._next()
            clause = text.upper()
            if kind != "ident" or clause not in _UPDATE_CLAUSES:
                raise ExpressionError(f"Expected SET or REMOVE but found {text!r} in {self.expression!r}")
            while True:
                path = self._parse_path_elements()
                if clause == "SET":
                    self._expect("=")
                    set_actions.append((path, self._parse_update_operand(original)))
                else:
                    remove_actions.append(path)
                if self._peek() != ("punct", ","):
                    break
                self._next()

        self._check_overlap([path for path, _ in set_actions] + remove_actions)
        updated = copy.deepcopy(dict(original))
        for path, value in set_actions:
            self._set(updated, path, copy.deepcopy(value))
        # Parents are resolved up front and list entries removed highest index
        # first, so every path refers to the item as it was
        targets = [(resolve_path(updated, path[:-1]), path[-1]) for path in remove_actions]
        for parent, last in sorted(targets, key=lambda target: _list_index(target[1]), reverse=True):
            self._remove(parent, last)
        return updated

    def _parse_update_operand(self, item: Mapping[str, Any]) -> Any:
        if self._peek()[0] == "value":
            return self._parse_value()
        path = self._parse_path_elements()
        value = resolve_path(item, path)
        if value is _MISSING:
            raise ExpressionError("The provided expression refers to an attribute that does not exist in the item")
        return value

    def _check_overlap(self, paths: List[DocumentPath]) -> None:
        for index, path in enumerate(paths):
            for other in paths[index + 1 :]:
                shorter = min(len(path), len(other))
                if path[:shorter] == other[:shorter]:
                    raise ExpressionError(
                        f"Two document paths overlap with each other in {self.expression!r}"
                    )

    def _set(self, item: Dict[str, Any], path: DocumentPath, value: Any) -> None:
        parent = resolve_path(item, path[:-1])
        last = path[-1]
        if isinstance(last, int) and isinstance(parent, list):
            if last < len(parent):
                parent[last] = value
            else:
                parent.append(value)
        elif isinstance(last, str) and isinstance(parent, dict):
            parent[last] = value
        else:
            raise ExpressionError("The document path provided in the update expression is invalid for update")

    @staticmethod
    def _remove(parent: Any, last: Union[str, int]) -> None:
        if isinstance(last, int) and isinstance(parent, list):
            if last < len(parent):
                del parent[last]
        elif isinstance(last, str) and isinstance(parent, dict):
            parent.pop(last, None)


def _list_index(element: Union[str, int]) -> int:
    return element if isinstance(element, int) else -1


def evaluate_condition(
    expression: str,
    names: Optional[Dict[str, str]],
    values: Optional[Dict[str, Any]],
    item: Optional[Mapping[str, Any]],
) -> bool:
    """Evaluate a condition expression against an item.

    Raises:
        ExpressionError: If the expression is malformed
    """
    return ConditionEvaluator(expression, names, values).evaluate(item)


def apply_update(
    expression: str,
    names: Optional[Dict[str, str]],
    values: Optional[Dict[str, Any]],
    item: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Apply an update expression, returning the updated copy of ``item``.

    Raises:
        ExpressionError: If the expression is malformed or cannot be applied
    """
    return UpdateEvaluator(expression, names, values).apply(item)
