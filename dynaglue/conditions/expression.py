"""Compiled conditions ready to attach to a DynamoDB request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .mappers import NameMapper, ValueMapper
from .parser import CompositeCondition, compile_condition


@dataclass(frozen=True)
class CompiledCondition:
    """A condition expression plus its placeholder maps.

    Attributes:
        expression: ConditionExpression text
        names: ExpressionAttributeNames, or None
        values: ExpressionAttributeValues (native values), or None
    """

    expression: str
    names: Optional[Dict[str, str]] = None
    values: Optional[Dict[str, Any]] = None

    def apply(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Attach the condition to a put/delete request in place and return it."""
        request["ConditionExpression"] = self.expression
        if self.names:
            request["ExpressionAttributeNames"] = self.names
        if self.values:
            request["ExpressionAttributeValues"] = self.values
        return request


def build_condition_expression(condition: Optional[CompositeCondition]) -> Optional[CompiledCondition]:
    """Compile ``condition`` with fresh mappers; None when there is no condition."""
    if condition is None:
        return None
    name_mapper = NameMapper()
    value_mapper = ValueMapper()
    expression = compile_condition(condition, name_mapper, value_mapper)
    return CompiledCondition(expression, name_mapper.get(), value_mapper.get())
