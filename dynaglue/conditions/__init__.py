"""
Condition compilation for conditional writes.

Invariants:
    - Compilation never touches the backend
    - Mappers are per-request; never share one between two requests
"""

from .expression import CompiledCondition, build_condition_expression
from .mappers import NameMapper, ValueMapper
from .parser import CompositeCondition, compile_condition, map_key_path

__all__ = [
    "CompositeCondition",
    "CompiledCondition",
    "NameMapper",
    "ValueMapper",
    "build_condition_expression",
    "compile_condition",
    "map_key_path",
]
