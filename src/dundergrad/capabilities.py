"""
Type descriptions: the capability sets the lowering pass consults

A `TypeDescription` lists the methods a type declares and what they return,
resolved statically from class declarations, never through reflection.
"""

from __future__ import annotations

import ast
import dataclasses
import types
from typing import Iterable, Iterator, Literal, Mapping


@dataclasses.dataclass(frozen=True, slots=True)
class TypeDescription:
    """
    name:       declared class name.
    methods:    declared method name -> name of the returned type (None if unknown).
    """

    name: str
    methods: Mapping[str, str | None] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "methods", types.MappingProxyType(dict(self.methods)))

    def __hash__(self) -> int:
        return hash((self.name, frozenset(self.methods.items())))

    def declares(self, method: str) -> bool:
        return method in self.methods

    def returns(self, method: str) -> str | None:
        return self.methods.get(method)


@dataclasses.dataclass(frozen=True, slots=True)
class StaticType:
    """
    Static type of one expression.
    constructor:    dotted name through which the type is reachable where the expression lives.
    """

    description: TypeDescription
    constructor: str

    def declares(self, method: str) -> bool:
        return self.description.declares(method)

    @property
    def name(self) -> str:
        return self.description.name


class TypeRegistry:
    """Type descriptions known ahead of time (e.g. importable library types)"""

    def __init__(self, descriptions: Iterable[TypeDescription] = ()) -> None:
        self._descriptions: dict[str, TypeDescription] = {}
        for description in descriptions:
            self.register(description)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptions

    def __iter__(self) -> Iterator[TypeDescription]:
        return iter(self._descriptions.values())

    def __len__(self) -> int:
        return len(self._descriptions)

    def get(self, name: str) -> TypeDescription | None:
        return self._descriptions.get(name)

    def register(self, description: TypeDescription) -> TypeDescription:
        self._descriptions[description.name] = description
        return description

    def copy(self) -> TypeRegistry:
        return TypeRegistry(self)


TENSOR = TypeDescription(
    "Tensor",
    {
        "__add__": "Tensor",
        "__sub__": "Tensor",
        "__mul__": "Tensor",
        "__rmul__": "Tensor",
        "sum": "Tensor",
        "zeros": "Tensor",
        "ones": "Tensor",
        "scalar": "Tensor",
        "backward": None,
        "zero_grad": None,
        "realize": None,
    },
)


def default_registry() -> TypeRegistry:
    return TypeRegistry([TENSOR])


### operator -> method ###
OPERATOR_METHODS: Mapping[type[ast.operator], str] = types.MappingProxyType(
    {
        ast.Add: "__add__",
        ast.Sub: "__sub__",
        ast.Mult: "__mul__",
    }
)


@dataclasses.dataclass(frozen=True, slots=True)
class OperatorMatch:
    """
    How a binary operator expression maps onto a method call.
    receiver:   static type declaring `method`.
    wrap:       side holding a numeric literal to wrap into a 1x1 `receiver` (None: no wrapping).
    """

    method: str
    receiver: StaticType
    wrap: Literal["left", "right"] | None = None


def match_operator(
    op: ast.operator,
    left: StaticType | None,
    right: StaticType | None,
    *,
    left_is_literal: bool = False,
    right_is_literal: bool = False,
) -> OperatorMatch | None:
    if (method := OPERATOR_METHODS.get(type(op))) is None:
        return None
    if isinstance(op, ast.Mult) and left_is_literal != right_is_literal:
        if right_is_literal and left is not None and left.declares(method):
            return OperatorMatch(method, left, wrap="right")
        if left_is_literal and right is not None and right.declares(method):
            return OperatorMatch(method, right, wrap="left")
    if left is not None and left.declares(method):
        return OperatorMatch(method, left)
    return None
