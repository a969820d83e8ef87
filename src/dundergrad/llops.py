"""
Low level matrix ops

Every `Op` validates the shapes of its operands before handing them to the
configured `Engine`, so a failing op never produces a partial result.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Self, Sequence

from dundergrad import config, shapes
from dundergrad.errors import ShapeMismatch

MatrixRepr = Sequence[Sequence[float]]
ShapeConstructor = Callable[..., shapes.Shape]


@dataclasses.dataclass(slots=True, eq=False)
class Op:
    """
    A low level op.
    constructor:    infers (and validates) the output shape from the operands.
    name:           set from the attribute name on `Ops`.
    """

    constructor: ShapeConstructor
    name: str = dataclasses.field(init=False)

    def __call__(self, *args: Any) -> Any:
        shape = self.constructor(*args)
        out = config.Configuration.engine.execute(self, *args)
        assert shapes.Shape.of(out) == shape, f"{self} returned {shapes.Shape.of(out)}, expected {shape}"
        return out

    def __set_name__(self, _: type[Ops], name: str) -> None:
        self.name = name

    def __get__(self, *_) -> Self:
        return self

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}({self.name})>"

    def __repr__(self) -> str:
        return str(self)


def construct_read(data: MatrixRepr, /) -> shapes.Shape:
    return shapes.Shape.from_data(data)


def construct_unary(a: Any, /) -> shapes.Shape:
    return shapes.Shape.of(a)


def construct_elementwise(a: Any, b: Any, /) -> shapes.Shape:
    return shapes.Shape.of(a).assert_match(shapes.Shape.of(b))


def construct_matmul(a: Any, b: Any, /) -> shapes.Shape:
    return shapes.Shape.of(a).matmul(shapes.Shape.of(b))


def construct_scale(a: Any, scalar: Any, /) -> shapes.Shape:
    if not (scalar_shape := shapes.Shape.of(scalar)).is_scalar:
        raise ShapeMismatch(f"scale factor must be 1x1, got {scalar_shape}")
    return shapes.Shape.of(a)


def construct_reduce(a: Any, /) -> shapes.Shape:
    shapes.Shape.of(a)
    return shapes.Shape.scalar()


def construct_fill(shape: shapes.Shape, value: Any, /) -> shapes.Shape:
    if hasattr(value, "shape") and not shapes.Shape.of(value).is_scalar:
        raise ShapeMismatch(f"fill value must be a number or 1x1, got {shapes.Shape.of(value)}")
    return shape


class Ops:
    """Low level ops that the engine executes"""

    READ = Op(construct_read)
    NEG = Op(construct_unary)
    ADD = Op(construct_elementwise)
    SUB = Op(construct_elementwise)
    MUL = Op(construct_elementwise)
    MATMUL = Op(construct_matmul)
    SCALE = Op(construct_scale)
    SUM = Op(construct_reduce)
    FILL = Op(construct_fill)
