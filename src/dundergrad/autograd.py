"""
Autodifferentiation logic

Every op result records a `Backprop`: the op that produced it and the operands it was
computed from. `backward` sorts the provenance graph and distributes gradients by
dispatching on the recorded op.
"""

from __future__ import annotations

import abc
import dataclasses
from typing import Any, Generic, Self, TypeVar, Union

from dundergrad import config, llops, shapes

T = TypeVar("T", bound="AutoDiffable")
ArrayRef = Any  # engine-native array
AutoDiffInput = Union[T, llops.MatrixRepr, int, float]


### Base for autodiff ###
class AutoDiffable(abc.ABC):
    def __init__(self, data: llops.MatrixRepr) -> None:
        self._setup(llops.Ops.READ(data), None)

    def _setup(self, data: ArrayRef, backprop: Backprop | None) -> None:
        self.data: ArrayRef = data
        self.gradient: ArrayRef | None = None
        self._backprop = backprop
        config.Configuration.on_tensor_creation(self)

    def __repr__(self) -> str:
        return (
            f"<{self.__module__}.{self.__class__.__name__}(\n"
            f"  {self.realize()!r},\n"
            f"  op={self.op!r},\n"
            f"  gradient={self.realize_gradient()!r},\n"
            f")>"
        )

    def realize(self) -> Any:
        return config.Configuration.engine.to_python(self.data)

    def realize_gradient(self) -> Any:
        return None if self.gradient is None else config.Configuration.engine.to_python(self.gradient)

    def backward(self) -> None:
        order = toposort(self)
        if config.Configuration.reset_gradients:
            for autodiffable in order:
                autodiffable.zero_grad()
        self.gradient = llops.Ops.FILL(self.shape, 1)
        for autodiffable in reversed(order):  # NOTE: every dependent has contributed by now
            if (backprop := autodiffable._backprop) is not None:
                backprop(autodiffable.gradient)
                config.Configuration.on_backward_step(autodiffable)

    def zero_grad(self) -> None:
        self.gradient = None

    def _accumulate(self, delta: ArrayRef) -> None:
        base = llops.Ops.FILL(self.shape, 0) if self.gradient is None else self.gradient
        self.gradient = llops.Ops.ADD(base, delta)

    @property
    def shape(self) -> shapes.Shape:
        return shapes.Shape.of(self.data)

    @property
    def parents(self) -> tuple[AutoDiffable, ...]:
        return () if self._backprop is None else self._backprop.operands

    @property
    def op(self) -> llops.Op | None:
        return None if self._backprop is None else self._backprop.op

    @property
    def is_leaf(self) -> bool:
        return self._backprop is None

    @classmethod
    def from_backprop(cls, data: ArrayRef, backprop: Backprop) -> Self:
        self = cls.__new__(cls)
        self._setup(data, backprop)
        return self


### Backward records ###
@dataclasses.dataclass(frozen=True, slots=True)
class Backprop(Generic[T]):
    op: llops.Op
    operands: tuple[T, ...]

    def __call__(self, out_grad: ArrayRef) -> None:
        for operand, delta in zip(self.operands, local_gradients(self, out_grad), strict=True):
            operand._accumulate(delta)


def local_gradients(backprop: Backprop, out_grad: ArrayRef) -> tuple[ArrayRef, ...]:
    """Gradient contribution of `out_grad` to each operand of `backprop`, in operand order"""
    match backprop.op, backprop.operands:
        case llops.Ops.ADD, _:
            return out_grad, out_grad
        case llops.Ops.SUB, _:
            return out_grad, llops.Ops.NEG(out_grad)
        case llops.Ops.MATMUL, (a, b):
            # NOTE: kept without transposes, only well formed when the products are
            return llops.Ops.MATMUL(out_grad, b.data), llops.Ops.MATMUL(a.data, out_grad)
        case llops.Ops.SCALE, (matrix, scalar):
            return llops.Ops.SCALE(out_grad, scalar.data), llops.Ops.SUM(llops.Ops.MUL(out_grad, matrix.data))
        case llops.Ops.SUM, (a,):
            return (llops.Ops.FILL(a.shape, out_grad),)
        case _:
            raise NotImplementedError(f"No gradient defined for {backprop.op}")


def toposort(root: T) -> list[T]:
    """
    Post-order DFS over `parents`: every autodiffable comes after all of its parents.
    Uses an explicit stack so deep graphs do not hit the recursion limit.
    """
    order: list[T] = []
    visited: set[int] = set()
    stack: list[tuple[T, bool]] = [(root, False)]
    while stack:
        node, parents_done = stack.pop()
        if parents_done:
            order.append(node)
        elif id(node) not in visited:
            visited.add(id(node))
            stack.append((node, True))
            stack.extend((parent, False) for parent in reversed(node.parents) if id(parent) not in visited)
    return order


### Differentiable ops ###
def add(ad1: AutoDiffInput[T], ad2: AutoDiffInput[T], /) -> T:
    return apply(llops.Ops.ADD, *ensure_autodiffables(ad1, ad2))


def sub(ad1: AutoDiffInput[T], ad2: AutoDiffInput[T], /) -> T:
    return apply(llops.Ops.SUB, *ensure_autodiffables(ad1, ad2))


def mul(ad1: AutoDiffInput[T], ad2: AutoDiffInput[T], /) -> T:
    """
    Matrix product of ad1 and ad2.
    A 1x1 operand (right one checked first) scales the other operand instead.
    """
    t1, t2 = ensure_autodiffables(ad1, ad2)
    if t2.shape.is_scalar:
        return apply(llops.Ops.SCALE, t1, t2)
    if t1.shape.is_scalar:
        return apply(llops.Ops.SCALE, t2, t1)
    return apply(llops.Ops.MATMUL, t1, t2)


def rmul(ad1: AutoDiffInput[T], ad2: AutoDiffInput[T], /) -> T:
    return mul(ad2, ad1)


def sum(ad: AutoDiffInput[T], /) -> T:
    return apply(llops.Ops.SUM, *ensure_autodiffables(ad))


### helpers ###
def apply(op: llops.Op, *operands: T) -> T:
    new_data = op(*(operand.data for operand in operands))
    return type(operands[0]).from_backprop(new_data, Backprop(op, operands))


def ensure_autodiffables(*ads: AutoDiffInput[T]) -> tuple[T, ...]:
    """Wrap raw numbers / nested lists into the class of the first autodiffable given"""
    cls = next((type(ad) for ad in ads if isinstance(ad, AutoDiffable)), AutoDiffable)
    return tuple(ad if isinstance(ad, AutoDiffable) else cls(_as_matrix(ad)) for ad in ads)  # type: ignore


def _as_matrix(value: llops.MatrixRepr | int | float) -> llops.MatrixRepr:
    return [[value]] if isinstance(value, (int, float)) else value
