"""
Shape tracking
"""

from __future__ import annotations

import dataclasses
import math
from typing import Any, Iterator, Sequence

from dundergrad.errors import DimensionMismatch, ShapeMismatch


@dataclasses.dataclass(slots=True, frozen=True)
class Shape:
    dims: tuple[int, int]

    def __post_init__(self) -> None:
        if len(self.dims) != 2:
            raise ShapeMismatch(f"only rank 2 is supported, got {self.dims=}")
        if not all(d >= 1 for d in self.dims):
            raise ShapeMismatch(f"matrix must be at least 1x1, got {self.dims=}")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Shape) and self.dims == other.dims

    def __hash__(self) -> int:
        return hash(self.dims)

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"Shape({', '.join(map(str, self.dims))})"

    def __len__(self) -> int:
        return self.ndims

    def __iter__(self) -> Iterator[int]:
        return iter(self.dims)

    def matmul(self, other: Shape) -> Shape:
        if self.cols != other.rows:
            raise DimensionMismatch(f"cannot multiply {self} by {other}: {self.cols=} != {other.rows=}")
        return Shape((self.rows, other.cols))

    def assert_match(self, *others: Shape) -> Shape:
        for other in others:
            if other != self:
                raise ShapeMismatch(f"{self} does not match {other}")
        return self

    @property
    def rows(self) -> int:
        return self.dims[0]

    @property
    def cols(self) -> int:
        return self.dims[1]

    @property
    def ndims(self) -> int:
        return len(self.dims)

    @property
    def size(self) -> int:
        return math.prod(self.dims)

    @property
    def is_scalar(self) -> bool:
        return self.dims == (1, 1)

    @classmethod
    def scalar(cls) -> Shape:
        return cls((1, 1))

    @classmethod
    def of(cls, array: Any, /) -> Shape:
        """Shape of an engine array (anything with a `shape` attribute)"""
        return cls(tuple(array.shape))  # type: ignore[arg-type]

    @classmethod
    def from_data(cls, data: Any, /) -> Shape:
        if hasattr(data, "shape"):
            return cls.of(data)
        if not _is_row_container(data):
            raise ShapeMismatch(f"expected a nested sequence of rows, got {type(data).__name__}")
        rows = list(data)
        if not rows or not all(_is_row_container(row) for row in rows):
            raise ShapeMismatch(f"expected a non-empty sequence of rows, got {data!r}")
        if len(widths := {len(row) for row in rows}) != 1:
            raise ShapeMismatch(f"rows are not of uniform length: {sorted(widths)}")
        if any(_is_row_container(cell) for row in rows for cell in row):
            raise ShapeMismatch(f"only rank 2 is supported, got {data!r}")
        return cls((len(rows), widths.pop()))


def _is_row_container(obj: Any) -> bool:
    if hasattr(obj, "shape"):
        return len(obj.shape) == 1
    return isinstance(obj, Sequence) and not isinstance(obj, (str, bytes))
