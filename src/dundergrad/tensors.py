"""
Tensors with operator methods
"""

from __future__ import annotations

from typing import Self

from dundergrad import autograd


class Tensor(autograd.AutoDiffable):
    # arithmetic
    __add__ = autograd.add
    __sub__ = autograd.sub
    __mul__ = autograd.mul
    __rmul__ = autograd.rmul
    sum = autograd.sum

    # constructors
    @classmethod
    def zeros(cls, rows: int, cols: int) -> Self:
        return cls([[0] * cols for _ in range(rows)])

    @classmethod
    def ones(cls, rows: int, cols: int) -> Self:
        return cls([[1] * cols for _ in range(rows)])

    @classmethod
    def scalar(cls, value: float) -> Self:
        return cls([[value]])
