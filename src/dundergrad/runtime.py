"""
Engine is the runtime that executes low level ops
and returns engine-native arrays
"""

from __future__ import annotations

import abc
from typing import Any, Generic, TypeVar

import numpy as np

from dundergrad import llops

RefType = TypeVar("RefType")
PyArrayRepresentation = int | float | list["PyArrayRepresentation"]


class Engine(abc.ABC, Generic[RefType]):
    """The runtime that executes the ops"""

    @abc.abstractmethod
    def execute(self, op: llops.Op, *args: RefType | Any) -> RefType:
        """Execute the op on the (already shape checked) args"""

    @abc.abstractmethod
    def to_python(self, objref: RefType) -> PyArrayRepresentation:
        """Return a python representation of the obj ref"""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


### Numpy as default engine implementation ###
class NumPyEngine(Engine[np.ndarray]):
    __OPS_MAP__ = {
        llops.Ops.READ: lambda data: np.array(data, dtype=np.float64),
        llops.Ops.NEG: np.negative,
        llops.Ops.ADD: np.add,
        llops.Ops.SUB: np.subtract,
        llops.Ops.MUL: np.multiply,
        llops.Ops.MATMUL: np.matmul,
        llops.Ops.SCALE: lambda arr, scalar: np.multiply(arr, scalar.item()),
        llops.Ops.SUM: lambda arr: np.sum(arr, keepdims=True),
        llops.Ops.FILL: lambda shape, value: np.full(shape.dims, float(np.asarray(value).item())),
    }

    def execute(self, op: llops.Op, *args: np.ndarray | Any) -> np.ndarray:
        out = np.asarray(self.__OPS_MAP__[op](*args), dtype=np.float64)
        out.setflags(write=False)  # NOTE: tensor data is immutable
        return out

    def to_python(self, objref: np.ndarray) -> PyArrayRepresentation:
        return objref.tolist()
