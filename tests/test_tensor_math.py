import numpy as np
import pytest

from dundergrad import autograd, callbacks, config, errors, llops, runtime, tensors


class _Recorder(callbacks.OnTensorInitCallBack):
    def __init__(self, created: list) -> None:
        self.created = created

    def on_tensor_creation(self, tensor: autograd.AutoDiffable) -> None:
        self.created.append(tensor)


PAIRS = [
    ([[1, 2], [3, 4]], [[5, 6], [7, 8]]),
    ([[1.5, -2.5, 3]], [[0.5, 0.5, 0.5]]),
    ([[1], [2], [3]], [[-1], [0], [1]]),
    ([[7]], [[3]]),
]


@pytest.mark.parametrize("arr1, arr2", PAIRS)
def test_add(arr1: llops.MatrixRepr, arr2: llops.MatrixRepr, engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        t = tensors.Tensor(arr1) + tensors.Tensor(arr2)
        assert t.realize() == (np.array(arr1) + np.array(arr2)).tolist()


@pytest.mark.parametrize("arr1, arr2", PAIRS)
def test_sub(arr1: llops.MatrixRepr, arr2: llops.MatrixRepr, engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        t = tensors.Tensor(arr1) - tensors.Tensor(arr2)
        assert t.realize() == (np.array(arr1) - np.array(arr2)).tolist()


def test_add_sub_example(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        a = tensors.Tensor([[1, 2], [3, 4]])
        b = tensors.Tensor([[5, 6], [7, 8]])
        assert (a + b).realize() == [[6, 8], [10, 12]]
        assert (a - b).realize() == [[-4, -4], [-4, -4]]


@pytest.mark.parametrize(
    "arr1, arr2",
    [
        ([[1, 2], [3, 4]], [[5, 6], [7, 8]]),
        ([[1, 2, 3], [4, 5, 6]], [[1, 2], [3, 4], [5, 6]]),
        ([[1, 2, 3]], [[1], [2], [3]]),
        ([[1], [2]], [[3, 4, 5]]),
    ],
)
def test_mul_is_matrix_product(arr1: llops.MatrixRepr, arr2: llops.MatrixRepr, engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        t = tensors.Tensor(arr1) * tensors.Tensor(arr2)
        assert np.allclose(t.realize(), np.array(arr1) @ np.array(arr2))


def test_mul_example(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        c = tensors.Tensor([[1, 2], [3, 4]]) * tensors.Tensor([[5, 6], [7, 8]])
        assert c.realize() == [[19, 22], [43, 50]]
        assert c.op is llops.Ops.MATMUL


@pytest.mark.parametrize("arr1, arr2", [([[1, 2], [3, 4]], [[1, 2]]), ([[1, 2, 3]], [[1, 2, 3]])])
def test_mul_dimension_mismatch(arr1: llops.MatrixRepr, arr2: llops.MatrixRepr, engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        with pytest.raises(errors.DimensionMismatch):
            tensors.Tensor(arr1) * tensors.Tensor(arr2)


@pytest.mark.parametrize("op", [autograd.add, autograd.sub])
def test_elementwise_shape_mismatch(op, engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        created: list = []
        with config.Configuration(_Recorder(created)):
            a, b = tensors.Tensor([[1, 2]]), tensors.Tensor([[1], [2]])
            with pytest.raises(errors.ShapeMismatch):
                op(a, b)
        assert len(created) == 2  # NOTE: only the leaves, no partial result


def test_scalar_tensor_scales(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        a = tensors.Tensor([[1, 2], [3, 4]])
        right = a * tensors.Tensor([[2]])
        left = tensors.Tensor([[3]]) * a
        assert right.realize() == [[2, 4], [6, 8]]
        assert left.realize() == [[3, 6], [9, 12]]
        assert right.op is left.op is llops.Ops.SCALE


def test_raw_numbers_are_wrapped(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        a = tensors.Tensor([[1, 2], [3, 4]])
        assert (a * 2).realize() == [[2, 4], [6, 8]]
        assert (2 * a).realize() == [[2, 4], [6, 8]]
        assert isinstance(2 * a, tensors.Tensor)
        assert (a + [[1, 1], [1, 1]]).realize() == [[2, 3], [4, 5]]
        with pytest.raises(errors.ShapeMismatch):
            a + 1


def test_sum(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        s = tensors.Tensor([[1, 2], [3, 4]]).sum()
        assert s.realize() == [[10]]
        assert s.shape.is_scalar


def test_tensor_constructors(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        assert tensors.Tensor.zeros(2, 3).realize() == [[0, 0, 0]] * 2
        assert tensors.Tensor.ones(1, 2).realize() == [[1, 1]]
        assert tensors.Tensor.scalar(4.5).realize() == [[4.5]]
        assert tensors.Tensor(np.arange(4.0).reshape(2, 2)).realize() == [[0, 1], [2, 3]]
        assert tensors.Tensor([np.array([1.0, 2.0])]).realize() == [[1, 2]]


@pytest.mark.parametrize("data", [[[1, 2], [3]], [], [1, 2], [[[1]]]])
def test_tensor_rejects_non_matrices(data, engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        with pytest.raises(errors.ShapeMismatch):
            tensors.Tensor(data)


def test_tensor_data_is_immutable(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        source = [[1.0, 2.0]]
        t = tensors.Tensor(source)
        source[0][0] = 100.0
        assert t.realize() == [[1.0, 2.0]]
        with pytest.raises(ValueError):
            t.data[0, 0] = 5


def test_provenance(engine: runtime.Engine) -> None:
    with config.Configuration(engine=engine):
        a, b = tensors.Tensor([[1]]), tensors.Tensor([[2]])
        c = a + b
        assert a.is_leaf and a.parents == () and a.op is None
        assert c.parents == (a, b) and c.op is llops.Ops.ADD
        assert c.gradient is None
        assert "ADD" in repr(c)
