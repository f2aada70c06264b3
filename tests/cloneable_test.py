import logging
from unittest.mock import patch

import pytest
import torch
from torch import nn

from models import Cloneable, Linear, RunningNorm
from utils import StructuralMismatch, TypeMismatch, module_shape, shared_storages


class Container(Cloneable["Container"]):
    def __init__(self):
        super().__init__()
        self.reset()

    def reset(self) -> None:
        self.inner = Linear(3, 2)

    def forward(self, x):
        return self.inner(x)


class Empty(Cloneable["Empty"]):
    def __init__(self):
        super().__init__()
        self.reset()

    def reset(self) -> None:
        pass


class WithPlainChild(Cloneable["WithPlainChild"]):
    def __init__(self):
        super().__init__()
        self.reset()

    def reset(self) -> None:
        self.proj = nn.Linear(3, 2)
        self.activ = nn.ReLU()


class ParamInConstructor(Cloneable["ParamInConstructor"]):
    """Registers `b` in the constructor, so reset() only rebuilds `a`"""

    def __init__(self):
        super().__init__()
        self.reset()
        self.b = nn.Parameter(torch.zeros(2))

    def reset(self) -> None:
        self.a = nn.Parameter(torch.zeros(2))


class BufferInConstructor(Cloneable["BufferInConstructor"]):
    def __init__(self):
        super().__init__()
        self.reset()
        self.register_buffer("extra", torch.zeros(2))

    def reset(self) -> None:
        self.register_buffer("steps", torch.zeros(1))


class ChildInConstructor(Cloneable["ChildInConstructor"]):
    def __init__(self):
        super().__init__()
        self.reset()
        self.late = Linear(2, 2)

    def reset(self) -> None:
        self.early = Linear(2, 2)


class RenamingReset(Cloneable["RenamingReset"]):
    """reset() registers the same number of parameters under another name once cloned"""

    def __init__(self, name="a"):
        super().__init__()
        self.param_name = name
        self.reset()
        self.param_name = "z"

    def reset(self) -> None:
        self.register_parameter(self.param_name, nn.Parameter(torch.zeros(2)))


@pytest.fixture
def linear():
    torch.manual_seed(0)
    return Linear(4, 3)


def test_linear_clone_copies_weight_and_bias(linear):
    clone = linear.clone()

    assert type(clone) is Linear
    assert clone is not linear
    assert list(clone._parameters) == ["weight", "bias"]
    assert torch.equal(clone.weight, linear.weight)
    assert torch.equal(clone.bias, linear.bias)
    assert clone.weight is not linear.weight
    assert clone.bias is not linear.bias
    assert shared_storages(linear, clone) == []


def test_mutating_original_leaves_clone_unchanged(linear):
    clone = linear.clone()
    before = clone.weight.detach().clone()

    with torch.no_grad():
        linear.weight.add_(1.0)

    assert torch.equal(clone.weight, before)
    assert not torch.equal(clone.weight, linear.weight)


def test_clone_does_not_touch_source(linear):
    weight, bias = linear.weight, linear.bias
    before = weight.detach().clone()

    linear.clone()

    assert linear.weight is weight
    assert linear.bias is bias
    assert list(linear._parameters) == ["weight", "bias"]
    assert torch.equal(linear.weight, before)


def test_clone_without_bias_keeps_none():
    linear = Linear(2, 2, bias=False)
    clone = linear.clone()

    assert "bias" in clone._parameters
    assert clone.bias is None
    assert torch.equal(clone.weight, linear.weight)


def test_clone_through_base_reference(linear):
    module: nn.Module = linear
    clone = module.clone()
    assert isinstance(clone, Linear)
    assert clone.in_features == 4 and clone.out_features == 3


def test_container_clone_has_independent_child():
    container = Container()
    clone = container.clone()

    assert type(clone) is Container
    assert list(clone._modules) == ["inner"]
    assert type(clone.inner) is Linear
    assert clone.inner is not container.inner
    assert torch.equal(clone.inner.weight, container.inner.weight)

    with torch.no_grad():
        container.inner.bias.zero_()
        container.inner.bias.add_(5.0)
    assert not torch.equal(clone.inner.bias, container.inner.bias)


def test_clone_output_matches_original():
    container = Container()
    x = torch.randn(5, 3)
    assert torch.allclose(container(x), container.clone()(x))


def test_empty_module_clones_trivially():
    empty = Empty()
    clone = empty.clone()
    assert type(clone) is Empty
    assert clone is not empty
    assert len(clone._parameters) == len(clone._buffers) == len(clone._modules) == 0


def test_clone_of_clone_has_same_shape():
    container = Container()
    assert module_shape(container.clone().clone()) == module_shape(container)
    assert module_shape(container.clone()) == module_shape(container)


def test_buffers_are_copied():
    norm = RunningNorm(3)
    norm(torch.randn(8, 3))
    clone = norm.clone()

    assert list(clone._buffers) == ["running_mean", "running_var", "num_batches_tracked"]
    assert torch.equal(clone.running_mean, norm.running_mean)
    assert torch.equal(clone.running_var, norm.running_var)
    assert clone.num_batches_tracked.item() == 1
    assert clone.num_batches_tracked.dtype == torch.long

    norm.running_mean.fill_(100.0)
    assert not torch.equal(clone.running_mean, norm.running_mean)


def test_plain_torch_children_are_copied():
    module = WithPlainChild()
    clone = module.clone()

    assert type(clone.proj) is nn.Linear
    assert type(clone.activ) is nn.ReLU
    assert clone.proj is not module.proj
    assert torch.equal(clone.proj.weight, module.proj.weight)
    assert shared_storages(module, clone) == []


def test_dtype_of_source_is_kept(linear):
    linear = linear.double()
    clone = linear.clone()
    assert clone.weight.dtype == torch.float64
    assert torch.equal(clone.weight, linear.weight)


def test_requires_grad_and_training_flag_are_kept():
    container = Container()
    container.inner.weight.requires_grad_(False)
    container.eval()

    clone = container.clone()

    assert not clone.inner.weight.requires_grad
    assert clone.inner.bias.requires_grad
    assert not clone.training
    assert not clone.inner.training


def test_clone_into_existing_module(linear):
    target = Linear(4, 3)
    target.clone_(linear)

    assert torch.equal(target.weight, linear.weight)
    assert target.weight is not linear.weight
    assert shared_storages(linear, target) == []


def test_missing_parameter_raises_structural_mismatch():
    with patch("models.cloneable._copy_tensors") as copy_tensors:
        with pytest.raises(StructuralMismatch, match="parameters") as excinfo:
            ParamInConstructor().clone()

    copy_tensors.assert_not_called()
    assert excinfo.value.category == "parameters"
    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 1
    assert "register_parameter() inside reset()" in str(excinfo.value)


def test_missing_buffer_raises_structural_mismatch():
    with pytest.raises(StructuralMismatch, match="buffers") as excinfo:
        BufferInConstructor().clone()
    assert excinfo.value.category == "buffers"
    assert "register_buffer()" in str(excinfo.value)


def test_missing_child_raises_structural_mismatch():
    with pytest.raises(StructuralMismatch, match="children") as excinfo:
        ChildInConstructor().clone()
    assert excinfo.value.category == "children"
    assert "register_module()" in str(excinfo.value)


def test_renamed_parameter_raises_structural_mismatch():
    with pytest.raises(StructuralMismatch) as excinfo:
        RenamingReset().clone()
    assert excinfo.value.category == "parameters"
    assert excinfo.value.missing == "a"


def test_child_of_different_type_raises_type_mismatch():
    container = Container()
    container.inner = RunningNorm(2)  # slot reset() fills with a Linear

    with pytest.raises(TypeMismatch, match="different type") as excinfo:
        container.clone()
    assert excinfo.value.expected is Linear
    assert excinfo.value.actual is RunningNorm


def test_plain_child_in_cloneable_slot_raises_type_mismatch():
    container = Container()
    container.inner = nn.Linear(3, 2)

    with pytest.raises(TypeMismatch):
        container.clone()


def test_plain_child_of_different_type_raises_type_mismatch():
    module = WithPlainChild()
    module.activ = nn.GELU()

    with pytest.raises(TypeMismatch):
        module.clone()


def test_clone_logs_at_debug(linear, caplog):
    with caplog.at_level(logging.DEBUG, logger="cloneable"):
        linear.clone()
    assert "cloning Linear" in caplog.text


class ScaledLinear(Linear):
    def __init__(self, in_features: int, out_features: int, scale: float = 2.0):
        super().__init__(in_features, out_features)
        self.scale = scale

    def forward(self, x):
        return super().forward(x) * self.scale


class BlockingLinear(Linear):
    non_blocking = False


def test_subclass_in_child_slot_keeps_its_type():
    container = Container()
    container.inner = ScaledLinear(3, 2, scale=3.0)  # slot reset() fills with a Linear

    clone = container.clone()

    assert type(clone.inner) is ScaledLinear
    assert clone.inner.scale == 3.0
    assert clone.inner is not container.inner
    assert shared_storages(container, clone) == []
    x = torch.randn(4, 3)
    assert torch.allclose(clone(x), container(x))


@pytest.fixture
def copy_calls(monkeypatch):
    calls = []
    original_copy = torch.Tensor.copy_

    def recording_copy(self, src, non_blocking=False):
        calls.append(non_blocking)
        return original_copy(self, src, non_blocking=non_blocking)

    monkeypatch.setattr(torch.Tensor, "copy_", recording_copy)
    return calls


def test_data_is_copied_non_blocking(linear, copy_calls):
    clone = linear.clone()

    assert copy_calls == [True, True]
    assert torch.equal(clone.weight, linear.weight)


def test_non_blocking_can_be_turned_off(copy_calls):
    BlockingLinear(4, 3).clone()
    assert copy_calls == [False, False]


def test_none_mismatch_is_reported_by_name():
    linear = Linear(2, 2)
    linear.use_bias = False  # reset() now registers bias as None

    with pytest.raises(StructuralMismatch, match="is None in one module") as excinfo:
        linear.clone()
    assert excinfo.value.reason == "none"
    assert excinfo.value.name == "bias"
    assert excinfo.value.missing is None
    assert "no entry named" not in str(excinfo.value)


def test_shape_mismatch_raises_structural_mismatch():
    linear = Linear(2, 3)
    linear.out_features = 4  # reset() now builds a (4, 2) weight

    with patch("models.cloneable._copy_tensors") as copy_tensors:
        with pytest.raises(StructuralMismatch, match="shape") as excinfo:
            linear.clone()

    copy_tensors.assert_not_called()
    assert excinfo.value.reason == "shape"
    assert excinfo.value.name == "weight"
    assert tuple(excinfo.value.expected) == (3, 2)
    assert tuple(excinfo.value.actual) == (4, 2)
