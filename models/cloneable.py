import copy
import logging
from abc import abstractmethod
from typing import Dict, Optional, TypeVar

import torch
from torch import nn

from utils.errors import StructuralMismatch, TypeMismatch

from .network import Network

T = TypeVar("T", bound="Cloneable")

logger = logging.getLogger("cloneable")

# (error category, attribute holding the name -> member mapping)
_MAPPINGS = (
    ("parameters", "_parameters"),
    ("buffers", "_buffers"),
    ("children", "_modules"),
)


class Cloneable(Network[T]):
    """Gives a module a `clone()` that deep copies it as its own concrete type.

    Subclasses parameterise the mixin with themselves (``class Linear(Cloneable["Linear"])``)
    and implement `reset()`, which must create every parameter, buffer and
    submodule. `clone()` shallow copies the module, empties its parameters,
    buffers and children, calls `reset()` on the copy to rebuild them with
    fresh storage, checks that the rebuilt module has the shape of the
    original and finally copies the original data over, recursing into the
    children through `clone_()`.
    """

    # copies are issued non-blocking; they stay on the source's device, so
    # stream ordering makes them visible to any later use of the clone
    non_blocking: bool = True

    @abstractmethod
    def reset(self) -> None:
        """Initialises all members with reference semantics, most importantly
        parameters, buffers and submodules. Must be called from `__init__`."""
        raise NotImplementedError(f"{type(self).__name__} must implement reset()")

    def clone(self) -> T:
        """Performs a recursive deep copy of the module, such that all parameters,
        buffers and submodules of the clone are different objects from those of
        the original module and share no storage with them.

        Raises:
            StructuralMismatch: if `reset()` does not rebuild the parameters,
                buffers and submodules of the original (same number, same
                names, same tensor shapes)
            TypeMismatch: if a submodule clone is not of the type of the
                submodule it is merged into
        """
        logger.debug(
            f"cloning {type(self).__name__} with {len(self._parameters)} parameters, "
            f"{len(self._buffers)} buffers and {len(self._modules)} children"
        )
        duplicate = _shallow_copy(self)
        for _, attr in _MAPPINGS:
            _set_internal(duplicate, attr, type(getattr(self, attr))())
        _set_internal(duplicate, "_non_persistent_buffers_set", set())

        duplicate.reset()
        _copy_state(duplicate, self, self.non_blocking)
        return duplicate

    def clone_(self, other: nn.Module) -> None:
        # `other` was registered under the same name as `self`, so it should be
        # of the same type, but reset() may have built something else
        if not isinstance(other, Network):
            raise TypeMismatch(expected=type(self), actual=type(other))

        clone = other.clone()
        if not isinstance(clone, type(self)):
            raise TypeMismatch(expected=type(self), actual=type(clone))

        # a subclass of the slot type keeps its own class
        self.__class__ = type(clone)
        state = vars(self)
        state.clear()
        state.update(vars(clone))
        vars(clone).clear()


def _set_internal(module: nn.Module, name: str, value) -> None:
    """Sets an attribute without going through `nn.Module.__setattr__`."""
    vars(module)[name] = value


def _shallow_copy(module: nn.Module) -> nn.Module:
    """Copies the module's attributes; containers are duplicated, their contents
    (tensors and submodules included) are shared with the source."""
    cls = type(module)
    duplicate = cls.__new__(cls)
    for name, value in vars(module).items():
        if isinstance(value, (dict, list, set)):
            value = copy.copy(value)
        _set_internal(duplicate, name, value)
    return duplicate


def _check_counts(duplicate: nn.Module, source: nn.Module) -> None:
    for category, attr in _MAPPINGS:
        expected = len(getattr(source, attr))
        actual = len(getattr(duplicate, attr))
        if expected != actual:
            raise StructuralMismatch(category, expected, actual, type(source))


def _check_names(
    category: str,
    duplicate: Dict[str, Optional[object]],
    source: Dict[str, Optional[object]],
    module_type: type,
) -> None:
    for name, member in source.items():
        if name not in duplicate:
            raise StructuralMismatch(
                category, len(source), len(duplicate), module_type, name, "missing"
            )
        rebuilt = duplicate[name]
        if (member is None) != (rebuilt is None):
            raise StructuralMismatch(
                category, len(source), len(duplicate), module_type, name, "none"
            )
        if (
            isinstance(member, torch.Tensor)
            and isinstance(rebuilt, torch.Tensor)
            and member.shape != rebuilt.shape
        ):
            raise StructuralMismatch(
                category, member.shape, rebuilt.shape, module_type, name, "shape"
            )


def _copy_tensors(
    duplicate: Dict[str, Optional[torch.Tensor]],
    source: Dict[str, Optional[torch.Tensor]],
    non_blocking: bool,
) -> None:
    for name, tensor in source.items():
        if tensor is None:
            continue
        target = duplicate[name]
        if target.device != tensor.device or target.dtype != tensor.dtype:
            target.data = torch.empty_like(tensor.data)
        target.data.copy_(tensor.data, non_blocking=non_blocking)
        if isinstance(target, nn.Parameter):
            target.requires_grad_(tensor.requires_grad)


def _copy_state(duplicate: nn.Module, source: nn.Module, non_blocking: bool) -> None:
    """Copies parameter and buffer data of `source` into the freshly rebuilt
    `duplicate`, then clones the children of `source` into those of `duplicate`."""
    module_type = type(source)
    _check_counts(duplicate, source)

    _check_names("parameters", duplicate._parameters, source._parameters, module_type)
    _copy_tensors(duplicate._parameters, source._parameters, non_blocking)

    _check_names("buffers", duplicate._buffers, source._buffers, module_type)
    _copy_tensors(duplicate._buffers, source._buffers, non_blocking)

    _check_names("children", duplicate._modules, source._modules, module_type)
    for name, child in source._modules.items():
        if child is None:
            continue
        target = duplicate._modules[name]
        if isinstance(target, Network):
            target.clone_(child)
        else:
            _merge_plain_child(target, child, non_blocking)


def _merge_plain_child(target: nn.Module, source: nn.Module, non_blocking: bool):
    """Plain torch modules have no `clone_()`; the parent's `reset()` already
    built `target` with fresh storage, so only its data has to be copied."""
    if type(target) is not type(source):
        raise TypeMismatch(expected=type(target), actual=type(source))
    _copy_state(target, source, non_blocking)
