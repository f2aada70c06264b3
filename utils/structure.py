from typing import Dict, Iterator, List, NamedTuple, Tuple

import torch
from torch import nn


class ModuleShape(NamedTuple):
    """Names of a module's parameters, buffers and children, children recursively"""

    type_name: str
    parameters: Tuple[str, ...]
    buffers: Tuple[str, ...]
    children: Dict[str, "ModuleShape"]


def module_shape(module: nn.Module) -> ModuleShape:
    return ModuleShape(
        type_name=type(module).__name__,
        parameters=tuple(module._parameters),
        buffers=tuple(module._buffers),
        children={
            name: module_shape(child)
            for name, child in module._modules.items()
            if child is not None
        },
    )


def _named_tensors(module: nn.Module) -> Iterator[Tuple[str, torch.Tensor]]:
    yield from module.named_parameters()
    yield from module.named_buffers()


def _storage_ptr(tensor: torch.Tensor) -> int:
    return tensor.untyped_storage().data_ptr()


def shared_storages(a: nn.Module, b: nn.Module) -> List[str]:
    """Returns the qualified names of tensors in `b` sharing storage with a tensor of `a`."""
    pointers = {_storage_ptr(t) for _, t in _named_tensors(a) if t.numel() > 0}
    return [
        name
        for name, tensor in _named_tensors(b)
        if tensor.numel() > 0 and _storage_ptr(tensor) in pointers
    ]


def tensors_equal(a: nn.Module, b: nn.Module) -> bool:
    """Whether both modules hold equal parameters and buffers under the same names."""
    a_tensors = dict(_named_tensors(a))
    b_tensors = dict(_named_tensors(b))
    if a_tensors.keys() != b_tensors.keys():
        return False
    for name, tensor in a_tensors.items():
        other = b_tensors[name].detach().to(tensor.device)
        if tensor.shape != other.shape or not torch.equal(tensor.detach(), other):
            return False
    return True
