import torch

from .config import CloneCheckConfig, load_clone_check_config
from .errors import CloneError, StructuralMismatch, TypeMismatch
from .mrsw import ReadWriteLock
from .structure import ModuleShape, module_shape, shared_storages, tensors_equal


def get_device() -> str:
    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():
        return "mps"
    return "cpu"


__all__ = [
    "CloneCheckConfig",
    "CloneError",
    "get_device",
    "load_clone_check_config",
    "module_shape",
    "ModuleShape",
    "ReadWriteLock",
    "shared_storages",
    "StructuralMismatch",
    "tensors_equal",
    "TypeMismatch",
]
