from abc import abstractmethod
from typing import Generic, TypeVar

from torch import nn

T = TypeVar("T", bound="Network")


class Network(nn.Module, Generic[T]):
    """Abstract class that defines a clone interface for deep copying neural network models."""

    @abstractmethod
    def clone(self) -> "Network":
        """Creates a deep copy of the model with the same architecture and parameters.

        Returns:
            Network: A deep copy of the model, sharing no storage with it
        """
        pass

    @abstractmethod
    def clone_(self, other: nn.Module) -> None:
        """Clones `other` and moves the result into this module.

        Only meant to be called by a parent cloning the child registered
        under the same name as this module.
        """
        pass
