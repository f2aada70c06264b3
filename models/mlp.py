from typing import Callable

import torch
from torch import nn

from .cloneable import Cloneable
from .linear import Linear
from .norm import RunningNorm

ModuleFactory = Callable[[], nn.Module]


class MLP(Cloneable["MLP"]):
    """Multilayer perceptron"""

    def __init__(
        self,
        input_size: int,
        hidden_size: int,
        output_size: int,
        num_layers: int,
        *,
        activation_factory: ModuleFactory = nn.GELU,
        use_norm: bool = False,
        dropout_rate: float = 0.0,
    ):
        super().__init__()
        assert num_layers >= 2

        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size
        self.num_layers = num_layers
        self.activation_factory = activation_factory
        self.use_norm = use_norm
        self.dropout_rate = dropout_rate

        self.reset()

    def _add_hidden(self, suffix: str, fc: Linear) -> None:
        self.register_module(f"fc_{suffix}", fc)
        if self.use_norm:
            self.register_module(f"norm_{suffix}", RunningNorm(self.hidden_size))
        self.register_module(f"activ_{suffix}", self.activation_factory())
        if self.dropout_rate > 0:
            self.register_module(f"dropout_{suffix}", nn.Dropout(self.dropout_rate))

    def reset(self) -> None:
        self._add_hidden("in", Linear(self.input_size, self.hidden_size))
        for i in range(2, self.num_layers):
            self._add_hidden(str(i), Linear(self.hidden_size, self.hidden_size))
        self.register_module("fc_out", Linear(self.hidden_size, self.output_size))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        for layer in self.children():
            x = layer(x)
        return x
