from dataclasses import asdict

import torch

from utils import get_device
from utils.config import ValueNetConfig

from .cloneable import Cloneable
from .mlp import MLP


class ValueNetwork(Cloneable["ValueNetwork"]):
    def __init__(self, input_size=636, hidden_size=2048, use_norm=False):
        super().__init__()

        self.input_size = input_size
        self.hidden_size = hidden_size
        self.use_norm = use_norm

        self.reset()

        self.to(get_device())

    def reset(self) -> None:
        # 4 layer multilayer perceptron, output size of 1
        self.mlp = MLP(self.input_size, self.hidden_size, 1, 4, use_norm=self.use_norm)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.mlp(x).squeeze(-1)

    def get_init_config(self) -> dict:
        return dict(
            input_size=self.input_size,
            hidden_size=self.hidden_size,
            use_norm=self.use_norm,
        )

    @classmethod
    def from_dataclass(cls, config: ValueNetConfig) -> "ValueNetwork":
        """Creates value network from config dataclass"""
        return cls(**asdict(config))
