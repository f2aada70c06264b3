from dataclasses import asdict

import torch
from torch import nn

from utils import get_device
from utils.config import PolicyNetConfig

from .cloneable import Cloneable
from .mlp import MLP


class PolicyNetwork(Cloneable["PolicyNetwork"]):
    def __init__(self, output_size: int, input_size=480, hidden_size=2048):
        super().__init__()

        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size

        self.reset()

        self.to(get_device())

    def reset(self) -> None:
        # 4 layer multilayer perceptron, with gelu activation and softmax
        self.mlp = MLP(self.input_size, self.hidden_size, self.output_size, 4)
        self.softmax = nn.Softmax(dim=-1)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        x = self.mlp(x)
        return self.softmax(x)

    def get_init_config(self) -> dict[str, int]:
        return dict(
            input_size=self.input_size,
            hidden_size=self.hidden_size,
            output_size=self.output_size,
        )

    @classmethod
    def from_dataclass(cls, config: PolicyNetConfig) -> "PolicyNetwork":
        """Creates policy network from config dataclass"""
        return cls(**asdict(config))
