from .cloneable import Cloneable
from .linear import Linear
from .mlp import MLP
from .network import Network
from .norm import RunningNorm
from .policy_network import PolicyNetwork
from .value_network import ValueNetwork

__all__ = [
    "Cloneable",
    "Linear",
    "MLP",
    "Network",
    "PolicyNetwork",
    "RunningNorm",
    "ValueNetwork",
]
