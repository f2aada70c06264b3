import pathlib
from dataclasses import dataclass, field
from typing import Optional

import yaml
from dacite import Config, from_dict


@dataclass
class PolicyNetConfig:
    """Defines configuration for the policy network"""

    input_size: int
    hidden_size: int
    output_size: int


@dataclass
class ValueNetConfig:
    """Defines configuration for the value network"""

    input_size: int
    hidden_size: int
    use_norm: bool = False


@dataclass
class ReplicaConfig:
    """Defines configuration for replicas synchronising from a shared network"""

    num_replicas: int
    sync_frequency: int


@dataclass
class CloneCheckConfig:
    """Defines configuration for the clone check run"""

    policy_net: PolicyNetConfig
    value_net: ValueNetConfig
    replica: ReplicaConfig = field(
        default_factory=lambda: ReplicaConfig(num_replicas=2, sync_frequency=1)
    )
    device: Optional[str] = None
    seed: int = 0


def load_clone_check_config(config_path: pathlib.Path) -> CloneCheckConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        CloneCheckConfig object
    """
    with config_path.open("r") as f:
        config_d = yaml.safe_load(f)

    return from_dict(
        data_class=CloneCheckConfig,
        data=config_d,
        config=Config(strict=True),
    )
