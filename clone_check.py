import logging
import pathlib
import threading
from typing import Optional

import click
import torch

from models import Network, PolicyNetwork, ValueNetwork
from training import Replica
from utils import (
    CloneError,
    ReadWriteLock,
    get_device,
    load_clone_check_config,
    module_shape,
    shared_storages,
    tensors_equal,
)
from utils.config import ReplicaConfig

logging.basicConfig(
    level=logging.INFO,
    format="[%(levelname)-7s @ %(name)-7s] %(asctime)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger("clone_check")


def check_clone(name: str, network: Network) -> list[str]:
    """Clones `network` and returns the problems found with the clone."""
    problems = []
    clone = network.clone()

    if type(clone) is not type(network):
        problems.append(
            f"{name}: clone is a {type(clone).__name__}, "
            f"expected {type(network).__name__}"
        )
    if module_shape(clone) != module_shape(network):
        problems.append(f"{name}: clone does not have the shape of the original")
    if not tensors_equal(network, clone):
        problems.append(f"{name}: clone does not hold the original's data")
    shared = shared_storages(network, clone)
    if shared:
        problems.append(f"{name}: clone shares storage for {', '.join(shared)}")

    # mutating the original must not be visible through the clone
    before = [p.detach().clone() for p in clone.parameters()]
    saved = [p.detach().clone() for p in network.parameters()]
    with torch.no_grad():
        for p in network.parameters():
            p.add_(1.0)
    if not all(torch.equal(b, p) for b, p in zip(before, clone.parameters())):
        problems.append(f"{name}: clone follows updates of the original")
    with torch.no_grad():
        for p, original in zip(network.parameters(), saved):
            p.copy_(original)

    logger.info(
        f"{name}: cloned {sum(1 for _ in clone.parameters())} parameters and "
        f"{sum(1 for _ in clone.buffers())} buffers"
    )
    return problems


def halve_parameters(network: Network) -> None:
    for p in network.parameters():
        p.mul_(0.5)


def check_replicas(network: Network, config: ReplicaConfig, rounds: int) -> list[str]:
    """Updates `network` from this thread while replicas synchronise from others."""
    problems = []
    lock = ReadWriteLock()
    replicas = Replica.from_config(network, lock, config)

    def run(replica: Replica):
        for _ in range(rounds):
            replica.step()

    threads = [
        threading.Thread(target=run, args=(r,), name=f"replica_{r.replica_id}")
        for r in replicas
    ]
    for thread in threads:
        thread.start()
    for _ in range(rounds):
        Replica.publish(network, lock, halve_parameters)
    for thread in threads:
        thread.join()

    for replica in replicas:
        replica.synchronize()
        if not tensors_equal(network, replica.network):
            problems.append(f"replica_{replica.replica_id}: out of sync after final sync")
        if shared_storages(network, replica.network):
            problems.append(f"replica_{replica.replica_id}: shares storage with source")
    logger.info(f"{config.num_replicas} replicas ran {rounds} rounds")
    return problems


@click.command()
@click.option(
    "-c",
    "--config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=pathlib.Path),
    help="Path to config yaml file",
)
@click.option("--rounds", default=5, show_default=True, help="Replica sync rounds")
def clone_check(config_path: pathlib.Path, rounds: int):
    """Builds the configured networks and checks that they clone correctly."""
    conf = load_clone_check_config(config_path)
    torch.manual_seed(conf.seed)

    device: Optional[str] = conf.device or get_device()
    logger.info(f"running on {device}")

    networks: dict[str, Network] = {
        "policy_net": PolicyNetwork.from_dataclass(conf.policy_net).to(device),
        "value_net": ValueNetwork.from_dataclass(conf.value_net).to(device),
    }

    problems = []
    try:
        for name, network in networks.items():
            problems.extend(check_clone(name, network))
        problems.extend(
            check_replicas(networks["policy_net"], conf.replica, rounds)
        )
    except CloneError as e:
        raise click.ClickException(f"clone failed: {e}") from e

    for problem in problems:
        logger.error(problem)
    if problems:
        raise click.ClickException(f"{len(problems)} clone check(s) failed")

    logger.info("all clone checks passed!")


if __name__ == "__main__":
    clone_check()
