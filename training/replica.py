import logging
from typing import Callable

import torch

from models import Network
from utils import ReadWriteLock
from utils.config import ReplicaConfig


class Replica:
    """Private copy of a network that is shared with (and updated by) another thread."""

    # the local version, no need to synchronise it
    network: Network

    def __init__(
        self,
        replica_id: int,
        shared: Network,
        net_lock: ReadWriteLock,
        sync_frequency: int = 1,
    ) -> None:
        assert sync_frequency >= 1, "sync_frequency must be positive"
        self.replica_id = replica_id

        self._shared = shared  # points to shared one, should not be used directly
        self.net_lock = net_lock
        self.sync_frequency = sync_frequency

        self.step_count = 0
        self.sync_count = 0

        self.logger = logging.getLogger(f"replica_{replica_id}")

        self.synchronize()  # assigns self.network

    def synchronize(self) -> None:
        """Replaces the local network with a clone of the shared one.

        The shared network is only read while it is cloned, so holding the read
        lock is enough to keep a writer from updating it mid-copy.
        """
        self.logger.debug(f"synchronising at step {self.step_count}")
        with self.net_lock.read():
            self.network = self._shared.clone()
        self.sync_count += 1

    def step(self) -> bool:
        """Counts one step, synchronising every `sync_frequency` steps.

        Returns:
            bool: whether the local network was synchronised
        """
        self.step_count += 1
        if self.step_count % self.sync_frequency == 0:
            self.synchronize()
            return True
        return False

    @staticmethod
    def publish(
        shared: Network,
        net_lock: ReadWriteLock,
        update: Callable[[Network], None],
    ) -> None:
        """Applies an in-place update to the shared network under the write lock."""
        with net_lock.write(), torch.no_grad():
            update(shared)

    @classmethod
    def from_config(
        cls,
        shared: Network,
        net_lock: ReadWriteLock,
        config: ReplicaConfig,
        first_id: int = 0,
    ) -> list["Replica"]:
        return [
            cls(
                replica_id=first_id + i,
                shared=shared,
                net_lock=net_lock,
                sync_frequency=config.sync_frequency,
            )
            for i in range(config.num_replicas)
        ]
