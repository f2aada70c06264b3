from .replica import Replica

__all__ = ["Replica"]
