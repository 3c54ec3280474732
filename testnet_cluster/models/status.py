"""Observed state of deployed workloads."""

from pydantic import BaseModel


class ReplicaSetStatus(BaseModel):
    """Replica counts reported by the cluster for one replica set."""

    name: str
    desired: int
    ready: int

    @property
    def is_ready(self) -> bool:
        """A replica set is ready once every desired replica reports ready."""
        return self.ready == self.desired

    def __str__(self) -> str:
        return f"{self.name} ({self.ready}/{self.desired} ready)"
