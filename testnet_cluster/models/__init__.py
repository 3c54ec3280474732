"""Data models for deployment requests and observed cluster state."""

from testnet_cluster.models.request import (
    ClusterRequest,
    ClusterType,
    GenesisFlags,
    GpuMode,
    RuntimeConfig,
    SetupConfig,
    ValidatorType,
)
from testnet_cluster.models.status import ReplicaSetStatus

__all__ = [
    "ClusterRequest",
    "ClusterType",
    "GenesisFlags",
    "GpuMode",
    "ReplicaSetStatus",
    "RuntimeConfig",
    "SetupConfig",
    "ValidatorType",
]
