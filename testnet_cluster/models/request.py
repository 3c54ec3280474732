"""Data models for a test cluster deployment request."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ValidatorType(str, Enum):
    """Role a validator plays in the topology."""

    BOOTSTRAP = "bootstrap"
    VALIDATOR = "validator"


class ClusterType(str, Enum):
    """Feature set enabled for the cluster at genesis."""

    DEVELOPMENT = "development"
    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET_BETA = "mainnet-beta"


class GpuMode(str, Enum):
    """GPU mode to launch validators with. Not wired into the workloads yet."""

    ON = "on"
    OFF = "off"
    AUTO = "auto"
    CUDA = "cuda"


class GenesisFlags(BaseModel):
    """Options forwarded to solana-genesis."""

    model_config = ConfigDict(frozen=True)

    hashes_per_tick: str = "auto"
    slots_per_epoch: int | None = None
    target_lamports_per_signature: int | None = None
    faucet_lamports: int | None = None
    enable_warmup_epochs: bool = True
    max_genesis_archive_unpacked_size: int | None = None
    cluster_type: ClusterType = ClusterType.DEVELOPMENT
    bootstrap_validator_lamports: int | None = None
    bootstrap_validator_stake_lamports: int | None = None

    @field_validator("hashes_per_tick")
    @classmethod
    def validate_hashes_per_tick(cls, v: str) -> str:
        """Validate hashes_per_tick is NUM_HASHES, sleep or auto."""
        if v in ("auto", "sleep"):
            return v
        if not re.fullmatch(r"[0-9]+", v) or int(v) <= 0:
            raise ValueError(f"hashes_per_tick must be a positive integer, 'sleep' or 'auto', got '{v}'")
        return v

    @field_validator(
        "slots_per_epoch",
        "target_lamports_per_signature",
        "faucet_lamports",
        "max_genesis_archive_unpacked_size",
        "bootstrap_validator_lamports",
        "bootstrap_validator_stake_lamports",
    )
    @classmethod
    def validate_positive(cls, v: int | None) -> int | None:
        """Validate optional amounts are positive when given."""
        if v is not None and v <= 0:
            raise ValueError(f"value must be greater than 0, got {v}")
        return v


class RuntimeConfig(BaseModel):
    """Flags handed to the validator processes at start-up."""

    model_config = ConfigDict(frozen=True)

    enable_udp: bool = False
    disable_quic: bool = False
    gpu_mode: GpuMode = GpuMode.AUTO
    internal_node_sol: float = 500.0
    internal_node_stake_sol: float = 10.0

    @field_validator("internal_node_sol", "internal_node_stake_sol")
    @classmethod
    def validate_sol(cls, v: float) -> float:
        """Validate SOL amounts are not negative."""
        if v < 0:
            raise ValueError(f"SOL amount cannot be negative, got {v}")
        return v


class SetupConfig(BaseModel):
    """Where to deploy and how many standard validators."""

    model_config = ConfigDict(frozen=True)

    namespace: str = "default"
    num_validators: int = 1

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Validate namespace is an RFC 1123 label."""
        if not re.fullmatch(r"[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?", v):
            raise ValueError(
                f"namespace '{v}' must be a lowercase RFC 1123 label (e.g., 'default', 'testnet-1')"
            )
        return v

    @field_validator("num_validators")
    @classmethod
    def validate_num_validators(cls, v: int) -> int:
        """Validate at least one standard validator is requested."""
        if v <= 0:
            raise ValueError("num_validators should be greater than 0")
        return v


class ClusterRequest(BaseModel):
    """Complete, immutable description of a test cluster to stand up."""

    model_config = ConfigDict(frozen=True)

    setup: SetupConfig = Field(default_factory=SetupConfig)
    genesis: GenesisFlags = Field(default_factory=GenesisFlags)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    bootstrap_container: str = "bootstrap-container"
    bootstrap_image: str
    validator_container: str = "validator-container"
    validator_image: str

    @field_validator("bootstrap_image", "validator_image", "bootstrap_container", "validator_container")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate container names and images are not empty."""
        if not v:
            raise ValueError("container names and images cannot be empty")
        return v

    def save(self, path: str) -> None:
        """Save the request to a YAML file."""
        import yaml

        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)

    @classmethod
    def load(cls, path: str) -> "ClusterRequest":
        """Load a request from a YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f)
        return cls(**(data or {}))
