"""Pytest configuration and shared fixtures."""

import json
import os
from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

from testnet_cluster.cluster_client import describe
from testnet_cluster.exceptions import ClusterApiError, ExternalProcessError
from testnet_cluster.models.request import ClusterRequest
from testnet_cluster.models.status import ReplicaSetStatus
from testnet_cluster.settings import Settings

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


class FakeToolchain:
    """In-process stand-in for solana-keygen and solana-genesis."""

    def __init__(self, fail_on_keypair: str | None = None, fail_genesis: bool = False):
        self.fail_on_keypair = fail_on_keypair
        self.fail_genesis = fail_genesis
        self.keypairs: list[Path] = []
        self.genesis_calls: list[list[str]] = []

    def generate_keypair(self, output_path: Path) -> None:
        if self.fail_on_keypair and output_path.name == self.fail_on_keypair:
            raise ExternalProcessError(f"Failed to create new keypair {output_path.name}", "keygen exploded")
        output_path.write_text(json.dumps(list(range(len(self.keypairs), len(self.keypairs) + 64))))
        self.keypairs.append(output_path)

    def build_genesis(self, args: list[str]) -> None:
        self.genesis_calls.append(list(args))
        if self.fail_genesis:
            raise ExternalProcessError("Failed to create genesis", "bad genesis")
        ledger = Path(args[args.index("--ledger") + 1])
        (ledger / "genesis.tar.bz2").write_bytes(b"BZh91AY&SY-genesis")


class RecordingCluster:
    """Cluster client that records every call in order."""

    def __init__(
        self,
        namespace: str = "default",
        exists: bool = True,
        statuses: list[tuple[int, int]] | None = None,
        fail_deploy: str | None = None,
        fail_status: bool = False,
    ):
        self.namespace = namespace
        self.exists = exists
        self.statuses = list(statuses or [(1, 1)])
        self.fail_deploy = fail_deploy
        self.fail_status = fail_status
        self.calls: list[tuple] = []
        self.deployed: list = []

    def namespace_exists(self, name: str | None = None) -> bool:
        self.calls.append(("namespace_exists", name))
        return self.exists

    def deploy(self, resource):
        self.calls.append(("deploy", describe(resource)))
        if self.fail_deploy == describe(resource):
            raise ClusterApiError(f"Failed to deploy {describe(resource)}", status=500)
        self.deployed.append(resource)
        return resource

    def get_replica_set_status(self, name: str) -> ReplicaSetStatus:
        self.calls.append(("status", name))
        if self.fail_status:
            raise ClusterApiError(f"Failed to read status of replica set {name}", status=500)
        desired, ready = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return ReplicaSetStatus(name=name, desired=desired, ready=ready)

    def delete(self, resource) -> None:
        self.calls.append(("delete", describe(resource)))

    def deploy_calls(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "deploy"]


@pytest.fixture
def testnet_settings(tmp_path):
    """Settings rooted in a temporary directory."""
    return Settings(root_dir=tmp_path)


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def toolchain_factory():
    return FakeToolchain


@pytest.fixture
def cluster_factory():
    return RecordingCluster


@pytest.fixture
def cluster_request():
    """Two-validator request with defaults everywhere else."""
    return ClusterRequest(
        setup={"namespace": "default", "num_validators": 2},
        bootstrap_image="solana/bootstrap:test",
        validator_image="solana/validator:test",
    )


@pytest.fixture
def sample_request_data():
    """Request file contents as a user would write them."""
    return {
        "setup": {"namespace": "testnet", "num_validators": 3},
        "genesis": {"hashes_per_tick": "sleep", "slots_per_epoch": 150, "cluster_type": "devnet"},
        "runtime": {"enable_udp": True, "gpu_mode": "off"},
        "bootstrap_image": "solana/bootstrap:v1.17",
        "validator_image": "solana/validator:v1.17",
    }
