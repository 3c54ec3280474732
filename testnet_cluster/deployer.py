"""Deployment sequencing for a bootstrap validator plus N standard validators.

A run moves strictly forward through ``DeploymentStage``. The bootstrap
validator is deployed and waited on before any standard validator is
touched; standard validators are deployed in index order without waiting.
The first error ends the run. Resources already deployed stay in the cluster
unless teardown on failure was requested, in which case an interrupted run
is torn down as well.
"""

import time
from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

from testnet_cluster import resources
from testnet_cluster.cluster_client import ClusterClient, Resource, describe
from testnet_cluster.exceptions import NamespaceNotFoundError, ReadinessTimeoutError
from testnet_cluster.genesis import Genesis
from testnet_cluster.logging_config import get_logger
from testnet_cluster.models.request import ClusterRequest, GpuMode

logger = get_logger(__name__)

BOOTSTRAP_VALIDATOR_REPLICAS = 1
VALIDATOR_REPLICAS = 1


class DeploymentStage(str, Enum):
    """Stages of a deployment run, in the only order they can occur."""

    INIT = "init"
    NAMESPACE_VERIFIED = "namespace-verified"
    GENESIS_READY = "genesis-ready"
    CONFIG_MAP_DEPLOYED = "config-map-deployed"
    BOOTSTRAP_SECRET_DEPLOYED = "bootstrap-secret-deployed"
    BOOTSTRAP_REPLICA_SET_DEPLOYED = "bootstrap-replica-set-deployed"
    BOOTSTRAP_SERVICE_DEPLOYED = "bootstrap-service-deployed"
    BOOTSTRAP_POLLING = "bootstrap-polling"
    BOOTSTRAP_READY = "bootstrap-ready"
    VALIDATOR_LOOP = "validator-loop"
    DONE = "done"


STAGE_ORDER = list(DeploymentStage)


class ReadinessPolicy(BaseModel):
    """How to wait for the bootstrap replica set.

    The default polls every second and never gives up. Setting ``timeout``
    bounds the wait; ``backoff`` > 1 stretches the interval after every
    unready poll, capped at ``max_interval``.
    """

    model_config = ConfigDict(frozen=True)

    interval: float = 1.0
    backoff: float = 1.0
    max_interval: float = 30.0
    timeout: float | None = None

    @field_validator("interval", "max_interval")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll interval must be greater than 0")
        return v

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 1:
            raise ValueError("backoff factor cannot be below 1")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout must be greater than 0")
        return v

    def next_interval(self, interval: float) -> float:
        return min(interval * self.backoff, self.max_interval)


class DeploymentLedger:
    """Resources deployed during a run, in creation order."""

    def __init__(self):
        self.entries: list[Resource] = []

    def record(self, resource: Resource) -> None:
        self.entries.append(resource)

    def names(self) -> list[str]:
        return [describe(resource) for resource in self.entries]

    def teardown(self, cluster: ClusterClient) -> list[str]:
        """Delete recorded resources newest first.

        Every entry is attempted even if an earlier delete fails.

        Returns:
            Labels of the resources that could not be deleted
        """
        failed = []
        for resource in reversed(self.entries):
            try:
                cluster.delete(resource)
            except Exception as e:
                logger.error(f"Failed to delete {describe(resource)} during teardown: {e}")
                failed.append(describe(resource))
        self.entries = [r for r in self.entries if describe(r) in failed]
        return failed

    def __len__(self) -> int:
        return len(self.entries)


class ClusterDeployer:
    """Stands up a bootstrap validator and N standard validators."""

    def __init__(
        self,
        request: ClusterRequest,
        cluster: ClusterClient,
        genesis: Genesis,
        policy: ReadinessPolicy | None = None,
        teardown_on_failure: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.request = request
        self.cluster = cluster
        self.genesis = genesis
        self.policy = policy or ReadinessPolicy()
        self.teardown_on_failure = teardown_on_failure
        self.ledger = DeploymentLedger()
        self.stage = DeploymentStage.INIT
        self._sleep = sleep
        self._clock = clock

    @property
    def namespace(self) -> str:
        return self.request.setup.namespace

    def _advance(self, stage: DeploymentStage) -> None:
        if STAGE_ORDER.index(stage) < STAGE_ORDER.index(self.stage):
            raise RuntimeError(f"Cannot move from {self.stage.value} back to {stage.value}")
        logger.debug(f"Stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def _deploy(self, resource: Resource) -> Resource:
        deployed = self.cluster.deploy(resource)
        self.ledger.record(resource)
        return deployed

    def run(self) -> None:
        """Run the full deployment.

        Raises:
            NamespaceNotFoundError: The target namespace does not exist
            ExternalProcessError: Key or genesis generation failed
            ClusterApiError: Any cluster API call failed
            ReadinessTimeoutError: The bootstrap validator was not ready in time
        """
        try:
            self._run()
        except (Exception, KeyboardInterrupt):
            if self.teardown_on_failure and len(self.ledger):
                logger.warning(f"Deployment failed, tearing down {len(self.ledger)} resource(s)")
                failed = self.ledger.teardown(self.cluster)
                if failed:
                    logger.error(f"Could not delete: {', '.join(failed)}")
            raise

    def _run(self) -> None:
        self.verify_namespace()
        archive = self.create_genesis()

        config_map = resources.create_genesis_config_map(self.namespace, archive)
        self._deploy(config_map)
        logger.info("Successfully deployed config map")
        self._advance(DeploymentStage.CONFIG_MAP_DEPLOYED)

        replica_set_name = self.deploy_bootstrap(config_map.metadata.name)
        self.wait_for_replica_set(replica_set_name)
        self._advance(DeploymentStage.BOOTSTRAP_READY)

        self._advance(DeploymentStage.VALIDATOR_LOOP)
        for index in range(self.request.setup.num_validators):
            self.deploy_validator(index, config_map.metadata.name)

        self._advance(DeploymentStage.DONE)
        logger.info(
            f"Deployed bootstrap validator and {self.request.setup.num_validators} "
            f"validator(s) to namespace '{self.namespace}'"
        )

    def verify_namespace(self) -> None:
        if not self.cluster.namespace_exists(self.namespace):
            logger.error(f"Namespace: '{self.namespace}' doesn't exist. Exiting...")
            raise NamespaceNotFoundError(
                f"Namespace '{self.namespace}' doesn't exist",
                f"Create it first: kubectl create namespace {self.namespace}",
            )
        self._advance(DeploymentStage.NAMESPACE_VERIFIED)

    def create_genesis(self):
        """Generate every key and the genesis ledger; returns the archive path."""
        if self.request.runtime.gpu_mode is not GpuMode.AUTO:
            logger.warning(f"GPU mode '{self.request.runtime.gpu_mode.value}' is not supported yet, ignoring")
        logger.info("Creating Genesis")
        archive = self.genesis.generate_all(self.request.setup.num_validators)
        self._advance(DeploymentStage.GENESIS_READY)
        return archive

    def deploy_bootstrap(self, config_map_name: str) -> str:
        """Deploy the bootstrap secret, replica set and service.

        Returns:
            Name of the deployed bootstrap replica set
        """
        request = self.request
        secret = resources.create_bootstrap_secret(self.genesis.settings, self.namespace)
        self._deploy(secret)
        self._advance(DeploymentStage.BOOTSTRAP_SECRET_DEPLOYED)

        label_selector = resources.create_selector(resources.SELECTOR_KEY, resources.BOOTSTRAP_NAME)
        replica_set = resources.create_bootstrap_replica_set(
            self.namespace,
            request.bootstrap_container,
            request.bootstrap_image,
            BOOTSTRAP_VALIDATOR_REPLICAS,
            config_map_name,
            secret.metadata.name,
            label_selector,
            request.runtime,
        )
        deployed = self._deploy(replica_set)
        logger.info("bootstrap validator replica set deployed successfully")
        self._advance(DeploymentStage.BOOTSTRAP_REPLICA_SET_DEPLOYED)

        service = resources.create_service(resources.BOOTSTRAP_NAME, self.namespace, label_selector)
        self._deploy(service)
        logger.info("bootstrap validator service deployed successfully")
        self._advance(DeploymentStage.BOOTSTRAP_SERVICE_DEPLOYED)

        return deployed.metadata.name

    def wait_for_replica_set(self, name: str) -> None:
        """Block until the replica set reports every replica ready.

        Raises:
            ClusterApiError: The status could not be read
            ReadinessTimeoutError: The policy timeout elapsed first
        """
        self._advance(DeploymentStage.BOOTSTRAP_POLLING)
        policy = self.policy
        interval = policy.interval
        started = self._clock()
        while True:
            status = self.cluster.get_replica_set_status(name)
            if status.is_ready:
                logger.info(f"replica set: {name} Ready!")
                return

            elapsed = self._clock() - started
            if policy.timeout is not None and elapsed >= policy.timeout:
                raise ReadinessTimeoutError(
                    f"Replica set {name} not ready after {elapsed:.0f}s",
                    f"Last observed status: {status}. Check the pods: kubectl -n {self.namespace} get pods",
                )

            logger.info(f"replica set: {name} not ready... ({status.ready}/{status.desired})")
            self._sleep(interval)
            interval = policy.next_interval(interval)

    def deploy_validator(self, index: int, config_map_name: str) -> None:
        """Deploy the secret, replica set and service for standard validator ``index``."""
        request = self.request
        secret = resources.create_validator_secret(self.genesis.settings, self.namespace, index)
        self._deploy(secret)

        label_selector = resources.create_selector(resources.SELECTOR_KEY, resources.validator_name(index))
        replica_set = resources.create_validator_replica_set(
            self.namespace,
            request.validator_container,
            index,
            request.validator_image,
            VALIDATOR_REPLICAS,
            config_map_name,
            secret.metadata.name,
            label_selector,
            request.runtime,
        )
        self._deploy(replica_set)
        logger.info(f"validator replica set ({index}) deployed successfully")

        service = resources.create_service(resources.validator_name(index), self.namespace, label_selector)
        self._deploy(service)
        logger.info(f"validator service ({index}) deployed successfully")
