"""Kubernetes API access for the deployer.

The deployer only needs four operations from a cluster: a namespace check,
an idempotent deploy, a replica set status read, and a delete used by the
optional teardown. ``KubernetesClient`` talks to a live API server;
``ManifestWriter`` writes the same objects to disk for dry runs.
"""

from pathlib import Path
from typing import Any, Protocol

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from testnet_cluster.exceptions import ClusterApiError
from testnet_cluster.logging_config import get_logger
from testnet_cluster.models.status import ReplicaSetStatus

logger = get_logger(__name__)

Resource = client.V1Secret | client.V1ConfigMap | client.V1ReplicaSet | client.V1Service


class ClusterClient(Protocol):
    """Operations the deployer requires from a cluster."""

    namespace: str

    def namespace_exists(self, name: str | None = None) -> bool: ...

    def deploy(self, resource: Resource) -> Resource: ...

    def get_replica_set_status(self, name: str) -> ReplicaSetStatus: ...

    def delete(self, resource: Resource) -> None: ...


def describe(resource: Resource) -> str:
    """Short ``Kind/name`` label for log messages."""
    return f"{resource.kind}/{resource.metadata.name}"


class KubernetesClient:
    """Deploys resources into one namespace of a live cluster."""

    def __init__(
        self,
        namespace: str,
        core_api: client.CoreV1Api | None = None,
        apps_api: client.AppsV1Api | None = None,
    ):
        """Initialize the client.

        Args:
            namespace: Namespace every resource is deployed into
            core_api: CoreV1Api to use (created from the loaded config if omitted)
            apps_api: AppsV1Api to use (created from the loaded config if omitted)
        """
        self.namespace = namespace
        self.core = core_api or client.CoreV1Api()
        self.apps = apps_api or client.AppsV1Api()

    @classmethod
    def from_kubeconfig(
        cls, namespace: str, kubeconfig: str | None = None, context: str | None = None
    ) -> "KubernetesClient":
        """Load credentials from a kubeconfig file, falling back to in-cluster config."""
        try:
            config.load_kube_config(config_file=kubeconfig, context=context)
            logger.debug(f"Loaded kubeconfig (file={kubeconfig or 'default'}, context={context or 'current'})")
        except config.ConfigException as e:
            if kubeconfig or context:
                raise ClusterApiError(
                    f"Failed to load kubeconfig: {e}",
                    "Check the --kubeconfig path and --context name",
                )
            try:
                config.load_incluster_config()
                logger.debug("Loaded in-cluster configuration")
            except config.ConfigException:
                raise ClusterApiError(
                    f"Failed to load kubeconfig: {e}",
                    "Make sure a kubeconfig is available at ~/.kube/config or set KUBECONFIG",
                )
        return cls(namespace)

    def _error(self, action: str, e: Exception) -> ClusterApiError:
        if isinstance(e, ApiException):
            logger.error(f"Kubernetes API error while trying to {action}: {e.status} {e.reason}")
            return ClusterApiError(f"Failed to {action}: {e.reason}", e.body, status=e.status)
        logger.error(f"Could not reach the Kubernetes API while trying to {action}: {e}")
        return ClusterApiError(f"Failed to {action}", str(e))

    def namespace_exists(self, name: str | None = None) -> bool:
        """Check whether a namespace exists.

        Raises:
            ClusterApiError: The API could not answer
        """
        name = name or self.namespace
        try:
            self.core.read_namespace(name)
        except ApiException as e:
            if e.status == 404:
                return False
            raise self._error(f"read namespace {name}", e)
        except urllib3.exceptions.HTTPError as e:
            raise self._error(f"read namespace {name}", e)
        return True

    def _operations(self, resource: Resource) -> tuple[Any, Any, Any]:
        """Return the create, patch and delete calls for a resource type."""
        if isinstance(resource, client.V1Secret):
            return (
                self.core.create_namespaced_secret,
                self.core.patch_namespaced_secret,
                self.core.delete_namespaced_secret,
            )
        if isinstance(resource, client.V1ConfigMap):
            return (
                self.core.create_namespaced_config_map,
                self.core.patch_namespaced_config_map,
                self.core.delete_namespaced_config_map,
            )
        if isinstance(resource, client.V1Service):
            return (
                self.core.create_namespaced_service,
                self.core.patch_namespaced_service,
                self.core.delete_namespaced_service,
            )
        if isinstance(resource, client.V1ReplicaSet):
            return (
                self.apps.create_namespaced_replica_set,
                self.apps.patch_namespaced_replica_set,
                self.apps.delete_namespaced_replica_set,
            )
        raise TypeError(f"Unsupported resource type: {type(resource).__name__}")

    def deploy(self, resource: Resource) -> Resource:
        """Create a resource, or update it in place if it already exists.

        Returns:
            The object as stored by the API server

        Raises:
            ClusterApiError: The API rejected the resource
        """
        create, patch, _ = self._operations(resource)
        name = resource.metadata.name
        label = describe(resource)
        try:
            deployed = create(namespace=self.namespace, body=resource)
            logger.info(f"Created {label}")
            return deployed
        except ApiException as e:
            if e.status != 409:
                raise self._error(f"deploy {label}", e)
        except urllib3.exceptions.HTTPError as e:
            raise self._error(f"deploy {label}", e)

        logger.info(f"{label} already exists, updating")
        try:
            return patch(name=name, namespace=self.namespace, body=resource)
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise self._error(f"update {label}", e)

    def get_replica_set_status(self, name: str) -> ReplicaSetStatus:
        """Read desired and ready replica counts for a replica set."""
        try:
            replica_set = self.apps.read_namespaced_replica_set_status(name=name, namespace=self.namespace)
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise self._error(f"read status of replica set {name}", e)

        desired = (replica_set.spec.replicas if replica_set.spec else None) or 0
        ready = (replica_set.status.ready_replicas if replica_set.status else None) or 0
        return ReplicaSetStatus(name=name, desired=desired, ready=ready)

    def delete(self, resource: Resource) -> None:
        """Delete a resource; a resource that is already gone is not an error."""
        _, _, delete = self._operations(resource)
        label = describe(resource)
        try:
            delete(name=resource.metadata.name, namespace=self.namespace)
            logger.info(f"Deleted {label}")
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"{label} already deleted")
                return
            raise self._error(f"delete {label}", e)
        except urllib3.exceptions.HTTPError as e:
            raise self._error(f"delete {label}", e)


class ManifestWriter:
    """Cluster client that writes manifests to a directory instead of deploying.

    Files are numbered in deployment order. Every replica set is reported as
    ready so a dry run walks the full deployment sequence.
    """

    def __init__(self, output_dir: Path, namespace: str):
        self.output_dir = Path(output_dir)
        self.namespace = namespace
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._serializer = client.ApiClient()
        self._written: dict[str, Path] = {}
        self._replicas: dict[str, int] = {}

    def namespace_exists(self, name: str | None = None) -> bool:
        return True

    def manifest_path(self, resource: Resource) -> Path:
        key = describe(resource)
        if key not in self._written:
            index = len(self._written) + 1
            filename = f"{index:02d}-{resource.kind.lower()}-{resource.metadata.name}.yaml"
            self._written[key] = self.output_dir / filename
        return self._written[key]

    def deploy(self, resource: Resource) -> Resource:
        path = self.manifest_path(resource)
        manifest = self._serializer.sanitize_for_serialization(resource)
        with open(path, "w") as f:
            yaml.safe_dump(manifest, f, default_flow_style=False, sort_keys=False)
        if isinstance(resource, client.V1ReplicaSet):
            self._replicas[resource.metadata.name] = resource.spec.replicas or 0
        logger.info(f"Wrote {describe(resource)} to {path}")
        return resource

    def get_replica_set_status(self, name: str) -> ReplicaSetStatus:
        replicas = self._replicas.get(name, 0)
        return ReplicaSetStatus(name=name, desired=replicas, ready=replicas)

    def delete(self, resource: Resource) -> None:
        path = self._written.pop(describe(resource), None)
        if path is not None:
            path.unlink(missing_ok=True)
