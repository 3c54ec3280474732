"""Tests for the Kubernetes API adapter and the dry-run manifest writer."""

from unittest.mock import Mock, patch

import pytest
import urllib3
import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException

from testnet_cluster import resources
from testnet_cluster.cluster_client import KubernetesClient, ManifestWriter
from testnet_cluster.exceptions import ClusterApiError
from testnet_cluster.models.request import RuntimeConfig


@pytest.fixture
def core_api():
    return Mock(spec=client.CoreV1Api)


@pytest.fixture
def apps_api():
    return Mock(spec=client.AppsV1Api)


@pytest.fixture
def kube(core_api, apps_api):
    return KubernetesClient("testnet", core_api=core_api, apps_api=apps_api)


@pytest.fixture
def service():
    selector = resources.create_selector(resources.SELECTOR_KEY, "validator-0")
    return resources.create_service("validator-0", "testnet", selector)


@pytest.fixture
def replica_set():
    selector = resources.create_selector(resources.SELECTOR_KEY, "bootstrap-validator")
    return resources.create_bootstrap_replica_set(
        "testnet", "c", "img", 1, "genesis-config", "bootstrap-accounts-secret", selector, RuntimeConfig()
    )


class TestNamespaceExists:
    def test_exists(self, kube, core_api):
        assert kube.namespace_exists() is True
        core_api.read_namespace.assert_called_once_with("testnet")

    def test_missing(self, kube, core_api):
        core_api.read_namespace.side_effect = ApiException(status=404, reason="Not Found")
        assert kube.namespace_exists("other") is False

    def test_api_error(self, kube, core_api):
        core_api.read_namespace.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(ClusterApiError) as exc_info:
            kube.namespace_exists()
        assert exc_info.value.status == 403

    def test_unreachable(self, kube, core_api):
        core_api.read_namespace.side_effect = urllib3.exceptions.MaxRetryError(None, "/api", "refused")

        with pytest.raises(ClusterApiError):
            kube.namespace_exists()


class TestDeploy:
    def test_create_service(self, kube, core_api, service):
        core_api.create_namespaced_service.return_value = service

        assert kube.deploy(service) is service
        core_api.create_namespaced_service.assert_called_once_with(namespace="testnet", body=service)

    def test_create_replica_set_uses_apps_api(self, kube, apps_api, core_api, replica_set):
        kube.deploy(replica_set)

        apps_api.create_namespaced_replica_set.assert_called_once_with(namespace="testnet", body=replica_set)
        core_api.create_namespaced_service.assert_not_called()

    def test_secret_and_config_map(self, kube, core_api):
        secret = client.V1Secret(kind="Secret", metadata=client.V1ObjectMeta(name="s"), data={})
        config_map = client.V1ConfigMap(kind="ConfigMap", metadata=client.V1ObjectMeta(name="cm"))

        kube.deploy(secret)
        kube.deploy(config_map)

        core_api.create_namespaced_secret.assert_called_once()
        core_api.create_namespaced_config_map.assert_called_once()

    def test_conflict_updates_existing(self, kube, core_api, service):
        core_api.create_namespaced_service.side_effect = ApiException(status=409, reason="Conflict")
        core_api.patch_namespaced_service.return_value = service

        assert kube.deploy(service) is service
        core_api.patch_namespaced_service.assert_called_once_with(
            name="validator-0-service", namespace="testnet", body=service
        )

    def test_deploy_twice_behaves_like_once(self, kube, core_api, service):
        core_api.create_namespaced_service.side_effect = [
            service,
            ApiException(status=409, reason="Conflict"),
        ]
        core_api.patch_namespaced_service.return_value = service

        assert kube.deploy(service) is service
        assert kube.deploy(service) is service

    def test_other_errors_raise(self, kube, core_api, service):
        core_api.create_namespaced_service.side_effect = ApiException(status=422, reason="Invalid")

        with pytest.raises(ClusterApiError, match="Service/validator-0-service") as exc_info:
            kube.deploy(service)
        assert exc_info.value.status == 422
        core_api.patch_namespaced_service.assert_not_called()

    def test_unsupported_type(self, kube):
        with pytest.raises(TypeError):
            kube.deploy(client.V1Pod(kind="Pod", metadata=client.V1ObjectMeta(name="p")))


class TestReplicaSetStatus:
    def test_counts(self, kube, apps_api):
        apps_api.read_namespaced_replica_set_status.return_value = client.V1ReplicaSet(
            spec=client.V1ReplicaSetSpec(replicas=1, selector=client.V1LabelSelector()),
            status=client.V1ReplicaSetStatus(replicas=1, ready_replicas=None),
        )

        status = kube.get_replica_set_status("bootstrap-validator-replicaset")

        assert (status.desired, status.ready) == (1, 0)
        assert not status.is_ready
        apps_api.read_namespaced_replica_set_status.assert_called_once_with(
            name="bootstrap-validator-replicaset", namespace="testnet"
        )

    def test_error(self, kube, apps_api):
        apps_api.read_namespaced_replica_set_status.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(ClusterApiError):
            kube.get_replica_set_status("missing")


class TestDelete:
    def test_delete(self, kube, apps_api, replica_set):
        kube.delete(replica_set)
        apps_api.delete_namespaced_replica_set.assert_called_once_with(
            name="bootstrap-validator-replicaset", namespace="testnet"
        )

    def test_already_gone(self, kube, core_api, service):
        core_api.delete_namespaced_service.side_effect = ApiException(status=404, reason="Not Found")
        kube.delete(service)

    def test_error(self, kube, core_api, service):
        core_api.delete_namespaced_service.side_effect = ApiException(status=500, reason="Boom")
        with pytest.raises(ClusterApiError):
            kube.delete(service)


class TestFromKubeconfig:
    @patch("testnet_cluster.cluster_client.client")
    @patch("testnet_cluster.cluster_client.config")
    def test_loads_kubeconfig(self, mock_config, mock_client):
        kube = KubernetesClient.from_kubeconfig("testnet", "/tmp/kubeconfig", "kind-test")

        mock_config.load_kube_config.assert_called_once_with(config_file="/tmp/kubeconfig", context="kind-test")
        assert kube.namespace == "testnet"

    def test_bad_kubeconfig(self, tmp_path):
        with pytest.raises(ClusterApiError, match="kubeconfig"):
            KubernetesClient.from_kubeconfig("testnet", str(tmp_path / "missing-config"))


class TestManifestWriter:
    def test_writes_numbered_manifests(self, tmp_path, service, replica_set):
        writer = ManifestWriter(tmp_path / "out", "testnet")

        assert writer.namespace_exists("anything")
        writer.deploy(replica_set)
        writer.deploy(service)

        files = sorted(p.name for p in (tmp_path / "out").iterdir())
        assert files == [
            "01-replicaset-bootstrap-validator-replicaset.yaml",
            "02-service-validator-0-service.yaml",
        ]
        manifest = yaml.safe_load((tmp_path / "out" / files[1]).read_text())
        assert manifest["kind"] == "Service"
        assert manifest["spec"]["clusterIP"] == "None"

    def test_replica_sets_report_ready(self, tmp_path, replica_set):
        writer = ManifestWriter(tmp_path, "testnet")
        writer.deploy(replica_set)

        status = writer.get_replica_set_status("bootstrap-validator-replicaset")
        assert status.is_ready
        assert status.desired == 1

    def test_delete_removes_file(self, tmp_path, service):
        writer = ManifestWriter(tmp_path, "testnet")
        writer.deploy(service)
        writer.delete(service)

        assert list(tmp_path.iterdir()) == []
