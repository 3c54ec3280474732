"""Builders for the Kubernetes objects that make up a test cluster.

Every function here is a pure function of its arguments (plus the bytes of
already generated key files), so the whole topology can be inspected without
a live cluster.
"""

import base64
from pathlib import Path

from kubernetes import client

from testnet_cluster.models.request import RuntimeConfig
from testnet_cluster.settings import GENESIS_ARCHIVE_NAME, Settings

SELECTOR_KEY = "app.kubernetes.io/name"
BOOTSTRAP_NAME = "bootstrap-validator"

GENESIS_CONFIG_MAP_NAME = "genesis-config"
BOOTSTRAP_SECRET_NAME = "bootstrap-accounts-secret"

GOSSIP_PORT = 8001
RPC_PORT = 8899
FAUCET_PORT = 9900

SCRIPTS_DIR = "/home/solana/k8s-cluster-scripts"
LEDGER_MOUNT_PATH = "/home/solana/ledger"

# Secret key -> keypair name used by solana-keygen, in identity/vote/stake order
SECRET_ACCOUNTS = {
    "identity": "identity",
    "vote": "vote-account",
    "stake": "stake-account",
}


def validator_name(index: int) -> str:
    return f"validator-{index}"


def create_selector(key: str, value: str) -> dict[str, str]:
    """Label selector binding a replica set and a service to the same pods."""
    return {key: value}


def create_secret(name: str, namespace: str, accounts: dict[str, Path]) -> client.V1Secret:
    """Build a secret holding keypair files.

    Args:
        name: Secret name
        namespace: Target namespace
        accounts: Mapping of account label (identity, vote, stake) to keypair file

    Returns:
        Secret with one ``<label>.json`` entry per keypair
    """
    data = {
        f"{label}.json": base64.b64encode(Path(path).read_bytes()).decode()
        for label, path in accounts.items()
    }
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        type="Opaque",
        data=data,
    )


def create_bootstrap_secret(settings: Settings, namespace: str, name: str = BOOTSTRAP_SECRET_NAME) -> client.V1Secret:
    accounts = {label: settings.bootstrap_account(account) for label, account in SECRET_ACCOUNTS.items()}
    return create_secret(name, namespace, accounts)


def create_validator_secret(settings: Settings, namespace: str, index: int) -> client.V1Secret:
    accounts = {label: settings.validator_account(account, index) for label, account in SECRET_ACCOUNTS.items()}
    return create_secret(f"validator-accounts-secret-{index}", namespace, accounts)


def create_genesis_config_map(namespace: str, archive_path: Path) -> client.V1ConfigMap:
    """Config map carrying the genesis archive shared by every validator."""
    return client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=client.V1ObjectMeta(name=GENESIS_CONFIG_MAP_NAME, namespace=namespace),
        binary_data={GENESIS_ARCHIVE_NAME: base64.b64encode(Path(archive_path).read_bytes()).decode()},
    )


def runtime_flags(runtime: RuntimeConfig) -> list[str]:
    """Start-up flags shared by every validator."""
    flags = []
    if runtime.enable_udp:
        flags.append("--tpu-enable-udp")
    if runtime.disable_quic:
        flags.append("--tpu-disable-quic")
    return flags


def _field_env(name: str, field_path: str) -> client.V1EnvVar:
    return client.V1EnvVar(
        name=name,
        value_from=client.V1EnvVarSource(field_ref=client.V1ObjectFieldSelector(field_path=field_path)),
    )


def _bootstrap_address(port: int) -> str:
    return f"{BOOTSTRAP_NAME}-service.$(NAMESPACE).svc.cluster.local:{port}"


def _container_ports() -> list[client.V1ContainerPort]:
    return [
        client.V1ContainerPort(name="gossip-tcp", container_port=GOSSIP_PORT, protocol="TCP"),
        client.V1ContainerPort(name="gossip-udp", container_port=GOSSIP_PORT, protocol="UDP"),
        client.V1ContainerPort(name="rpc", container_port=RPC_PORT, protocol="TCP"),
        client.V1ContainerPort(name="faucet", container_port=FAUCET_PORT, protocol="TCP"),
    ]


def _replica_set(
    name: str,
    namespace: str,
    container_name: str,
    image: str,
    num_replicas: int,
    command: list[str],
    env: list[client.V1EnvVar],
    config_map_name: str,
    secret_name: str,
    accounts_mount_path: str,
    label_selector: dict[str, str],
) -> client.V1ReplicaSet:
    container = client.V1Container(
        name=container_name,
        image=image,
        command=command,
        env=env,
        ports=_container_ports(),
        volume_mounts=[
            client.V1VolumeMount(name="genesis-config-volume", mount_path=LEDGER_MOUNT_PATH),
            client.V1VolumeMount(name="accounts-volume", mount_path=accounts_mount_path, read_only=True),
        ],
        readiness_probe=client.V1Probe(
            tcp_socket=client.V1TCPSocketAction(port=RPC_PORT),
            initial_delay_seconds=20,
            period_seconds=10,
        ),
    )
    pod_spec = client.V1PodSpec(
        containers=[container],
        volumes=[
            client.V1Volume(
                name="genesis-config-volume",
                config_map=client.V1ConfigMapVolumeSource(name=config_map_name),
            ),
            client.V1Volume(
                name="accounts-volume",
                secret=client.V1SecretVolumeSource(secret_name=secret_name),
            ),
        ],
    )
    return client.V1ReplicaSet(
        api_version="apps/v1",
        kind="ReplicaSet",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=dict(label_selector)),
        spec=client.V1ReplicaSetSpec(
            replicas=num_replicas,
            selector=client.V1LabelSelector(match_labels=dict(label_selector)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(label_selector)),
                spec=pod_spec,
            ),
        ),
    )


def create_bootstrap_replica_set(
    namespace: str,
    container_name: str,
    image: str,
    num_replicas: int,
    config_map_name: str,
    secret_name: str,
    label_selector: dict[str, str],
    runtime: RuntimeConfig,
) -> client.V1ReplicaSet:
    """Replica set running the bootstrap validator."""
    command = [f"{SCRIPTS_DIR}/bootstrap-startup-script.sh", *runtime_flags(runtime)]
    env = [
        _field_env("MY_POD_IP", "status.podIP"),
        _field_env("NAMESPACE", "metadata.namespace"),
    ]
    return _replica_set(
        f"{BOOTSTRAP_NAME}-replicaset",
        namespace,
        container_name,
        image,
        num_replicas,
        command,
        env,
        config_map_name,
        secret_name,
        "/home/solana/bootstrap-accounts",
        label_selector,
    )


def create_validator_replica_set(
    namespace: str,
    container_name: str,
    index: int,
    image: str,
    num_replicas: int,
    config_map_name: str,
    secret_name: str,
    label_selector: dict[str, str],
    runtime: RuntimeConfig,
) -> client.V1ReplicaSet:
    """Replica set running standard validator ``index``, pointed at the bootstrap service."""
    command = [
        f"{SCRIPTS_DIR}/validator-startup-script.sh",
        *runtime_flags(runtime),
        "--internal-node-sol",
        str(runtime.internal_node_sol),
        "--internal-node-stake-sol",
        str(runtime.internal_node_stake_sol),
    ]
    env = [
        _field_env("NAMESPACE", "metadata.namespace"),
        _field_env("MY_POD_IP", "status.podIP"),
        client.V1EnvVar(name="BOOTSTRAP_RPC_ADDRESS", value=_bootstrap_address(RPC_PORT)),
        client.V1EnvVar(name="BOOTSTRAP_GOSSIP_ADDRESS", value=_bootstrap_address(GOSSIP_PORT)),
        client.V1EnvVar(name="BOOTSTRAP_FAUCET_ADDRESS", value=_bootstrap_address(FAUCET_PORT)),
    ]
    return _replica_set(
        f"validator-replicaset-{index}",
        namespace,
        container_name,
        image,
        num_replicas,
        command,
        env,
        config_map_name,
        secret_name,
        "/home/solana/validator-accounts",
        label_selector,
    )


def create_service(name: str, namespace: str, label_selector: dict[str, str]) -> client.V1Service:
    """Headless service giving the selected pods a stable DNS name."""
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(name=f"{name}-service", namespace=namespace, labels=dict(label_selector)),
        spec=client.V1ServiceSpec(
            selector=dict(label_selector),
            cluster_ip="None",
            ports=[
                client.V1ServicePort(name="tcp-port", port=GOSSIP_PORT, protocol="TCP"),
                client.V1ServicePort(name="udp-port", port=GOSSIP_PORT, protocol="UDP"),
                client.V1ServicePort(name="rpc-port", port=RPC_PORT, protocol="TCP"),
                client.V1ServicePort(name="faucet-port", port=FAUCET_PORT, protocol="TCP"),
            ],
        ),
    )
