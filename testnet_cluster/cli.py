"""Main CLI entry point for deploying validator test clusters."""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from testnet_cluster.exceptions import ConfigurationError, ValidatorClusterError
from testnet_cluster.logging_config import get_logger, setup_logging
from testnet_cluster.models.request import ClusterRequest, ClusterType, GpuMode

app = typer.Typer(
    name="testnet-cluster",
    help="Stand up an ephemeral Solana validator test cluster on Kubernetes",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


@app.command()
def version() -> None:
    """Show version information."""
    from testnet_cluster import __version__

    typer.echo(f"testnet-cluster version {__version__}")


def build_request(
    config_path: str | None,
    namespace: str,
    num_validators: int,
    bootstrap_container: str,
    bootstrap_image: str | None,
    validator_container: str,
    validator_image: str | None,
    genesis: dict,
    runtime: dict,
) -> ClusterRequest:
    """Build the deployment request from a YAML file or from command-line flags.

    Raises:
        ConfigurationError: The file cannot be read or the values are invalid
    """
    try:
        if config_path:
            logger.info(f"Loading request from {config_path}")
            return ClusterRequest.load(config_path)

        if not bootstrap_image:
            raise ConfigurationError("--bootstrap-image is required", "Or pass a request file with --config")
        if not validator_image:
            raise ConfigurationError("--validator-image is required", "Or pass a request file with --config")

        return ClusterRequest(
            setup={"namespace": namespace, "num_validators": num_validators},
            genesis={k: v for k, v in genesis.items() if v is not None},
            runtime=runtime,
            bootstrap_container=bootstrap_container,
            bootstrap_image=bootstrap_image,
            validator_container=validator_container,
            validator_image=validator_image,
        )
    except ValidationError as e:
        raise ConfigurationError("Invalid deployment request", str(e))
    except OSError as e:
        raise ConfigurationError(f"Cannot read request file: {config_path}", str(e))


def print_summary(request: ClusterRequest, deployed: list[str], dry_run: Path | None) -> None:
    table = Table(title="Deployed Resources" if dry_run is None else f"Manifests written to {dry_run}")
    table.add_column("#", style="cyan")
    table.add_column("Resource", style="magenta")
    for i, name in enumerate(deployed, start=1):
        table.add_row(str(i), name)
    console.print(table)
    console.print(
        f"\n[green]✓ Bootstrap validator and {request.setup.num_validators} validator(s) "
        f"deployed to namespace '{request.setup.namespace}'[/green]"
    )


@app.command()
def deploy(
    namespace: str = typer.Option(
        "default", "--namespace", "-n", help="Namespace to deploy the test cluster into"
    ),
    num_validators: int = typer.Option(
        1, "--num-validators", min=1, help="Number of validator replicas to deploy"
    ),
    bootstrap_container: str = typer.Option(
        "bootstrap-container", "--bootstrap-container", help="Bootstrap validator container name"
    ),
    bootstrap_image: str | None = typer.Option(
        None, "--bootstrap-image", help="Docker image of the bootstrap validator to deploy"
    ),
    validator_container: str = typer.Option(
        "validator-container", "--validator-container", help="Validator container name"
    ),
    validator_image: str | None = typer.Option(
        None, "--validator-image", help="Docker image of the validators to deploy"
    ),
    hashes_per_tick: str = typer.Option(
        "auto", "--hashes-per-tick", help="NUM_HASHES|sleep|auto - override the default hashes per tick"
    ),
    slots_per_epoch: int | None = typer.Option(
        None, "--slots-per-epoch", help="Override the number of slots in an epoch"
    ),
    target_lamports_per_signature: int | None = typer.Option(
        None, "--target-lamports-per-signature", help="Genesis config. target lamports per signature"
    ),
    faucet_lamports: int | None = typer.Option(
        None, "--faucet-lamports", help="Override the default 500000000000000000 lamports minted in genesis"
    ),
    bootstrap_validator_lamports: int | None = typer.Option(
        None, "--bootstrap-validator-lamports", help="Genesis config. bootstrap validator lamports"
    ),
    bootstrap_validator_stake_lamports: int | None = typer.Option(
        None,
        "--bootstrap-validator-stake-lamports",
        help="Genesis config. bootstrap validator stake lamports",
    ),
    internal_node_sol: float = typer.Option(
        500.0, "--internal-node-sol", help="Amount to fund internal nodes in genesis config (SOL)"
    ),
    internal_node_stake_sol: float = typer.Option(
        10.0, "--internal-node-stake-sol", help="Amount to stake internal nodes (SOL)"
    ),
    enable_warmup_epochs: bool = typer.Option(
        True, "--enable-warmup-epochs/--disable-warmup-epochs", help="Genesis config. enable warmup epochs"
    ),
    max_genesis_archive_unpacked_size: int | None = typer.Option(
        None, "--max-genesis-archive-unpacked-size", help="Genesis config. max genesis archive unpacked size"
    ),
    cluster_type: ClusterType = typer.Option(
        ClusterType.DEVELOPMENT, "--cluster-type", help="Selects the features enabled for the cluster"
    ),
    tpu_enable_udp: bool = typer.Option(False, "--tpu-enable-udp", help="Enable UDP for tpu transactions"),
    tpu_disable_quic: bool = typer.Option(
        False, "--tpu-disable-quic", help="Disable quic for tpu packet forwarding"
    ),
    gpu_mode: GpuMode = typer.Option(
        GpuMode.AUTO, "--gpu-mode", help="Not supported yet. GPU mode to launch validators with"
    ),
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="YAML request file (replaces the cluster and genesis flags)"
    ),
    save_config: str | None = typer.Option(
        None, "--save-config", help="Write the effective request to this YAML file"
    ),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to kubeconfig file"),
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
    root_dir: str | None = typer.Option(
        None, "--root-dir", help="Directory holding generated keys (default: $TESTNET_CLUSTER_ROOT or ./.testnet-cluster)"
    ),
    dry_run: Path | None = typer.Option(
        None, "--dry-run", help="Write manifests to this directory instead of deploying"
    ),
    ready_timeout: float | None = typer.Option(
        None, "--ready-timeout", help="Seconds to wait for the bootstrap validator (default: forever)"
    ),
    poll_backoff: float = typer.Option(
        1.0, "--poll-backoff", help="Multiply the readiness poll interval by this after every poll"
    ),
    teardown_on_failure: bool = typer.Option(
        False, "--teardown-on-failure", help="Delete resources created by this run if it fails"
    ),
) -> None:
    """
    Generate genesis and deploy a bootstrap validator plus N validators.

    Keys and the genesis ledger are generated with solana-keygen and
    solana-genesis, then the bootstrap validator is deployed and waited on
    before the validators are deployed in order.

    Examples:
        # Deploy two validators into the "testnet" namespace
        testnet-cluster deploy -n testnet --num-validators 2 \\
            --bootstrap-image solana/bootstrap:latest --validator-image solana/validator:latest

        # Render manifests without touching the cluster
        testnet-cluster deploy --config request.yml --dry-run manifests/
    """
    from testnet_cluster.cluster_client import KubernetesClient, ManifestWriter
    from testnet_cluster.deployer import ClusterDeployer, ReadinessPolicy
    from testnet_cluster.genesis import Genesis
    from testnet_cluster.settings import Settings

    try:
        request = build_request(
            config_path,
            namespace,
            num_validators,
            bootstrap_container,
            bootstrap_image,
            validator_container,
            validator_image,
            genesis={
                "hashes_per_tick": hashes_per_tick,
                "slots_per_epoch": slots_per_epoch,
                "target_lamports_per_signature": target_lamports_per_signature,
                "faucet_lamports": faucet_lamports,
                "enable_warmup_epochs": enable_warmup_epochs,
                "max_genesis_archive_unpacked_size": max_genesis_archive_unpacked_size,
                "cluster_type": cluster_type,
                "bootstrap_validator_lamports": bootstrap_validator_lamports,
                "bootstrap_validator_stake_lamports": bootstrap_validator_stake_lamports,
            },
            runtime={
                "enable_udp": tpu_enable_udp,
                "disable_quic": tpu_disable_quic,
                "gpu_mode": gpu_mode,
                "internal_node_sol": internal_node_sol,
                "internal_node_stake_sol": internal_node_stake_sol,
            },
        )
        if save_config:
            request.save(save_config)
            logger.info(f"Saved request to {save_config}")

        try:
            policy = ReadinessPolicy(timeout=ready_timeout, backoff=poll_backoff)
        except ValidationError as e:
            raise ConfigurationError("Invalid readiness options", str(e))

        target_namespace = request.setup.namespace
        if dry_run is not None:
            cluster = ManifestWriter(dry_run, target_namespace)
        else:
            cluster = KubernetesClient.from_kubeconfig(target_namespace, kubeconfig, context)

        settings = Settings.from_env(root_dir)
        genesis = Genesis(request.genesis, settings)
        deployer = ClusterDeployer(
            request, cluster, genesis, policy=policy, teardown_on_failure=teardown_on_failure
        )
        deployer.run()
    except ValidatorClusterError as e:
        logger.error(f"Deployment failed: {e.message}")
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Deployment interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except Exception as e:
        logger.error(f"Unexpected error during deployment: {e}", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {e}")
        console.print("\nRun with --verbose --log-file debug.log for more details")
        raise typer.Exit(code=1)

    print_summary(request, deployer.ledger.names(), dry_run)


if __name__ == "__main__":
    app()
