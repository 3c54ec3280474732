"""Key material and genesis ledger generation.

Keypairs and the genesis ledger are produced by the external ``solana-keygen``
and ``solana-genesis`` binaries. ``SolanaToolchain`` is the only place that
spawns them, so tests can substitute an in-process fake.
"""

import shutil
import subprocess
from pathlib import Path

from testnet_cluster.exceptions import ExternalProcessError, InvalidArgumentError
from testnet_cluster.logging_config import get_logger
from testnet_cluster.models.request import GenesisFlags, ValidatorType
from testnet_cluster.settings import Settings

logger = get_logger(__name__)

DEFAULT_FAUCET_LAMPORTS = 500_000_000_000_000_000
DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE = 1_073_741_824
DEFAULT_INTERNAL_NODE_STAKE_SOL = 10.0  # 10000000000 lamports
DEFAULT_INTERNAL_NODE_SOL = 500.0  # 500000000000 lamports
DEFAULT_BOOTSTRAP_NODE_STAKE_LAMPORTS = 10_000_000_000  # 10 SOL
DEFAULT_BOOTSTRAP_NODE_LAMPORTS = 500_000_000_000  # 500 SOL

# Order matters: solana-genesis takes the bootstrap accounts positionally
ACCOUNT_TYPES = ("identity", "vote-account", "stake-account")


class SolanaToolchain:
    """Runs the external Solana binaries."""

    def __init__(self, keygen: str = "solana-keygen", genesis: str = "solana-genesis"):
        self.keygen = keygen
        self.genesis = genesis

    def _run(self, command: list[str], what: str) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=True)
        except FileNotFoundError:
            logger.error(f"{command[0]} not found in PATH")
            raise ExternalProcessError(
                f"{command[0]} is not installed or not in PATH",
                "Install the Solana CLI tools: https://docs.solanalabs.com/cli/install",
            )

        if result.returncode != 0:
            logger.error(f"{what} failed with return code {result.returncode}: {result.stderr}")
            raise ExternalProcessError(f"Failed to {what}", result.stderr)
        return result

    def generate_keypair(self, output_path: Path) -> None:
        """Write a new keypair to ``output_path`` without prompting."""
        self._run(
            [self.keygen, "new", "--no-bip39-passphrase", "--silent", "-o", str(output_path)],
            f"create new keypair {output_path.name}",
        )

    def build_genesis(self, args: list[str]) -> None:
        """Build the genesis ledger with the given arguments."""
        self._run([self.genesis, *args], "create genesis")


class Genesis:
    """Generates the faucet, validator accounts and genesis ledger for one run."""

    def __init__(self, flags: GenesisFlags, settings: Settings, toolchain: SolanaToolchain | None = None):
        self.flags = flags
        self.settings = settings
        self.toolchain = toolchain or SolanaToolchain()

    @property
    def config_dir(self) -> Path:
        return self.settings.config_dir

    def reset(self) -> None:
        """Delete any previous run's key material and recreate an empty config dir."""
        if self.config_dir.exists():
            logger.info(f"Removing previous configuration: {self.config_dir}")
            shutil.rmtree(self.config_dir)
        self.settings.bootstrap_dir.mkdir(parents=True)

    def generate_keypair(self, output_path: Path) -> None:
        self.toolchain.generate_keypair(output_path)

    def generate_faucet(self) -> Path:
        """Generate the faucet keypair.

        Returns:
            Path of the faucet keypair file
        """
        outfile = self.settings.faucet_keypair
        logger.info("Generating faucet keypair")
        self.generate_keypair(outfile)
        return outfile

    def generate_accounts(self, validator_type: str | ValidatorType, number_of_accounts: int) -> list[Path]:
        """Generate identity, vote and stake keypairs for a set of validators.

        Args:
            validator_type: "bootstrap" or "validator"
            number_of_accounts: Number of validators; must be 1 for bootstrap

        Returns:
            Paths of every keypair written, in generation order

        Raises:
            InvalidArgumentError: Unknown validator type or bad account count
            ExternalProcessError: solana-keygen failed
        """
        try:
            validator_type = ValidatorType(validator_type)
        except ValueError:
            raise InvalidArgumentError(f"Invalid validator type: {validator_type}") from None

        if validator_type is ValidatorType.BOOTSTRAP and number_of_accounts != 1:
            raise InvalidArgumentError(
                f"Exactly one bootstrap validator is supported, got {number_of_accounts}"
            )
        if number_of_accounts <= 0:
            raise InvalidArgumentError(f"Number of accounts must be positive, got {number_of_accounts}")

        logger.info(f"Generating {number_of_accounts} {validator_type.value} account set(s)")
        written = []
        for i in range(number_of_accounts):
            written.extend(self._generate_account(validator_type, i))
        return written

    def _account_path(self, validator_type: ValidatorType, account: str, index: int) -> Path:
        if validator_type is ValidatorType.BOOTSTRAP:
            return self.settings.bootstrap_account(account)
        return self.settings.validator_account(account, index)

    def _generate_account(self, validator_type: ValidatorType, index: int) -> list[Path]:
        written: list[Path] = []
        for account in ACCOUNT_TYPES:
            outfile = self._account_path(validator_type, account, index)
            logger.debug(f"outfile: {outfile}")
            try:
                self.generate_keypair(outfile)
            except ExternalProcessError as e:
                # Never leave a partial key set behind for this node
                for path in written:
                    path.unlink(missing_ok=True)
                raise ExternalProcessError(
                    f"Failed to create new account keypair. account: {account}", e.details
                ) from e
            written.append(outfile)
        return written

    def genesis_args(self) -> list[str]:
        """Assemble the solana-genesis argument list from the flags."""
        flags = self.flags
        args = [
            "--bootstrap-validator-stake-lamports",
            str(_or_default(flags.bootstrap_validator_stake_lamports, DEFAULT_BOOTSTRAP_NODE_STAKE_LAMPORTS)),
            "--bootstrap-validator-lamports",
            str(_or_default(flags.bootstrap_validator_lamports, DEFAULT_BOOTSTRAP_NODE_LAMPORTS)),
            "--hashes-per-tick",
            flags.hashes_per_tick,
            "--max-genesis-archive-unpacked-size",
            str(_or_default(flags.max_genesis_archive_unpacked_size, DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE)),
        ]

        if flags.enable_warmup_epochs:
            args.append("--enable-warmup-epochs")

        args.extend(
            [
                "--faucet-lamports",
                str(_or_default(flags.faucet_lamports, DEFAULT_FAUCET_LAMPORTS)),
                "--faucet-pubkey",
                str(self.settings.faucet_keypair),
                "--cluster-type",
                flags.cluster_type.value,
                "--ledger",
                str(self.settings.bootstrap_dir),
                "--bootstrap-validator",
            ]
        )
        args.extend(str(self.settings.bootstrap_account(account)) for account in ACCOUNT_TYPES)

        if flags.slots_per_epoch is not None:
            args.extend(["--slots-per-epoch", str(flags.slots_per_epoch)])

        if flags.target_lamports_per_signature is not None:
            args.extend(["--target-lamports-per-signature", str(flags.target_lamports_per_signature)])

        return args

    def generate(self) -> Path:
        """Build the genesis ledger.

        Returns:
            Path of the genesis archive consumed by the config map
        """
        args = self.genesis_args()
        logger.info("Creating genesis ledger")
        logger.debug(f"genesis args: {args}")
        self.toolchain.build_genesis(args)
        return self.settings.genesis_archive

    def generate_all(self, num_validators: int) -> Path:
        """Reset the config dir and produce every artifact a deployment needs."""
        self.reset()
        self.generate_faucet()
        self.generate_accounts(ValidatorType.BOOTSTRAP, 1)
        self.generate_accounts(ValidatorType.VALIDATOR, num_validators)
        return self.generate()


def _or_default(value: int | None, default: int) -> int:
    return default if value is None else value
