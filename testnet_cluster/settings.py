"""Resolved filesystem locations shared by genesis generation and deployment."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from testnet_cluster.logging_config import get_logger

logger = get_logger(__name__)

ROOT_ENV_VAR = "TESTNET_CLUSTER_ROOT"
DEFAULT_ROOT_NAME = ".testnet-cluster"
BOOTSTRAP_DIR_NAME = "bootstrap-validator"
GENESIS_ARCHIVE_NAME = "genesis.tar.bz2"


class Settings(BaseModel):
    """Paths used by a single run.

    All generated key material and the genesis ledger live below
    ``config_dir``; it is wiped at the start of every genesis run.
    """

    model_config = ConfigDict(frozen=True)

    root_dir: Path

    @property
    def config_dir(self) -> Path:
        return self.root_dir / "config"

    @property
    def bootstrap_dir(self) -> Path:
        return self.config_dir / BOOTSTRAP_DIR_NAME

    @property
    def faucet_keypair(self) -> Path:
        return self.config_dir / "faucet.json"

    @property
    def genesis_archive(self) -> Path:
        return self.bootstrap_dir / GENESIS_ARCHIVE_NAME

    def bootstrap_account(self, account: str) -> Path:
        """Path of a bootstrap validator keypair (identity, vote-account, stake-account)."""
        return self.bootstrap_dir / f"{account}.json"

    def validator_account(self, account: str, index: int) -> Path:
        """Path of a standard validator keypair."""
        return self.config_dir / f"validator-{account}-{index}.json"

    @classmethod
    def from_env(cls, root_dir: str | Path | None = None) -> "Settings":
        """Resolve the root directory from the argument, the environment or the cwd.

        Without an explicit root this is ``<cwd>/.testnet-cluster``. Every genesis
        run wipes ``<root>/config``.
        """
        if root_dir is None:
            root_dir = os.environ.get(ROOT_ENV_VAR) or Path.cwd() / DEFAULT_ROOT_NAME
        root = Path(root_dir).expanduser().resolve()
        logger.debug(f"Using root directory: {root}")
        return cls(root_dir=root)
