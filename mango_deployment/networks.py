from pathlib import Path
from typing import NamedTuple

from ape import networks

from mango_deployment.constants import (
    ARTIFACTS_DIR,
    CONSTRUCTOR_PARAMS_DIR,
    HARDHAT,
    LOCAL_NETWORK_NAME,
    POLYGON_ZKEVM,
    POLYGON_ZKEVM_TESTNET,
    PROD_CHAIN_IDS,
)


class Chain(NamedTuple):
    """A network the Mango contracts are deployed to."""

    chain_id: int
    name: str
    network_choice: str
    live: bool
    params_filename: str

    @property
    def registry_filename(self) -> str:
        return Path(self.params_filename).with_suffix(".json").name


CHAINS = {
    HARDHAT: Chain(
        chain_id=HARDHAT,
        name="hardhat",
        network_choice="ethereum:local",
        live=False,
        params_filename="hardhat.yml",
    ),
    POLYGON_ZKEVM_TESTNET: Chain(
        chain_id=POLYGON_ZKEVM_TESTNET,
        name="polygon-zkevm-testnet",
        network_choice="polygon-zkevm:testnet",
        live=True,
        params_filename="polygon-zkevm-testnet.yml",
    ),
    POLYGON_ZKEVM: Chain(
        chain_id=POLYGON_ZKEVM,
        name="polygon-zkevm",
        network_choice="polygon-zkevm:mainnet",
        live=True,
        params_filename="polygon-zkevm.yml",
    ),
}


def get_chain(chain_id: int) -> Chain:
    try:
        return CHAINS[int(chain_id)]
    except KeyError:
        raise ValueError(f"Unsupported chain id {chain_id}.")


def is_supported_chain(chain_id: int) -> bool:
    return int(chain_id) in CHAINS


def is_prod_chain(chain_id: int) -> bool:
    return int(chain_id) in PROD_CHAIN_IDS


def is_local_network() -> bool:
    """Returns True if the connected network is a local development network."""
    return networks.provider.network.name == LOCAL_NETWORK_NAME


def params_filepath_for_chain(chain_id: int) -> Path:
    """Returns the deployment parameters file for a chain."""
    chain = get_chain(chain_id)
    return CONSTRUCTOR_PARAMS_DIR / chain.params_filename


def registry_filepath_for_chain(chain_id: int) -> Path:
    """Returns the published registry for a chain."""
    chain = get_chain(chain_id)
    p = ARTIFACTS_DIR / chain.registry_filename
    if not p.exists():
        raise ValueError(f"No registry found for chain '{chain.name}' ({chain_id})")

    return p


def params_filepath_for_network() -> Path:
    """
    Returns the deployment parameters file of the connected network;
    local networks deploy the hardhat configuration.
    """
    if is_local_network():
        return params_filepath_for_chain(HARDHAT)
    return params_filepath_for_chain(networks.provider.network.chain_id)
