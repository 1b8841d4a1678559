import json
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from ape import accounts, networks, project
from ape.api import AccountAPI, TestAccountAPI
from ape.contracts import ContractContainer, ContractInstance

from mango_deployment.constants import ARTIFACTS_DIR, OZ_DEPENDENCY_NAME, OZ_DEPENDENCY_VERSION
from mango_deployment.networks import get_chain, is_local_network, is_prod_chain


def _load_yaml(filepath: Path) -> dict:
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    with open(filepath, "r") as file:
        return json.load(file)


def get_artifact_filepath(config: Dict) -> Path:
    """Returns the registry file a params file publishes to."""
    artifacts = config.get("artifacts") or dict()
    filename = artifacts.get("filename")
    if not filename:
        raise ValueError("artifact filename is not set in params file.")
    return Path(artifacts.get("dir", ARTIFACTS_DIR)) / filename


def get_config_chain_id(config: Dict) -> int:
    deployment = config.get("deployment")
    if not deployment:
        raise ValueError("deployment is not set in params file.")
    chain_id = deployment.get("chain_id")
    if not chain_id:
        raise ValueError("chain_id is not set in params file.")
    return int(chain_id)


def _published_chain_ids(registry_filepath: Path) -> List[int]:
    if not registry_filepath.exists():
        return list()
    return [int(chain_id) for chain_id in _load_json(registry_filepath)]


def validate_config(config: Dict, resume: bool = False) -> Path:
    """
    Validates a params file against the connected network and returns the registry
    it publishes to. A chain is only deployed once: redeploying to a chain its
    registry already holds needs 'resume'.
    """
    print("Validating parameters YAML...")

    chain_id = get_config_chain_id(config)
    get_chain(chain_id)

    if not config.get("contracts"):
        raise ValueError("Constructor parameters file missing 'contracts' field.")

    if not is_local_network():
        network_chain_id = networks.provider.network.chain_id
        if chain_id != network_chain_id:
            raise ValueError(
                f"chain_id in params file ({chain_id}) does not match "
                f"chain_id of current network ({network_chain_id})."
            )

    registry_filepath = get_artifact_filepath(config)
    if not resume and chain_id in _published_chain_ids(registry_filepath):
        raise ValueError(
            f"Deployment is already published for chain_id {chain_id}; "
            "use --resume to continue it."
        )
    return registry_filepath


def check_etherscan_plugin() -> None:
    """
    Verification needs ape-etherscan and the explorer API key ape-etherscan reads
    for the ecosystem of the connected network.
    """
    if is_local_network():
        return
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to verify contracts.")

    ecosystem_name = networks.provider.network.ecosystem.name
    envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    if not envvar:
        raise ValueError(f"No block explorer API key known for the {ecosystem_name} ecosystem.")
    if not os.environ.get(envvar):
        raise ValueError(f"{envvar} is not set.")


def check_plugins(verify: bool) -> None:
    print("Checking plugins...")
    if verify:
        check_etherscan_plugin()


def verify_contracts(contracts: List[ContractInstance]) -> None:
    explorer = networks.provider.network.explorer
    for instance in contracts:
        print(f"(i) Verifying {instance.contract_type.name} at {instance.address}...")
        explorer.publish_contract(instance.address)


def get_oz_dependency():
    """The OpenZeppelin release the proxy contracts are compiled from."""
    return project.dependencies[OZ_DEPENDENCY_NAME][OZ_DEPENDENCY_VERSION]


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, versions in project.dependencies.items():
        if len(versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        (dependency,) = versions.values()
        contract_container = getattr(dependency, contract, None)
        if contract_container is not None:
            return contract_container
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    """Looks a contract type up in the project first, then in its dependencies."""
    contract_container = getattr(project, contract, None)
    if contract_container is None:
        contract_container = _get_dependency_contract_container(contract)
    return contract_container


def get_deployer_account(chain_id: int, alias: Optional[str] = None) -> Optional[AccountAPI]:
    """
    Returns the keystore account for the alias, the first test account on local
    networks, or None to let the operator pick an account interactively.
    Production chains only deploy from a keystore account given by alias.
    """
    if is_prod_chain(chain_id):
        if not alias:
            raise ValueError(
                f"Chain {chain_id} deploys from a keystore account; pass its alias with --account."
            )
        account = accounts.load(alias)
        if isinstance(account, TestAccountAPI):
            raise ValueError(f"Test account '{alias}' cannot deploy to chain {chain_id}.")
        return account
    if alias:
        return accounts.load(alias)
    if is_local_network():
        return accounts.test_accounts[0]
    return None
