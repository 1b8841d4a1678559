import json
from collections import OrderedDict, defaultdict
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional

from ape import chain
from ape.contracts import ContractInstance
from eth_typing import ABI, ChecksumAddress
from eth_utils import to_checksum_address

from mango_deployment.utils import _load_json

ChainId = int
ContractName = str

# registry name -> artifact, per chain id
RegistryData = Dict[str, Dict[ContractName, dict]]

REGISTRY_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}
UNMERGED_SUFFIX = ".unmerged.json"


class RegistryEntry(NamedTuple):
    """A deployed contract, as published in a registry file."""

    chain_id: ChainId
    name: ContractName
    address: ChecksumAddress
    abi: ABI
    tx_hash: str
    block_number: int
    deployer: str

    @classmethod
    def from_artifact(cls, chain_id: str, name: ContractName, artifact: dict) -> "RegistryEntry":
        return cls(
            chain_id=int(chain_id),
            name=name,
            address=artifact["address"],
            abi=artifact["abi"],
            tx_hash=artifact["tx_hash"],
            block_number=artifact["block_number"],
            deployer=artifact["deployer"],
        )

    def to_artifact(self) -> dict:
        return {
            "address": self.address,
            "abi": sorted(self.abi, key=lambda item: (item["type"], item.get("name", ""))),
            "tx_hash": self.tx_hash,
            "block_number": int(self.block_number),
            "deployer": self.deployer,
        }


def _get_abi(contract_instance: ContractInstance) -> ABI:
    abi = contract_instance.contract_type.abi
    return [item.model_dump(mode="json", by_alias=True) for item in abi]


def _get_entry(
    name: ContractName, contract_instance: ContractInstance, chain_id: ChainId
) -> RegistryEntry:
    """
    Builds the registry entry of a contract from its deployment receipt. The entry is
    filed under the chain id of the params file: a local node reports its own id.
    """
    receipt = contract_instance.receipt
    return RegistryEntry(
        chain_id=chain_id,
        name=name,
        address=to_checksum_address(contract_instance.address),
        abi=_get_abi(contract_instance),
        tx_hash=str(receipt.txn_hash),
        block_number=receipt.block_number,
        deployer=receipt.transaction.sender,
    )


def _get_entries(
    deployments: Dict[ContractName, ContractInstance], chain_id: ChainId
) -> List[RegistryEntry]:
    return [_get_entry(name, instance, chain_id) for name, instance in deployments.items()]


def _to_registry_data(entries: Iterable[RegistryEntry]) -> RegistryData:
    data = defaultdict(dict)
    for entry in sorted(entries, key=lambda e: (str(e.chain_id), e.name)):
        data[str(entry.chain_id)][entry.name] = entry.to_artifact()
    return dict(data)


def read_registry(filepath: Path) -> List[RegistryEntry]:
    registry_entries = list()
    for chain_id, artifacts in _load_json(filepath).items():
        for name, artifact in artifacts.items():
            registry_entries.append(RegistryEntry.from_artifact(chain_id, name, artifact))
    return registry_entries


def registry_entries_for_chain(filepath: Path, chain_id: ChainId) -> List[RegistryEntry]:
    """Returns the registry entries of a single chain."""
    return [entry for entry in read_registry(filepath) if entry.chain_id == chain_id]


def write_registry(
    entries: List[RegistryEntry], filepath: Path, silent: bool = False, replace: bool = False
) -> Path:
    """
    Writes registry entries to a file and returns the path written.

    Entries are added to an existing registry chain by chain. A chain the existing
    registry already holds is never overwritten unless 'replace' is set: the new
    entries go to a separate '.unmerged.json' file next to it instead.
    """
    if not entries:
        if not silent:
            print("No entries provided.")
        return filepath

    data = _to_registry_data(entries)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    if filepath.exists():
        existing_data = _load_json(filepath)
        overlapping_chains = sorted(set(existing_data) & set(data))
        if overlapping_chains and not replace:
            filepath = filepath.with_suffix(UNMERGED_SUFFIX)
            if not silent:
                print(
                    f"Registry already has entries for chain(s) {', '.join(overlapping_chains)}; "
                    f"writing to {filepath} instead."
                )
        else:
            if not silent:
                print(f"Updating existing registry at {filepath}.")
            existing_data.update(data)
            data = {chain_id: existing_data[chain_id] for chain_id in sorted(existing_data)}
    elif not silent:
        print(f"Creating new registry at {filepath}.")

    with open(filepath, "w") as file:
        json.dump(data, file, **REGISTRY_JSON_FORMAT)

    return filepath


def registry_from_deployments(
    deployments: Dict[ContractName, ContractInstance],
    output_filepath: Path,
    chain_id: ChainId,
    existing_entries: Optional[List[RegistryEntry]] = None,
    replace: bool = False,
    silent: bool = False,
) -> Path:
    """
    Publishes the contracts of a deployment run under a chain id. The entries already
    published for the chain are kept unless the run redeployed them.
    """
    entries = _get_entries(deployments, chain_id)
    if existing_entries:
        deployed_names = set(deployments)
        entries.extend(e for e in existing_entries if e.name not in deployed_names)
    output_filepath = write_registry(
        entries=entries,
        filepath=output_filepath,
        silent=silent,
        replace=replace or bool(existing_entries),
    )
    if not silent:
        print(f"(i) Registry written to {output_filepath}!")
    return output_filepath


class ConflictResolution(Enum):
    USE_1 = 1
    USE_2 = 2


def _select_conflict_resolution(
    registry_1_entry, registry_1_filepath, registry_2_entry, registry_2_filepath
) -> ConflictResolution:
    print(
        f"\n! {registry_1_entry.name} is in both registries "
        f"for chain id {registry_1_entry.chain_id}:"
    )
    print(f"[1]: {registry_1_entry.address} in {registry_1_filepath}")
    print(f"[2]: {registry_2_entry.address} in {registry_2_filepath}")
    print("[A]: Abort merge")

    choices = [str(resolution.value) for resolution in ConflictResolution] + ["A"]
    answer = None
    while answer not in choices:
        answer = input(f"Keep which entry, {choices}? ")

    if answer == "A":
        print("Merge Aborted!")
        exit(-1)
    return ConflictResolution(int(answer))


def _entries_by_chain(
    filepath: Path, excluded: Iterable[ContractName]
) -> Dict[ChainId, Dict[ContractName, RegistryEntry]]:
    by_chain = defaultdict(OrderedDict)
    for entry in read_registry(filepath):
        if entry.name not in excluded:
            by_chain[entry.chain_id][entry.name] = entry
    return by_chain


def merge_registries(
    registry_1_filepath: Path,
    registry_2_filepath: Path,
    output_filepath: Path,
    deprecated_contracts: Optional[List[ContractName]] = None,
    force_conflict_resolution: Optional[ConflictResolution] = None,
) -> Path:
    """
    Merges two registries, leaving out deprecated contracts. A contract published in
    both registries for the same chain is resolved by the operator unless a
    resolution is forced.
    """
    deprecated_contracts = deprecated_contracts or list()
    registry_1 = _entries_by_chain(registry_1_filepath, deprecated_contracts)
    registry_2 = _entries_by_chain(registry_2_filepath, deprecated_contracts)

    merged: List[RegistryEntry] = list()
    for chain_id in sorted(set(registry_1) | set(registry_2)):
        entries_1 = registry_1.get(chain_id, dict())
        entries_2 = registry_2.get(chain_id, dict())
        for name in sorted(set(entries_1) | set(entries_2)):
            if name in entries_1 and name in entries_2:
                resolution = force_conflict_resolution or _select_conflict_resolution(
                    registry_1_entry=entries_1[name],
                    registry_1_filepath=registry_1_filepath,
                    registry_2_entry=entries_2[name],
                    registry_2_filepath=registry_2_filepath,
                )
                keep_first = resolution == ConflictResolution.USE_1
                merged.append(entries_1[name] if keep_first else entries_2[name])
            else:
                merged.append(entries_1.get(name) or entries_2[name])

    write_registry(entries=merged, filepath=output_filepath)
    print(f"Merged registry output to {output_filepath}")
    return output_filepath


def contracts_from_registry(filepath: Path, chain_id: ChainId) -> Dict[str, ContractInstance]:
    """Returns the contract instances of a single chain, keyed by registry name."""
    deployments = dict()
    for entry in registry_entries_for_chain(filepath=filepath, chain_id=chain_id):
        deployments[entry.name] = chain.contracts.instance_at(
            entry.address, abi=entry.abi, txn_hash=entry.tx_hash
        )
    return deployments
