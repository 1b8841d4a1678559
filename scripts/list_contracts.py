#!/usr/bin/python3

from typing import List, Optional, Tuple

import click

from mango_deployment.networks import CHAINS, Chain, registry_filepath_for_chain
from mango_deployment.options import chain_id_option
from mango_deployment.registry import RegistryEntry, registry_entries_for_chain


def _get_registry_entries(
    chain_id: Optional[int] = None,
) -> List[Tuple[Chain, List[RegistryEntry]]]:
    """Parse the published registries of the given chain or of all supported chains."""
    registry_entries = list()
    for chain in CHAINS.values():
        if chain_id and chain_id != chain.chain_id:
            continue
        try:
            registry_filepath = registry_filepath_for_chain(chain_id=chain.chain_id)
        except ValueError:
            click.secho(f"\nNo registry published for {chain.name}", fg="red")
            continue
        entries = registry_entries_for_chain(filepath=registry_filepath, chain_id=chain.chain_id)
        registry_entries.append((chain, entries))
    return registry_entries


def _display_registry_entries(registry_entries: List[Tuple[Chain, List[RegistryEntry]]]) -> None:
    for chain, entries in registry_entries:
        click.secho(f"\n{chain.name} ({chain.chain_id})", fg="green")
        click.secho(f"    Network {chain.network_choice}", fg="yellow")
        for index, entry in enumerate(entries, start=1):
            click.secho(f"        {index}. {entry.name} {entry.address}", fg="cyan")


@click.command(name="list-contracts")
@chain_id_option
def cli(chain_id):
    """List all contracts in the published registries. Optionally filter by chain."""
    registry_entries = _get_registry_entries(int(chain_id) if chain_id else None)
    _display_registry_entries(registry_entries)


if __name__ == "__main__":
    cli()
