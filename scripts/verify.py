from pathlib import Path

import click
from ape import networks
from ape.cli import ConnectedProviderCommand, network_option

from mango_deployment.networks import registry_filepath_for_chain
from mango_deployment.registry import contracts_from_registry
from mango_deployment.utils import verify_contracts
from mango_deployment.variables import implementation_name


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@click.option(
    "--contract-name",
    "-c",
    "contract_names",
    help="Registry name of the contract to verify",
    type=click.STRING,
    required=True,
    multiple=True,
)
@click.option(
    "--registry-filepath",
    "-f",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Registry filepath; defaults to the published registry of the connected chain",
    required=False,
)
def cli(network, contract_names, registry_filepath):
    """Verify deployed contracts."""
    chain_id = networks.active_provider.chain_id
    registry_filepath = registry_filepath or registry_filepath_for_chain(chain_id=chain_id)
    contracts = contracts_from_registry(registry_filepath, chain_id=chain_id)

    contract_instances = []
    for contract_name in contract_names:
        try:
            contract_instance = contracts[contract_name]
        except KeyError:
            raise click.BadOptionUsage(
                option_name="--contract-name",
                message=(
                    f"Contract '{contract_name}' not found in registry, '{registry_filepath}', "
                    f"for chain {chain_id}"
                ),
            )

        # a proxied contract is registered at its proxy address; verify the implementation
        implementation = contracts.get(implementation_name(contract_name))
        if implementation:
            print(
                f"Proxy contract detected; verifying implementation contract "
                f"at {implementation.address}"
            )
            contract_instance = implementation

        contract_instances.append(contract_instance)

    verify_contracts(contract_instances)


if __name__ == "__main__":
    cli()
