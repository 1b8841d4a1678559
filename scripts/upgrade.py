#!/usr/bin/python3

import click
from ape import networks
from ape.cli import ConnectedProviderCommand, network_option

from mango_deployment.networks import params_filepath_for_network
from mango_deployment.options import (
    account_option,
    autosign_option,
    params_filepath_option,
    proxied_contract_option,
    verify_option,
)
from mango_deployment.params import Deployer
from mango_deployment.utils import get_deployer_account


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@proxied_contract_option
@account_option
@params_filepath_option
@verify_option
@autosign_option
def cli(network, contract_name, account_alias, params_filepath, verify, autosign):
    """
    Upgrade a proxied Mango contract to a freshly deployed implementation.

    The proxy is read from the published registry of the connected chain, and
    the registry is updated with the new implementation.
    """
    deployer = Deployer.from_yaml(
        filepath=params_filepath or params_filepath_for_network(),
        verify=verify,
        account=get_deployer_account(networks.active_provider.chain_id, account_alias),
        autosign=autosign,
        resume=True,
    )

    deployer.upgrade(contract_name)

    deployer.finalize()


if __name__ == "__main__":
    cli()
