#!/usr/bin/python3

import click
from ape import networks
from ape.cli import ConnectedProviderCommand, network_option

from mango_deployment.networks import params_filepath_for_network
from mango_deployment.options import (
    account_option,
    autosign_option,
    params_filepath_option,
    resume_option,
    tags_option,
    verify_option,
)
from mango_deployment.params import Deployer
from mango_deployment.steps import MANGO_DEPLOYMENT
from mango_deployment.utils import get_deployer_account


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@tags_option
@account_option
@params_filepath_option
@verify_option
@autosign_option
@resume_option
def cli(network, tags, account_alias, params_filepath, verify, autosign, resume):
    """
    Deploy the Mango contracts to the connected network.

    Local deployment, with the first test account:
    ape run deploy --network ethereum:local:test --autosign

    Polygon zkEVM deployment, from a keystore account:
    ape run deploy --network polygon-zkevm:mainnet:node --account mango-deployer --verify

    A failed deployment is continued by re-running it with --resume.
    """
    deployer = Deployer.from_yaml(
        filepath=params_filepath or params_filepath_for_network(),
        verify=verify,
        account=get_deployer_account(networks.active_provider.chain_id, account_alias),
        autosign=autosign,
        resume=resume,
    )

    MANGO_DEPLOYMENT.run(deployer, tags=tags)

    deployer.finalize()


if __name__ == "__main__":
    cli()
