from pathlib import Path

import click

from mango_deployment.constants import DEPLOYMENT_TAGS, PROXIED_CONTRACTS, SUPPORTED_CHAIN_IDS

tags_option = click.option(
    "--tags",
    "-t",
    help="Only run the deployment steps with these tags, plus their dependencies.",
    type=click.Choice(DEPLOYMENT_TAGS),
    multiple=True,
)

account_option = click.option(
    "--account",
    "-a",
    "account_alias",
    help="Alias of the ape keystore account to deploy from.",
    type=click.STRING,
    required=False,
)

params_filepath_option = click.option(
    "--params-filepath",
    "-p",
    help="Deployment parameters file; defaults to the file of the connected chain.",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=False,
)

verify_option = click.option(
    "--verify/--no-verify",
    help="Verify the deployed contracts on the block explorer.",
    default=False,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions without prompting. Use with care on live networks.",
    is_flag=True,
    default=False,
)

resume_option = click.option(
    "--resume",
    help="Reuse the contracts already published for this chain instead of redeploying them.",
    is_flag=True,
    default=False,
)

proxied_contract_option = click.option(
    "--contract-name",
    "-c",
    help="Registry name of the proxied contract.",
    type=click.Choice(PROXIED_CONTRACTS),
    required=True,
)

chain_id_option = click.option(
    "--chain-id",
    help="Chain ID",
    type=click.Choice([str(chain_id) for chain_id in SUPPORTED_CHAIN_IDS]),
    required=False,
)
