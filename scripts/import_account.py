#!/usr/bin/env python3

import os

import click
from ape_accounts import import_account_from_private_key

DEFAULT_ALIAS = "mango-deployer"


@click.command()
@click.option(
    "--alias",
    help="Alias of the imported keystore account.",
    type=click.STRING,
    default=DEFAULT_ALIAS,
    show_default=True,
)
def cli(alias):
    """Import the deployer private key into the ape keystore."""
    try:
        passphrase = os.environ["DEPLOYER_PASSPHRASE"]
        private_key = os.environ["DEPLOYER_PRIVATE_KEY"]
    except KeyError:
        raise Exception(
            "There are missing environment variables. "
            "Please set DEPLOYER_PASSPHRASE and DEPLOYER_PRIVATE_KEY."
        )
    account = import_account_from_private_key(alias, passphrase, private_key)
    print(f"Account imported: {account.address}")


if __name__ == "__main__":
    cli()
