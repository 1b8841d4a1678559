"""
Deployment steps of the Mango contracts.

Each step deploys its contracts through the deployer, which takes constructor
arguments and proxy initializers from the params file of the target chain.
Steps are registered in the order they are listed when no tags are requested.
"""

from mango_deployment.constants import (
    CLOBER_MANGO_USDC_EXCHANGER,
    MANGO_BOND_POOL,
    MANGO_CLOBER_EXCHANGER,
    MANGO_HOST,
    MANGO_PUBLIC_REGISTRATION,
    MANGO_STAKED_TOKEN,
    MANGO_TREASURY,
)
from mango_deployment.plan import DeploymentPlan

MANGO_DEPLOYMENT = DeploymentPlan()


@MANGO_DEPLOYMENT.step(
    tags=[MANGO_BOND_POOL],
    dependencies=[MANGO_TREASURY, MANGO_STAKED_TOKEN],
)
def deploy_bond_pool(deployer):
    bond_pool = deployer.deploy(MANGO_BOND_POOL)
    return [bond_pool]


@MANGO_DEPLOYMENT.step(tags=[MANGO_CLOBER_EXCHANGER], dependencies=[MANGO_TREASURY])
def deploy_clober_exchanger(deployer):
    exchanger = deployer.deploy(CLOBER_MANGO_USDC_EXCHANGER)
    return [exchanger]


@MANGO_DEPLOYMENT.step(tags=[MANGO_HOST], dependencies=[MANGO_TREASURY, MANGO_CLOBER_EXCHANGER])
def deploy_host(deployer):
    host = deployer.deploy(MANGO_HOST)
    return [host]


@MANGO_DEPLOYMENT.step(tags=[MANGO_PUBLIC_REGISTRATION])
def deploy_public_registration(deployer):
    public_registration = deployer.deploy(MANGO_PUBLIC_REGISTRATION)
    return [public_registration]


@MANGO_DEPLOYMENT.step(tags=[MANGO_STAKED_TOKEN, MANGO_TREASURY])
def deploy_staked_token_and_treasury(deployer):
    staked_token = deployer.deploy(MANGO_STAKED_TOKEN)
    treasury = deployer.deploy(MANGO_TREASURY)

    # reward tokens can only be set once the treasury exists
    if staked_token.rewardTokensLength() == 0:
        receipt = deployer.transact(
            staked_token.initialize,
            [deployer.constants.USDC],
            [treasury.address],
        )
        deployer.live_log(f"Initialize MangoStakedToken on tx {receipt.txn_hash}")

    return [staked_token, treasury]
