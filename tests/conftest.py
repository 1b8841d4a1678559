from types import SimpleNamespace

import pytest

from mango_deployment.constants import HARDHAT
from mango_deployment.variables import Deployments

# Common constants
USDC = "0xA8CE8aee21bC2A48a5EF670afCc9274C7bbbC035"
ONE_DAY = 24 * 60 * 60


def fake_address(index: int) -> str:
    return f"0x{index + 1:040x}"


class FakeContract:
    """Stands in for a deployed contract instance."""

    def __init__(self, name, address, reward_tokens=0, txn_hash=None):
        self.name = name
        self.address = address
        self.txn_hash = txn_hash
        self.contract_type = SimpleNamespace(name=name)
        self._reward_tokens = reward_tokens

    def rewardTokensLength(self):
        return self._reward_tokens

    def initialize(self, *args):
        raise AssertionError("contract methods are called through the deployer")


class FakeDeployer:
    """Records what deployment steps ask of a deployer."""

    def __init__(self, chain_id=HARDHAT, reward_tokens=0, live=False):
        self.chain_id = chain_id
        self.live = live
        self.constants = SimpleNamespace(USDC=USDC)
        self.reward_tokens = reward_tokens
        self.deployed = []
        self.transactions = []
        self.logs = []

    def deploy(self, contract_name):
        instance = FakeContract(
            contract_name,
            address=fake_address(len(self.deployed)),
            reward_tokens=self.reward_tokens,
        )
        self.deployed.append(instance)
        return instance

    def transact(self, method, *args):
        self.transactions.append((method.__name__, args))
        return SimpleNamespace(txn_hash=f"0x{len(self.transactions):064x}")

    def live_log(self, message):
        if self.live:
            self.logs.append(message)


# Fixtures
@pytest.fixture(autouse=True)
def clear_deployments():
    Deployments.reset()
    yield
    Deployments.reset()


@pytest.fixture()
def deployer():
    return FakeDeployer()


@pytest.fixture()
def live_deployer():
    return FakeDeployer(live=True)
