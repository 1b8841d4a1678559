from collections import OrderedDict
from types import SimpleNamespace

import pytest
from ape.utils import ZERO_ADDRESS
from ethpm_types import MethodABI

from mango_deployment import params
from mango_deployment.params import (
    ConstructorParameters,
    InitializerCall,
    ProxyParameters,
    _match_method_abi,
    validate_references,
)
from mango_deployment.variables import (
    ContractName,
    Deployments,
    VariableContext,
    implementation_name,
    resolve_value,
)
from tests.conftest import USDC, FakeContract, fake_address

NOW = 1681740000

INITIALIZE_ABI = MethodABI(
    type="function",
    name="initialize",
    stateMutability="nonpayable",
    inputs=[
        {"name": "minBonus_", "type": "uint16"},
        {"name": "treasury_", "type": "address"},
    ],
    outputs=[],
)


def _fake_container(name, constructor_inputs=(), methods=()):
    inputs = [SimpleNamespace(name=n, type=t) for n, t in constructor_inputs]
    return SimpleNamespace(
        contract_type=SimpleNamespace(name=name, methods=list(methods)),
        constructor=SimpleNamespace(abi=SimpleNamespace(inputs=inputs)),
    )


def test_match_method_abi():
    named_args = _match_method_abi([INITIALIZE_ABI], [5, USDC])
    assert named_args == {"minBonus_": 5, "treasury_": USDC}


@pytest.mark.parametrize("args", [[5], [-1, USDC], [5, 5]])
def test_match_method_abi_mismatch(args):
    with pytest.raises(ValueError, match="Could not find ABI for 'initialize'"):
        _match_method_abi([INITIALIZE_ABI], args)


def test_match_method_abi_without_abis():
    with pytest.raises(ValueError, match="No method abis provided"):
        _match_method_abi([], [])


def test_initializer_call_resolution():
    treasury = FakeContract("MangoTreasury", fake_address(1))
    Deployments.record("MangoTreasury", treasury)
    context = VariableContext(contract_names=["MangoTreasury"], contract_name="MangoHost")
    initializer = InitializerCall(
        contract_name="MangoHost",
        contract_type="MangoHost",
        method_name="initialize",
        method_args=[[ContractName("MangoTreasury", context)]],
    )
    # the implementation is not deployed yet
    assert initializer.resolve() == b""

    calls = []

    def encode_input(*args):
        calls.append(args)
        return b"\x8d\xa5\xcb\x5b"

    implementation = SimpleNamespace(
        address=fake_address(2), initialize=SimpleNamespace(encode_input=encode_input)
    )
    Deployments.record(implementation_name("MangoHost"), implementation)
    assert initializer.resolve() == b"\x8d\xa5\xcb\x5b"
    assert calls == [([treasury.address],)]


@pytest.fixture()
def contract_containers(monkeypatch):
    containers = {
        "MangoStakedToken": _fake_container("MangoStakedToken", [("owner_", "address")]),
        "MangoTreasury": _fake_container(
            "MangoTreasury",
            [("stakedToken_", "address"), ("usdc_", "address")],
            methods=[INITIALIZE_ABI],
        ),
        "MangoHost": _fake_container("MangoHost"),
        "MangoCloberExchanger": _fake_container("MangoCloberExchanger", [("usdc_", "address")]),
    }
    monkeypatch.setattr(params, "get_contract_container", containers.__getitem__)
    return containers


def test_initializer_call_validation(contract_containers):
    initializer = InitializerCall("MangoTreasury", "MangoTreasury", "initialize", [5, USDC])
    initializer.validate()

    initializer = InitializerCall("MangoTreasury", "MangoTreasury", "initialize", [USDC])
    with pytest.raises(ValueError, match="Could not find ABI"):
        initializer.validate()

    initializer = InitializerCall("MangoTreasury", "MangoTreasury", "setup", [])
    with pytest.raises(ValueError, match="No method abis provided"):
        initializer.validate()


VALID_CONFIG = {
    "constants": {"USDC": USDC, "START": "$now", "OWNER": "$deployer"},
    "contracts": [
        {"MangoStakedToken": {"constructor": {"owner_": "$OWNER"}, "proxy": None}},
        {
            "MangoTreasury": {
                "constructor": {"stakedToken_": "$MangoStakedToken", "usdc_": "$USDC"},
                "proxy": {"initializer": {"method": "initialize", "args": ["$START"]}},
            }
        },
        {
            "MangoHost": {
                "proxy": {
                    "constructor": {"admin_": "$DefaultProxyAdmin"},
                    "initializer": {"method": "initialize", "args": [["$MangoTreasury"]]},
                }
            }
        },
    ],
}


def test_validate_references():
    validate_references(VALID_CONFIG)


def test_undefined_constant_reference():
    config = {
        "constants": {},
        "contracts": [{"MangoTreasury": {"constructor": {"usdc_": "$USDC"}}}],
    }
    with pytest.raises(ConstructorParameters.Invalid, match="undefined constant 'USDC'"):
        validate_references(config)


def test_nested_constant_reference():
    config = {
        "constants": {"USDC": "$TOKEN", "TOKEN": USDC},
        "contracts": [{"MangoTreasury": {"constructor": {"usdc_": "$USDC"}}}],
    }
    with pytest.raises(ConstructorParameters.Invalid, match="cannot refer to another constant"):
        validate_references(config)


def test_forward_contract_reference():
    config = {
        "contracts": [
            {
                "MangoHost": {
                    "proxy": {"initializer": {"method": "initialize", "args": [["$MangoTreasury"]]}}
                }
            },
            "MangoTreasury",
        ]
    }
    with pytest.raises(ConstructorParameters.Invalid, match="not declared before it"):
        validate_references(config)


def test_constant_referring_to_later_contract():
    config = {
        "constants": {"TREASURY": "$MangoTreasury"},
        "contracts": [{"MangoHost": {"constructor": {"treasury_": "$TREASURY"}}}, "MangoTreasury"],
    }
    with pytest.raises(ConstructorParameters.Invalid, match="not declared before it"):
        validate_references(config)


def test_constructor_parameters(contract_containers):
    parameters = ConstructorParameters.from_config(VALID_CONFIG, timestamp=NOW)

    assert list(parameters.parameters) == ["MangoStakedToken", "MangoTreasury", "MangoHost"]
    assert parameters.resolve("MangoHost") == OrderedDict()
    assert parameters.resolve("MangoTreasury") == OrderedDict(
        stakedToken_=ZERO_ADDRESS, usdc_=USDC
    )

    staked_token = FakeContract("MangoStakedToken", fake_address(3))
    Deployments.record("MangoStakedToken", staked_token)
    assert parameters.resolve("MangoTreasury")["stakedToken_"] == staked_token.address


def test_constructor_parameters_contract_type(contract_containers):
    config = {
        "constants": {"USDC": USDC},
        "contracts": [
            {
                "CloberMangoUSDCExchanger": {
                    "contract_type": "MangoCloberExchanger",
                    "constructor": {"usdc_": "$USDC"},
                }
            }
        ],
    }
    parameters = ConstructorParameters.from_config(config)
    assert parameters.contract_type("CloberMangoUSDCExchanger") == "MangoCloberExchanger"
    with pytest.raises(ValueError, match="not found in deployment file"):
        parameters.contract_type("MangoHost")


def test_malformed_constructor_parameters(contract_containers):
    config = {"contracts": [{"MangoStakedToken": {"constructor": [USDC]}}]}
    with pytest.raises(ValueError, match="Malformed constructor parameter config"):
        ConstructorParameters.from_config(config)


def test_constructor_parameter_name_mismatch(contract_containers):
    config = {"contracts": [{"MangoStakedToken": {"constructor": {"token_": USDC}}}]}
    with pytest.raises(ConstructorParameters.Invalid, match="does not match the expected ABI name"):
        ConstructorParameters.from_config(config)


def test_constructor_parameter_length_mismatch(contract_containers):
    config = {"contracts": ["MangoStakedToken"]}
    with pytest.raises(ConstructorParameters.Invalid, match="length mismatch"):
        ConstructorParameters.from_config(config)


def test_constructor_parameter_type_mismatch(contract_containers):
    config = {"contracts": [{"MangoStakedToken": {"constructor": {"owner_": 1}}}]}
    with pytest.raises(ConstructorParameters.Invalid, match="does not match expected ABI type"):
        ConstructorParameters.from_config(config)


def _proxy_context(contract_name):
    return VariableContext(
        contract_names=["MangoTreasury", "MangoHost"],
        contract_name=contract_name,
        constants={"START": "$now"},
        check_for_proxy_instances=False,
        timestamp=NOW,
    )


def test_proxy_info(contract_containers):
    contract_data = {"proxy": {"initializer": {"method": "initialize", "args": ["$START"]}}}
    context = _proxy_context("MangoTreasury")
    proxy_info = ProxyParameters._generate_proxy_info(contract_data, context)

    assert proxy_info.contract_type_container is contract_containers["MangoTreasury"]
    constructor_params = proxy_info.constructor_params
    assert list(constructor_params) == ["_logic", "admin_", "_data"]

    initializer = constructor_params["_data"]
    assert isinstance(initializer, InitializerCall)
    assert initializer.method_name == "initialize"
    assert resolve_value(initializer.method_args) == [NOW]

    implementation = FakeContract("MangoTreasury", fake_address(4))
    admin = FakeContract("ProxyAdmin", fake_address(5))
    Deployments.record(implementation_name("MangoTreasury"), implementation)
    Deployments.record("DefaultProxyAdmin", admin)
    assert resolve_value(constructor_params["_logic"]) == implementation.address
    assert resolve_value(constructor_params["admin_"]) == admin.address


def test_proxy_initializer_refers_to_proxies(contract_containers):
    contract_data = {
        "proxy": {"initializer": {"method": "initialize", "args": [["$MangoTreasury"]]}}
    }
    proxy_info = ProxyParameters._generate_proxy_info(contract_data, _proxy_context("MangoHost"))
    treasury = FakeContract("MangoTreasury", fake_address(1))
    Deployments.record(implementation_name("MangoTreasury"), FakeContract("T", fake_address(2)))
    Deployments.record("MangoTreasury", treasury)

    initializer = proxy_info.constructor_params["_data"]
    assert resolve_value(initializer.method_args) == [[treasury.address]]


def test_proxy_contract_type(contract_containers):
    contract_data = {"contract_type": "MangoCloberExchanger", "proxy": None}
    context = VariableContext(
        contract_names=["CloberMangoUSDCExchanger"],
        contract_name="CloberMangoUSDCExchanger",
        check_for_proxy_instances=False,
    )
    proxy_info = ProxyParameters._generate_proxy_info(contract_data, context)
    assert proxy_info.contract_type_container is contract_containers["MangoCloberExchanger"]


def test_proxy_without_initializer(contract_containers):
    proxy_info = ProxyParameters._generate_proxy_info({"proxy": None}, _proxy_context("MangoHost"))
    assert proxy_info.constructor_params["_data"] == b""


def test_proxy_implicit_parameters(contract_containers):
    contract_data = {"proxy": {"constructor": {"_logic": "$MangoTreasury"}}}
    with pytest.raises(ProxyParameters.Invalid, match="'_logic' parameter cannot be specified"):
        ProxyParameters._generate_proxy_info(contract_data, _proxy_context("MangoHost"))


def test_proxy_initializer_without_method(contract_containers):
    contract_data = {"proxy": {"initializer": {"args": []}}}
    with pytest.raises(ProxyParameters.Invalid, match="missing a 'method'"):
        ProxyParameters._generate_proxy_info(contract_data, _proxy_context("MangoHost"))


def test_proxy_parameters(contract_containers, monkeypatch):
    proxy_container = _fake_container(
        "TransparentUpgradeableProxy",
        [("_logic", "address"), ("admin_", "address"), ("_data", "bytes")],
    )
    monkeypatch.setattr(
        params,
        "get_oz_dependency",
        lambda: SimpleNamespace(TransparentUpgradeableProxy=proxy_container),
    )
    config = {
        "constants": {"START": "$now"},
        "contracts": [
            "MangoHost",
            {
                "MangoTreasury": {
                    "proxy": {"initializer": {"method": "initialize", "args": [5, "$MangoHost"]}}
                }
            },
        ],
    }
    proxy_parameters = ProxyParameters.from_config(config, timestamp=NOW)

    assert not proxy_parameters.contract_needs_proxy("MangoHost")
    assert proxy_parameters.contract_needs_proxy("MangoTreasury")
    container, resolved = proxy_parameters.resolve("MangoTreasury")
    assert container is contract_containers["MangoTreasury"]
    assert resolved == OrderedDict(_logic=ZERO_ADDRESS, admin_=ZERO_ADDRESS, _data=b"")

    with pytest.raises(ValueError, match="Unexpected contract to proxy"):
        proxy_parameters.resolve("MangoHost")
