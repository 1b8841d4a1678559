import time
import typing
from collections import OrderedDict, namedtuple
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ape import chain, networks
from ape.api import AccountAPI, ReceiptAPI, TestAccountAPI
from ape.cli.choices import select_account
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.utils import EMPTY_BYTES32
from eth_utils import to_checksum_address
from ethpm_types import MethodABI
from web3 import Web3

from mango_deployment.confirm import _confirm_network, _confirm_resolution, _continue
from mango_deployment.constants import DEFAULT_PROXY_ADMIN, EIP1967_ADMIN_SLOT
from mango_deployment.networks import get_chain
from mango_deployment.registry import (
    contracts_from_registry,
    registry_entries_for_chain,
    registry_from_deployments,
)
from mango_deployment.utils import (
    _load_yaml,
    check_plugins,
    get_config_chain_id,
    get_contract_container,
    get_oz_dependency,
    validate_config,
    verify_contracts,
)
from mango_deployment.variables import (
    CONSTRUCTOR_KEY,
    CONTRACT_TYPE_KEY,
    INITIALIZER_KEY,
    PROXY_KEY,
    Constant,
    DeployerAccount,
    Deployments,
    Timestamp,
    Variable,
    VariableContext,
    contract_names,
    implementation_name,
    iter_contracts,
    parse_value,
    parse_values,
    proxy_name,
    raw_values,
    resolve_constants,
    resolve_value,
    resolve_values,
)

w3 = Web3()


def _match_method_abi(method_abis: List[MethodABI], args: Sequence[Any]) -> Dict[str, Any]:
    """Returns the arguments by name, for the first method ABI able to encode them."""
    if not method_abis:
        raise ValueError("No method abis provided for validation of args")

    for abi in method_abis:
        if len(abi.inputs) != len(args):
            continue
        if all(w3.is_encodable(abi_input.type, arg) for abi_input, arg in zip(abi.inputs, args)):
            return {abi_input.name: arg for abi_input, arg in zip(abi.inputs, args)}

    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _check_constructor_inputs(
    contract_name: str, abi_inputs: List[Any], resolved_parameters: OrderedDict
) -> None:
    """Constructor parameters must follow the ABI inputs: same names, same order, encodable."""
    if len(resolved_parameters) != len(abi_inputs):
        raise ConstructorParameters.Invalid(
            f"Constructor parameters length mismatch - {contract_name} ABI requires "
            f"{len(abi_inputs)}, Got {len(resolved_parameters)}."
        )

    parameters = enumerate(zip(abi_inputs, resolved_parameters.items()))
    for position, (abi_input, (name, value)) in parameters:
        if abi_input.name != name:
            raise ConstructorParameters.Invalid(
                f"{contract_name} constructor parameter '{name}' at position {position} "
                f"does not match the expected ABI name '{abi_input.name}'."
            )
        if not w3.is_encodable(abi_input.type, value):
            raise ConstructorParameters.Invalid(
                f"{contract_name} constructor parameter '{name}' at position {position} has "
                f"value '{value}', which does not match expected ABI type '{abi_input.type}'."
            )


class InitializerCall(Variable):
    """The ABI-encoded initializer call a proxy makes to its implementation on construction."""

    def __init__(
        self, contract_name: str, contract_type: str, method_name: str, method_args: List[Any]
    ):
        self.contract_name = contract_name
        self.contract_type = contract_type
        self.method_name = method_name
        self.method_args = method_args

    def validate(self) -> None:
        methods = get_contract_container(self.contract_type).contract_type.methods
        _match_method_abi(
            method_abis=[abi for abi in methods if abi.name == self.method_name],
            args=resolve_value(self.method_args),
        )

    def resolve(self) -> Any:
        implementation = Deployments.get(implementation_name(self.contract_name))
        if implementation is None:
            return b""
        method = getattr(implementation, self.method_name)
        return method.encode_input(*resolve_value(self.method_args))


def _check_reference(value: Any, constants: Dict, declared: List[str], contract_name: str) -> None:
    if isinstance(value, list):
        for item in value:
            _check_reference(item, constants, declared, contract_name)
        return
    if not Variable.is_variable(value):
        return

    name = Variable.name_of(value)
    if DeployerAccount.matches(name) or Timestamp.matches(name):
        return

    if Constant.matches(name):
        if name not in constants:
            raise ConstructorParameters.Invalid(
                f"{contract_name} refers to undefined constant '{name}'."
            )
        constant_value = constants[name]
        if Variable.is_variable(constant_value) and Constant.matches(
            Variable.name_of(constant_value)
        ):
            raise ConstructorParameters.Invalid(
                f"Constant '{name}' cannot refer to another constant ({constant_value})."
            )
        _check_reference(constant_value, constants, declared, contract_name)
    elif name not in declared and name != DEFAULT_PROXY_ADMIN:
        raise ConstructorParameters.Invalid(
            f"{contract_name} refers to '{name}', which is not declared before it."
        )


def validate_references(config: Dict) -> None:
    """
    Every variable of a params file must be resolvable when its contract is deployed:
    constants are defined, and contracts are declared before they are referenced.
    """
    constants = config.get("constants") or dict()
    declared = list()
    for contract_name, contract_data in iter_contracts(config):
        for value in raw_values(contract_data):
            _check_reference(value, constants, declared, contract_name)
        declared.append(contract_name)


class ConstructorParameters:
    """Constructor arguments of every contract in a params file."""

    class Invalid(Exception):
        """Raised when the constructor parameters are invalid"""

    def __init__(self, parameters: OrderedDict, contract_types: Dict[str, str]):
        self.parameters = parameters
        self.contract_types = contract_types
        self.validate()

    def validate(self) -> None:
        for contract_name, parameters in self.parameters.items():
            container = get_contract_container(self.contract_types[contract_name])
            _check_constructor_inputs(
                contract_name=contract_name,
                abi_inputs=container.constructor.abi.inputs,
                resolved_parameters=resolve_values(parameters),
            )

    @classmethod
    def from_config(cls, config: Dict, timestamp: Optional[int] = None) -> "ConstructorParameters":
        print("Processing contract constructor parameters...")
        names = contract_names(config)
        parameters, contract_types = OrderedDict(), OrderedDict()
        for contract_name, contract_data in iter_contracts(config):
            raw_parameters = contract_data.get(CONSTRUCTOR_KEY) or OrderedDict()
            if not isinstance(raw_parameters, dict):
                raise ValueError(f"Malformed constructor parameter config for {contract_name}.")

            context = VariableContext(
                contract_names=names,
                contract_name=contract_name,
                constants=config.get("constants"),
                timestamp=timestamp,
            )
            parameters[contract_name] = parse_values(raw_parameters, context)
            contract_types[contract_name] = contract_data.get(CONTRACT_TYPE_KEY, contract_name)

        return cls(parameters=parameters, contract_types=contract_types)

    def contract_type(self, contract_name: str) -> str:
        """Returns the contract type deployed under a registry name."""
        try:
            return self.contract_types[contract_name]
        except KeyError:
            raise ValueError(f"Contract '{contract_name}' not found in deployment file.")

    def resolve(self, contract_name: str) -> OrderedDict:
        return resolve_values(self.parameters[contract_name])


class ProxyParameters:
    """
    Constructor arguments of the TransparentUpgradeableProxy in front of each contract
    with a 'proxy' entry: the implementation ('_logic'), the shared proxy admin
    ('admin_') and the encoded initializer call ('_data').
    """

    IMPLICIT_PARAMETERS = ("_logic", "_data")

    class Invalid(Exception):
        """Raised when the proxy parameters are invalid"""

    class ProxyInfo(typing.NamedTuple):
        contract_type_container: ContractContainer
        constructor_params: OrderedDict

    def __init__(self, contracts_proxy_info: OrderedDict):
        self.contracts_proxy_info = contracts_proxy_info
        self.validate()

    def validate(self) -> None:
        proxy_container = get_oz_dependency().TransparentUpgradeableProxy
        for contract_name, proxy_info in self.contracts_proxy_info.items():
            _check_constructor_inputs(
                contract_name=proxy_name(contract_name),
                abi_inputs=proxy_container.constructor.abi.inputs,
                resolved_parameters=resolve_values(proxy_info.constructor_params),
            )
            initializer = proxy_info.constructor_params["_data"]
            if isinstance(initializer, InitializerCall):
                initializer.validate()

    @classmethod
    def from_config(cls, config: Dict, timestamp: Optional[int] = None) -> "ProxyParameters":
        print("Processing proxy parameters...")
        names = contract_names(config)
        contracts_proxy_info = OrderedDict()
        for contract_name, contract_data in iter_contracts(config):
            if PROXY_KEY not in contract_data:
                continue
            context = VariableContext(
                contract_names=names,
                contract_name=contract_name,
                constants=config.get("constants"),
                check_for_proxy_instances=False,
                timestamp=timestamp,
            )
            contracts_proxy_info[contract_name] = cls._generate_proxy_info(contract_data, context)

        return cls(contracts_proxy_info=contracts_proxy_info)

    def contract_needs_proxy(self, contract_name: str) -> bool:
        return contract_name in self.contracts_proxy_info

    def resolve(self, contract_name: str) -> typing.Tuple[ContractContainer, OrderedDict]:
        """Returns the proxied contract type and the resolved proxy constructor parameters."""
        try:
            proxy_info = self.contracts_proxy_info[contract_name]
        except KeyError:
            raise ValueError(f"Unexpected contract to proxy: {contract_name}")
        return proxy_info.contract_type_container, resolve_values(proxy_info.constructor_params)

    @classmethod
    def _generate_proxy_info(cls, contract_data: Dict, context: VariableContext) -> ProxyInfo:
        proxy_data = contract_data[PROXY_KEY] or dict()
        contract_type = contract_data.get(CONTRACT_TYPE_KEY, context.contract_name)

        overrides = proxy_data.get(CONSTRUCTOR_KEY) or dict()
        for parameter in cls.IMPLICIT_PARAMETERS:
            if parameter in overrides:
                raise cls.Invalid(
                    f"'{parameter}' parameter cannot be specified: it is implicitly "
                    "the contract being proxied and its initializer"
                )

        raw_parameters = OrderedDict(
            [("_logic", f"${context.contract_name}"), ("admin_", f"${DEFAULT_PROXY_ADMIN}")]
        )
        raw_parameters.update(overrides)
        constructor_params = parse_values(raw_parameters, context)
        constructor_params["_data"] = cls._initializer(proxy_data, contract_type, context)

        return cls.ProxyInfo(
            contract_type_container=get_contract_container(contract_type),
            constructor_params=constructor_params,
        )

    @classmethod
    def _initializer(
        cls, proxy_data: Dict, contract_type: str, context: VariableContext
    ) -> typing.Union[InitializerCall, bytes]:
        initializer = proxy_data.get(INITIALIZER_KEY)
        if not initializer:
            return b""
        if not initializer.get("method"):
            raise cls.Invalid(f"Initializer for {context.contract_name} is missing a 'method'.")

        # initializer arguments refer to other contracts through their proxies
        args = parse_value(
            list(initializer.get("args") or list()),
            context.derive(check_for_proxy_instances=True),
        )
        return InitializerCall(
            contract_name=context.contract_name,
            contract_type=contract_type,
            method_name=initializer["method"],
            method_args=args,
        )


class Transactor:
    """An ape account sending validated transactions, confirmed by the operator."""

    def __init__(self, account: Optional[AccountAPI] = None, autosign: bool = False):
        self._account = account if account is not None else select_account()
        self._autosign = autosign
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        if not isinstance(self._account, TestAccountAPI):
            self._account.set_autosign(autosign)

    def get_account(self) -> AccountAPI:
        return self._account

    def transact(self, method: ContractTransactionHandler, *args) -> ReceiptAPI:
        named_args = _match_method_abi(method_abis=method.abis, args=args)
        contract = method.contract
        print(f"\nTransacting {contract.contract_type.name}[{contract.address[:10]}].{method}")
        for name, value in named_args.items():
            print(f"\t{name}={value}")
        if not self._autosign:
            _continue()
        return method(*args, sender=self._account)


class Deployer(Transactor):
    """
    Deploys the contracts of a params file from an ape account.

    Contracts deployed in a run, or reused from the chain's registry when resuming,
    are published to the registry by `finalize`.
    """

    def __init__(
        self,
        config: Dict,
        path: Path,
        verify: bool,
        account: Optional[AccountAPI] = None,
        autosign: bool = False,
        resume: bool = False,
    ):
        super().__init__(account, autosign)
        self.config = config
        self.path = path
        self.verify = verify
        self.resume = resume
        self.chain_id = get_config_chain_id(config)
        self.live = get_chain(self.chain_id).live

        check_plugins(verify=verify)
        self.registry_filepath = validate_config(config, resume=resume)
        validate_references(config)

        Deployments.reset(account=self._account)
        self._deployed = OrderedDict()
        self._existing_entries = list()
        if resume:
            self._load_registry()

        # every '$now' of a run resolves to the same timestamp
        self.timestamp = int(time.time())
        self.constructor_parameters = ConstructorParameters.from_config(config, self.timestamp)
        self.proxy_parameters = ProxyParameters.from_config(config, self.timestamp)

        self._print_deployment_info()
        if not self._autosign:
            if self.live:
                _confirm_network(get_chain(self.chain_id).name)
            else:
                _continue()

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "Deployer":
        return cls(_load_yaml(filepath), filepath, *args, **kwargs)

    @property
    def constants(self):
        """
        The constants of the params file as attributes, e.g. deployer.constants.USDC.
        Resolved on access: a constant naming a contract follows its deployment.
        """
        constants = resolve_constants(self.config, timestamp=self.timestamp)
        return namedtuple("Constants", list(constants))(**constants)

    @staticmethod
    def get_deployment(name: str) -> Optional[ContractInstance]:
        """Returns the contract deployed (or reused) under a registry name."""
        return Deployments.get(name)

    def _record(self, name: str, instance: ContractInstance) -> None:
        Deployments.record(name, instance)
        self._deployed[name] = instance
        # published right away so that a failed run can be resumed
        self._publish()

    def _publish(self, silent: bool = True) -> Path:
        return registry_from_deployments(
            deployments=self._deployed,
            output_filepath=self.registry_filepath,
            chain_id=self.chain_id,
            existing_entries=self._existing_entries,
            replace=True,
            silent=silent,
        )

    def _load_registry(self) -> None:
        if not self.registry_filepath.exists():
            print(f"(i) No registry at {self.registry_filepath}; nothing to resume.")
            return

        self._existing_entries = registry_entries_for_chain(self.registry_filepath, self.chain_id)
        published = contracts_from_registry(self.registry_filepath, chain_id=self.chain_id)
        for name, instance in published.items():
            Deployments.record(name, instance)
        print(f"(i) Resuming with {len(published)} published contract(s).")

    def live_log(self, message: str) -> None:
        """Prints a message on live networks only."""
        if self.live:
            print(message)

    def deploy(self, contract_name: str) -> ContractInstance:
        """
        Deploys a contract under its registry name. A proxied contract is deployed as
        an implementation behind a proxy, and the proxy is returned with the
        implementation ABI.
        """
        if self.resume:
            published = self.get_deployment(contract_name)
            if published is not None:
                print(f"\n(i) Reusing {contract_name} at {published.address}")
                return published

        container = get_contract_container(self.constructor_parameters.contract_type(contract_name))
        constructor_params = self.constructor_parameters.resolve(contract_name)

        if not self.proxy_parameters.contract_needs_proxy(contract_name):
            instance = self._deploy_contract(container, constructor_params, contract_name)
            self._record(contract_name, instance)
            return instance

        implementation = self._deploy_contract(
            container, constructor_params, implementation_name(contract_name)
        )
        self._record(implementation_name(contract_name), implementation)
        return self._deploy_proxy(contract_name)

    def _deploy_contract(
        self, container: ContractContainer, resolved_params: OrderedDict, name: str
    ) -> ContractInstance:
        if not self._autosign:
            _confirm_resolution(resolved_params, name)
        return self._account.deploy(container, *resolved_params.values())

    def _get_proxy_admin(self) -> ContractInstance:
        """The proxy admin shared by all proxies, deployed with the first of them."""
        proxy_admin = self.get_deployment(DEFAULT_PROXY_ADMIN)
        if proxy_admin is None:
            container = get_oz_dependency().ProxyAdmin
            proxy_admin = self._deploy_contract(container, OrderedDict(), DEFAULT_PROXY_ADMIN)
            self._record(DEFAULT_PROXY_ADMIN, proxy_admin)
        return proxy_admin

    def _deploy_proxy(self, contract_name: str) -> ContractInstance:
        self._get_proxy_admin()
        proxy_container = get_oz_dependency().TransparentUpgradeableProxy
        contract_container, proxy_params = self.proxy_parameters.resolve(contract_name)

        print(f"\nDeploying {proxy_container.contract_type.name} for {contract_name}.")
        proxy = self._deploy_contract(proxy_container, proxy_params, proxy_name(contract_name))
        self._record(proxy_name(contract_name), proxy)

        print(
            f"\nWrapping {contract_name} proxy at {proxy.address} "
            f"as {contract_container.contract_type.name}."
        )
        instance = contract_container.at(proxy.address, txn_hash=proxy.txn_hash)
        self._record(contract_name, instance)
        return instance

    def upgrade(self, contract_name: str, data: bytes = b"") -> ContractInstance:
        """Deploys a new implementation of a proxied contract and points its proxy at it."""
        proxy = self.get_deployment(proxy_name(contract_name))
        if proxy is None:
            raise ValueError(f"No proxy found for {contract_name}; it must be deployed first.")

        container = get_contract_container(self.constructor_parameters.contract_type(contract_name))
        implementation = self._deploy_contract(
            container,
            self.constructor_parameters.resolve(contract_name),
            implementation_name(contract_name),
        )
        self._record(implementation_name(contract_name), implementation)
        return self.upgradeTo(contract_name, implementation, proxy.address, data)

    def _get_proxy_admin_of(self, proxy_address: str) -> ContractInstance:
        admin_slot = chain.provider.get_storage(address=proxy_address, slot=EIP1967_ADMIN_SLOT)
        if admin_slot == EMPTY_BYTES32:
            raise ValueError(
                f"Admin slot for contract at {proxy_address} is empty. "
                "Are you sure this is an EIP1967-compatible proxy?"
            )
        return get_oz_dependency().ProxyAdmin.at(to_checksum_address(admin_slot[-20:]))

    def upgradeTo(
        self,
        contract_name: str,
        implementation: ContractInstance,
        proxy_address: str,
        data: bytes = b"",
    ) -> ContractInstance:
        proxy_admin = self._get_proxy_admin_of(proxy_address)
        if data:
            receipt = self.transact(
                proxy_admin.upgradeAndCall, proxy_address, implementation.address, data
            )
        else:
            receipt = self.transact(proxy_admin.upgrade, proxy_address, implementation.address)

        container = get_contract_container(implementation.contract_type.name)
        instance = container.at(proxy_address, txn_hash=receipt.txn_hash)
        self._record(contract_name, instance)
        return instance

    def finalize(self) -> Path:
        """Publishes the run to the registry and, if requested, to the block explorer."""
        registry_filepath = self._publish(silent=False)
        if self.verify:
            # a wrapped proxy is verified as its proxy and implementation entries
            verify_contracts(
                [
                    instance
                    for name, instance in self._deployed.items()
                    if not self.proxy_parameters.contract_needs_proxy(name)
                ]
            )
        return registry_filepath

    def _print_deployment_info(self) -> None:
        network = networks.provider.network
        print(
            f"Account: {self._account.address}",
            f"Config: {self.path}",
            f"Registry: {self.registry_filepath}",
            f"Verify: {self.verify}",
            f"Resume: {self.resume}",
            f"Network: {network.ecosystem.name}:{network.name} ({network.chain_id})",
            f"Gas Price: {networks.provider.gas_price}",
            sep="\n",
        )
