"""
Variables of the deployment params files.

A parameter value is either a literal or a '$' variable:

- ``$deployer``: the address of the deploying account
- ``$NAME`` (upper case): a constant of the params file
- ``$now``, ``$now+N``, ``$now-N``: the deployment timestamp shifted by N seconds
- ``$ContractName``: the address of a contract deployed earlier in the run

Variables are parsed when a params file is loaded and resolved on use. Contracts
that are not deployed yet resolve to the zero address, so that a whole params file
can be checked against the contract ABIs before anything is deployed.
"""

import re
import time
import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from ape.api import AccountAPI
from ape.contracts import ContractInstance
from ape.utils import ZERO_ADDRESS

from mango_deployment.constants import DEFAULT_PROXY_ADMIN, IMPLEMENTATION_SUFFIX, PROXY_SUFFIX

CONSTRUCTOR_KEY = "constructor"
PROXY_KEY = "proxy"
CONTRACT_TYPE_KEY = "contract_type"
INITIALIZER_KEY = "initializer"


def proxy_name(contract_name: str) -> str:
    """Registry name of the proxy in front of a contract."""
    return f"{contract_name}{PROXY_SUFFIX}"


def implementation_name(contract_name: str) -> str:
    """Registry name of the logic contract behind a proxy."""
    return f"{contract_name}{IMPLEMENTATION_SUFFIX}"


class Deployments:
    """The deploying account and the contracts deployed (or reused) in the current run."""

    account: Optional[AccountAPI] = None
    instances: Dict[str, ContractInstance] = OrderedDict()

    @classmethod
    def get(cls, name: str) -> Optional[ContractInstance]:
        return cls.instances.get(name)

    @classmethod
    def record(cls, name: str, instance: ContractInstance) -> None:
        cls.instances[name] = instance

    @classmethod
    def reset(cls, account: Optional[AccountAPI] = None) -> None:
        cls.account = account
        cls.instances = OrderedDict()


class VariableContext:
    """What the variables of a single contract entry can refer to."""

    def __init__(
        self,
        contract_names: List[str],
        contract_name: Optional[str],
        constants: Optional[Dict[str, Any]] = None,
        check_for_proxy_instances: bool = True,
        timestamp: Optional[int] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = constants or dict()
        # False: a proxied contract resolves to its implementation, not its proxy
        self.check_for_proxy_instances = check_for_proxy_instances
        self.timestamp = int(time.time()) if timestamp is None else timestamp

    def derive(self, **overrides) -> "VariableContext":
        values = dict(
            contract_names=self.contract_names,
            contract_name=self.contract_name,
            constants=self.constants,
            check_for_proxy_instances=self.check_for_proxy_instances,
            timestamp=self.timestamp,
        )
        values.update(overrides)
        return VariableContext(**values)


class Variable(ABC):
    PREFIX = "$"

    @abstractmethod
    def resolve(self) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, value: Any) -> bool:
        return isinstance(value, str) and value.startswith(cls.PREFIX)

    @classmethod
    def name_of(cls, value: str) -> str:
        return value[len(cls.PREFIX) :]

    @classmethod
    def parse(cls, value: str, context: VariableContext) -> "Variable":
        name = cls.name_of(value)
        for variable_type in (DeployerAccount, Timestamp, Constant):
            if variable_type.matches(name):
                return variable_type(name, context)
        return ContractName(name, context)


class DeployerAccount(Variable):
    NAME = "deployer"

    def __init__(self, name: str, context: VariableContext):
        pass

    @classmethod
    def matches(cls, name: str) -> bool:
        return name == cls.NAME

    def resolve(self) -> Any:
        if Deployments.account is None:
            return ZERO_ADDRESS
        return Deployments.account.address


class Timestamp(Variable):
    PATTERN = re.compile(r"now([+-]\d+)?")

    def __init__(self, name: str, context: VariableContext):
        offset = self.PATTERN.fullmatch(name).group(1)
        self.offset = int(offset) if offset else 0
        self.timestamp = context.timestamp

    @classmethod
    def matches(cls, name: str) -> bool:
        return cls.PATTERN.fullmatch(name) is not None

    def resolve(self) -> Any:
        return self.timestamp + self.offset


class Constant(Variable):
    def __init__(self, name: str, context: VariableContext):
        try:
            value = context.constants[name]
        except KeyError:
            raise ValueError(f"Constant '{name}' not found in deployment file.")

        if Variable.is_variable(value):
            if Constant.matches(Variable.name_of(value)):
                raise ValueError(f"Constant '{name}' cannot refer to another constant ({value}).")
            value = Variable.parse(value, context)
        self.name = name
        self.value = value

    @classmethod
    def matches(cls, name: str) -> bool:
        return name.isupper()

    def resolve(self) -> Any:
        return resolve_value(self.value)


class ContractName(Variable):
    def __init__(self, name: str, context: VariableContext):
        if name not in context.contract_names and name != DEFAULT_PROXY_ADMIN:
            raise ValueError(f"Contract name {name} not found")
        self.contract_name = name
        self.check_for_proxy_instances = context.check_for_proxy_instances

    def resolve(self) -> Any:
        names = [self.contract_name]
        if not self.check_for_proxy_instances:
            names.insert(0, implementation_name(self.contract_name))
        for name in names:
            instance = Deployments.get(name)
            if instance is not None:
                return instance.address
        return ZERO_ADDRESS


def resolve_value(value: Any) -> Any:
    if isinstance(value, list):
        return [resolve_value(item) for item in value]
    if isinstance(value, Variable):
        return value.resolve()
    return value


def resolve_values(values: typing.Mapping[str, Any]) -> OrderedDict:
    return OrderedDict((name, resolve_value(value)) for name, value in values.items())


def parse_value(value: Any, context: VariableContext) -> Any:
    if isinstance(value, list):
        return [parse_value(item, context) for item in value]
    if Variable.is_variable(value):
        return Variable.parse(value, context)
    return value


def parse_values(values: typing.Mapping[str, Any], context: VariableContext) -> OrderedDict:
    return OrderedDict((name, parse_value(value, context)) for name, value in values.items())


def iter_contracts(config: Dict) -> typing.Iterator[typing.Tuple[str, Dict]]:
    """Yields the name and entry of every contract in a params file, in order."""
    for item in config["contracts"]:
        if isinstance(item, str):
            yield item, dict()
        elif isinstance(item, dict) and len(item) == 1:
            ((name, data),) = item.items()
            yield name, data or dict()
        else:
            raise ValueError("Malformed constructor parameters YAML.")


def contract_names(config: Dict) -> List[str]:
    return [name for name, _ in iter_contracts(config)]


def raw_values(contract_data: Dict) -> List[Any]:
    """Every raw value of a contract entry that may hold variables."""
    values = list((contract_data.get(CONSTRUCTOR_KEY) or dict()).values())
    proxy_data = contract_data.get(PROXY_KEY) or dict()
    values.extend((proxy_data.get(CONSTRUCTOR_KEY) or dict()).values())
    initializer = proxy_data.get(INITIALIZER_KEY) or dict()
    values.extend(initializer.get("args") or list())
    return values


def resolve_constants(config: Dict, timestamp: Optional[int] = None) -> OrderedDict:
    """The constants of a params file, resolved."""
    constants = config.get("constants") or dict()
    context = VariableContext(
        contract_names=contract_names(config),
        contract_name=None,
        constants=constants,
        timestamp=timestamp,
    )
    return OrderedDict((name, Constant(name, context).resolve()) for name in constants)
