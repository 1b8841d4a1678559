from collections import OrderedDict
from typing import Any

from ape.utils import ZERO_ADDRESS


def _abort(message: str = "Aborting deployment!") -> None:
    print(message)
    exit(-1)


def _ask(question: str) -> None:
    """Aborts when the operator answers 'n' to a Y/N question."""
    if input(f"{question} Y/N? ").strip().lower() == "n":
        _abort()


def _confirm_deployment(contract_name: str) -> None:
    _ask(f"Deploy {contract_name}")


def _continue() -> None:
    _ask("Continue")


def _confirm_network(network_name: str) -> None:
    """Live networks need an explicit, upper case 'Y'."""
    answer = input(f"You are trying to use {network_name} network [Y/n] : ")
    if answer.strip() != "Y":
        _abort("Network not allowed. Aborting deployment!")


def _confirm_zero_address() -> None:
    _ask("Zero Address detected for deployment parameter; Continue?")


def _contains_zero_address(value: Any) -> bool:
    if isinstance(value, list):
        return any(_contains_zero_address(item) for item in value)
    return value == ZERO_ADDRESS


def _confirm_resolution(resolved_params: OrderedDict, contract_name: str) -> None:
    """Shows the resolved constructor parameters of a contract before it is deployed."""
    if not resolved_params:
        print(f"\n(i) No constructor parameters for {contract_name}")
    else:
        print(f"\nConstructor parameters for {contract_name}")
        for name, resolved_value in resolved_params.items():
            print(f"\t{name}={resolved_value}")

    _confirm_deployment(contract_name)
    if any(_contains_zero_address(value) for value in resolved_params.values()):
        _confirm_zero_address()
