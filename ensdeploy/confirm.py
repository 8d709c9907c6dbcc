from typing import Mapping, Sequence, Union

from ape.utils import ZERO_ADDRESS

from ensdeploy.exceptions import RunAborted


def _abort() -> None:
    print("Aborting deployment!")
    raise RunAborted("Deployment aborted by operator.")


def _confirm_deployment(contract_name: str, network: str) -> None:
    """Asks the user to confirm the deployment of a single contract."""
    answer = input(f"Deploy {contract_name} on {network} Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _confirm_zero_address() -> None:
    answer = input("Zero Address detected for deployment parameter; Continue? Y/N? ")
    if answer.lower().strip() == "n":
        _abort()


def _contains_zero_address(value) -> bool:
    if isinstance(value, (list, tuple)):
        return any(_contains_zero_address(v) for v in value)
    return value == ZERO_ADDRESS


def _confirm_resolution(
    resolved_params: Union[Mapping, Sequence], contract_name: str, network: str
) -> None:
    """Asks the user to confirm the resolved constructor parameters for a single contract."""
    if len(resolved_params) == 0:
        print(f"\n(i) No constructor parameters for {contract_name}")
        _confirm_deployment(contract_name, network)
        return

    if isinstance(resolved_params, Mapping):
        named_params = resolved_params.items()
    else:
        named_params = ((f"[{i}]", v) for i, v in enumerate(resolved_params))

    print(f"\nConstructor parameters for {contract_name}")
    contains_zero_address = False
    for name, resolved_value in named_params:
        print(f"\t{name}={resolved_value}")
        if not contains_zero_address:
            contains_zero_address = _contains_zero_address(resolved_value)
    _confirm_deployment(contract_name, network)
    if contains_zero_address:
        _confirm_zero_address()
