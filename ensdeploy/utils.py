import json
from pathlib import Path
from typing import Any

import yaml
from ape import project
from ape.contracts import ContractContainer
from ens import ENS
from ens.utils import dns_encode_name, label_to_hash
from hexbytes import HexBytes

from ensdeploy.constants import LOCAL_NETWORK_NAMES


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def is_local_network(network_choice: str) -> bool:
    """'ethereum:local:test' -> True"""
    parts = network_choice.split(":")
    network_name = parts[1] if len(parts) > 1 else parts[0]
    return network_name in LOCAL_NETWORK_NAMES


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def to_json_compatible(value: Any) -> Any:
    """Converts constructor/call arguments into something the registry can store."""
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, dict):
        return {k: to_json_compatible(v) for k, v in value.items()}
    return value


#
# ENS names
#


def namehash(name: str) -> HexBytes:
    return HexBytes(ENS.namehash(name))


def labelhash(label: str) -> HexBytes:
    return HexBytes(label_to_hash(label))


def hex_encode_name(name: str) -> HexBytes:
    """DNS wire format encoding of an ENS name, as expected by the registrars."""
    return HexBytes(dns_encode_name(name))
