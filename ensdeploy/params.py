import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

from eth_typing import ChecksumAddress

from ensdeploy.constants import ARTIFACTS_DIR, SUPPORTED_LAYERS
from ensdeploy.exceptions import ConfigurationError
from ensdeploy.utils import _load_yaml

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
COMPANION_DELIMITER = ":"


class Resolver(typing.Protocol):
    """What a variable needs from a deployment context to resolve itself."""

    def account(self, role: str) -> ChecksumAddress:
        ...

    def get(self, name: str):
        ...

    def remote_get(self, network_id: str, name: str):
        ...


class VariableContext:
    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
        roles: List[str] = None,
        companion_contract_names: typing.Dict[str, List[str]] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = constants or dict()
        self.roles = roles or list()
        self.companion_contract_names = companion_contract_names or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, resolver: Resolver) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class RoleAccount(Variable):
    """A named account of the network being deployed to, e.g. $deployer or $owner."""

    def __init__(self, role: str, context: VariableContext):
        if role not in context.roles:
            raise ConstructorParameters.Invalid(
                f"Account role '{role}' used by {context.contract_name} is not configured."
            )
        self.role = role

    @classmethod
    def is_role(cls, value: str, context: VariableContext) -> bool:
        return value in context.roles

    def resolve(self, resolver: Resolver) -> Any:
        return resolver.account(self.role)


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise ConstructorParameters.Invalid(
                f"Constant '{constant_name}' not found in deployment file."
            )

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, resolver: Resolver) -> Any:
        return self.constant_value


class ContractName(Variable):
    """Address of a contract already recorded in this network's ledger."""

    def __init__(self, contract_name: str, context: VariableContext):
        if contract_name not in context.contract_names:
            raise ConstructorParameters.Invalid(f"Contract name {contract_name} not found")
        self.contract_name = contract_name

    def resolve(self, resolver: Resolver) -> Any:
        return resolver.get(self.contract_name).address


class CompanionContract(Variable):
    """Address of a contract recorded in a companion network's ledger, e.g. $l2:OwnedResolver."""

    def __init__(self, variable: str, context: VariableContext):
        self.network_id, self.contract_name = variable.split(COMPANION_DELIMITER, 1)
        companion_names = context.companion_contract_names.get(self.network_id)
        if companion_names is None:
            raise ConstructorParameters.Invalid(
                f"'{self.network_id}' is not a companion network of "
                f"{context.contract_name}'s network"
            )
        if self.contract_name not in companion_names:
            raise ConstructorParameters.Invalid(
                f"Contract name {self.contract_name} not found on companion network "
                f"'{self.network_id}'"
            )

    @classmethod
    def is_companion(cls, value: str) -> bool:
        return COMPANION_DELIMITER in value

    def resolve(self, resolver: Resolver) -> Any:
        return resolver.remote_get(self.network_id, self.contract_name).address


def _resolve_param(value: Any, resolver: Resolver) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, resolver) for v in value]

    if isinstance(value, Variable):
        return value.resolve(resolver)

    return value  # literally a value


def _resolve_params(parameters: OrderedDict, resolver: Resolver) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value, resolver)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX):]
    if RoleAccount.is_role(variable, context):
        return RoleAccount(variable, context)
    elif CompanionContract.is_companion(variable):
        return CompanionContract(variable, context)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractName(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: Mapping, variable_context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def _get_contract_names(contracts: List[Union[str, Dict]]) -> List[str]:
    contract_names = list()
    for contract_info in contracts:
        if isinstance(contract_info, str):
            contract_names.append(contract_info)
        elif isinstance(contract_info, dict):
            contract_names.extend(list(contract_info.keys()))
        else:
            raise ValueError("Malformed constructor parameters YAML.")

    return contract_names


class ConstructorParameters:
    """Represents the constructor parameters for the contracts of one network."""

    class Invalid(ConfigurationError):
        """Raised when the constructor parameters are invalid"""

    def __init__(self, parameters: OrderedDict):
        self.parameters = parameters

    @classmethod
    def from_config(
        cls,
        contracts: List[Union[str, Dict]],
        constants: Dict[str, Any] = None,
        roles: List[str] = None,
        companion_contract_names: Dict[str, List[str]] = None,
    ) -> "ConstructorParameters":
        contracts_config = OrderedDict()
        contract_names = _get_contract_names(contracts)
        for contract_info in contracts:
            if isinstance(contract_info, str):
                contracts_config[contract_info] = OrderedDict()
                continue

            if len(contract_info) != 1:
                raise ValueError("Malformed constructor parameters YAML.")

            contract_name = list(contract_info.keys())[0]  # only one entry
            contract_data = contract_info[contract_name] or dict()
            contracts_config[contract_name] = _process_raw_values(
                contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or dict(),
                VariableContext(
                    contract_names=contract_names,
                    contract_name=contract_name,
                    constants=constants,
                    roles=roles,
                    companion_contract_names=companion_contract_names,
                ),
            )

        return cls(parameters=contracts_config)

    def has(self, contract_name: str) -> bool:
        return contract_name in self.parameters

    def contract_names(self) -> List[str]:
        return list(self.parameters)

    def resolve(self, contract_name: str, resolver: Resolver) -> OrderedDict:
        """Resolves the constructor parameters for a single contract."""
        try:
            parameters = self.parameters[contract_name]
        except KeyError:
            raise self.Invalid(f"No constructor parameters declared for {contract_name}")
        return _resolve_params(parameters, resolver)


class NetworkParameters(NamedTuple):
    """Deployment parameters of one layer."""

    role: str
    name: str
    network_choice: str
    chain_id: int
    tags: typing.FrozenSet[str]
    companions: Dict[str, str]
    accounts: Dict[str, Union[str, int]]
    constants: Dict[str, Any]
    constructor_parameters: ConstructorParameters
    required_confirmations: Optional[int] = None


def get_artifact_filepath(config: Dict) -> Path:
    """Returns the filepath of the registry (artifact) file."""
    artifact_config = config.get("artifacts", {})
    artifact_dir = Path(artifact_config.get("dir", ARTIFACTS_DIR))
    filename = artifact_config.get("filename")
    if not filename:
        raise ConfigurationError("artifact filename is not set in params file.")
    return artifact_dir / filename


def validate_config(config: Dict) -> Path:
    """
    Checks the structure of a deployment parameters file
    and returns the filepath of its registry.
    """
    print("Validating parameters YAML...")

    deployment = config.get("deployment")
    if not deployment or not deployment.get("name"):
        raise ConfigurationError("deployment name is not set in params file.")

    networks = config.get("networks")
    if not networks:
        raise ConfigurationError("networks are not set in params file.")

    names = set()
    for role, network in networks.items():
        if role not in SUPPORTED_LAYERS:
            raise ConfigurationError(
                f"Unsupported layer '{role}'; expected one of {', '.join(SUPPORTED_LAYERS)}."
            )
        for key in ("name", "network", "chain_id"):
            if not network.get(key):
                raise ConfigurationError(f"{key} is not set for layer '{role}' in params file.")
        if network["name"] in names:
            raise ConfigurationError(f"Network name '{network['name']}' is used twice.")
        names.add(network["name"])
        if not network.get("accounts"):
            raise ConfigurationError(f"accounts are not set for layer '{role}' in params file.")
        for companion_role in (network.get("companions") or {}):
            if companion_role not in networks:
                raise ConfigurationError(
                    f"Companion '{companion_role}' of layer '{role}' is not configured."
                )

    return get_artifact_filepath(config=config)


class DeploymentParameters:
    """Deployment parameters for a pair of companion networks, loaded from YAML."""

    def __init__(self, config: typing.Dict, path: Path = None):
        self.path = path
        self.config = config
        self.registry_filepath = validate_config(config=config)
        self.name = config["deployment"]["name"]
        self.networks = OrderedDict()

        network_configs = config["networks"]
        contract_names = {
            role: _get_contract_names(network.get("contracts") or [])
            for role, network in network_configs.items()
        }
        shared_constants = config.get("constants") or dict()

        print("Processing contract constructor parameters...")
        for role, network in network_configs.items():
            companions = dict()
            for companion_role in (network.get("companions") or {}):
                companions[companion_role] = network_configs[companion_role]["name"]

            constants = dict(shared_constants)
            constants.update(network.get("constants") or dict())
            accounts = dict(network["accounts"])

            constructor_parameters = ConstructorParameters.from_config(
                contracts=network.get("contracts") or [],
                constants=constants,
                roles=list(accounts),
                companion_contract_names={c: contract_names[c] for c in companions},
            )
            self.networks[role] = NetworkParameters(
                role=role,
                name=network["name"],
                network_choice=network["network"],
                chain_id=int(network["chain_id"]),
                tags=frozenset(network.get("tags") or []),
                companions=companions,
                accounts=accounts,
                constants=constants,
                constructor_parameters=constructor_parameters,
                required_confirmations=network.get("required_confirmations"),
            )

    @classmethod
    def from_yaml(cls, filepath: Path) -> "DeploymentParameters":
        config = _load_yaml(filepath)
        return cls(config=config, path=filepath)

    def layer(self, role: str) -> NetworkParameters:
        try:
            return self.networks[role]
        except KeyError:
            raise ConfigurationError(
                f"Layer '{role}' is not configured in {self.path or 'params'}."
            )

    def layers(self) -> List[str]:
        return list(self.networks)
