import typing
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, NamedTuple, Sequence, Union

from ape import Contract
from ape.api import AccountAPI, ReceiptAPI
from ape.contracts import ContractContainer, ContractInstance
from ape.exceptions import ContractLogicError, TransactionError, TransactionNotFoundError
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from ethpm_types import MethodABI
from web3 import Web3
from web3.exceptions import TimeExhausted

from ensdeploy.confirm import _confirm_resolution, _continue
from ensdeploy.constants import DEFAULT_REQUIRED_CONFIRMATIONS, DEPLOYER
from ensdeploy.exceptions import (
    ConfigurationError,
    TransactionReverted,
    TransactionTimeout,
    UnknownRole,
)
from ensdeploy.networks import NetworkContext
from ensdeploy.registry import LedgerEntry
from ensdeploy.utils import get_contract_container, to_json_compatible

ContractRef = Union[LedgerEntry, str]
ConstructorArgs = Union[Mapping[str, Any], Sequence[Any]]

w3 = Web3()


class Receipt(NamedTuple):
    """A confirmed state-changing transaction."""

    tx_hash: str
    block_number: int
    sender: ChecksumAddress
    target: ChecksumAddress
    function: str
    args: tuple = ()


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def _target_address(contract: ContractRef) -> ChecksumAddress:
    if isinstance(contract, LedgerEntry):
        return contract.address
    return to_checksum_address(contract)


def _function_name(function: str) -> str:
    """'setAddr(bytes32,address)' -> 'setAddr'"""
    return function.split("(", 1)[0].strip()


def _args_list(constructor_args: ConstructorArgs) -> List[Any]:
    if isinstance(constructor_args, Mapping):
        return list(constructor_args.values())
    return list(constructor_args)


class ChainHandle(ABC):
    """
    Per-network access to the chain: named accounts, deployments and calls.

    Subclasses only implement the raw chain interactions; the ledger-backed
    idempotency of `deploy` lives here.
    """

    def __init__(self, network: NetworkContext):
        self.network = network

    def resolve_account(self, role: str) -> ChecksumAddress:
        return self.network.account(role)

    def deploy(
        self,
        unit_name: str,
        artifact: str = None,
        constructor_args: ConstructorArgs = (),
        sender: str = DEPLOYER,
        force: bool = False,
    ) -> LedgerEntry:
        """
        Deploys a contract unless the ledger already knows it.

        An existing entry is returned untouched (newly_deployed=False) without
        any chain interaction. Otherwise the transaction is submitted, and the
        ledger entry is only written once confirmation has been observed.
        """
        ledger = self.network.ledger
        if ledger.has(unit_name) and not force:
            return ledger.get(unit_name)._replace(newly_deployed=False)

        self.resolve_account(sender)
        entry = self._deploy(
            name=unit_name,
            artifact=artifact or unit_name,
            constructor_args=constructor_args,
            sender=sender,
        )
        ledger.put(unit_name, entry)
        return entry._replace(newly_deployed=True)

    def call(
        self,
        contract: ContractRef,
        function: str,
        args: Sequence[Any] = (),
        sender: str = DEPLOYER,
    ) -> Receipt:
        """Submits a state-changing transaction and blocks until it is confirmed."""
        self.resolve_account(sender)
        return self._transact(contract=contract, function=function, args=tuple(args), sender=sender)

    @abstractmethod
    def query(self, contract: ContractRef, function: str, args: Sequence[Any] = ()) -> Any:
        """Read-only call; never writes to the ledger."""
        raise NotImplementedError

    @abstractmethod
    def _deploy(
        self, name: str, artifact: str, constructor_args: ConstructorArgs, sender: str
    ) -> LedgerEntry:
        raise NotImplementedError

    @abstractmethod
    def _transact(
        self, contract: ContractRef, function: str, args: tuple, sender: str
    ) -> Receipt:
        raise NotImplementedError


#
# ape
#


def _get_abi(contract_instance: ContractInstance) -> List[dict]:
    """Returns the ABI of a contract instance."""
    contract_abi = list()
    for entry in contract_instance.contract_type.abi:
        contract_abi.append(entry.model_dump(mode="json"))
    return contract_abi


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Dict[str, Any]:
    """Validates the transaction arguments against the function ABI."""
    if len(method_abis) == 0:
        raise ValueError("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return named_args
    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Any],
    constructor_args: ConstructorArgs,
) -> None:
    """Validates the constructor parameters against the constructor ABI."""
    values = _args_list(constructor_args)
    if len(values) != len(abi_inputs):
        raise ConfigurationError(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(values)}."
        )
    if not abi_inputs:
        return  # no constructor parameters

    names = list(constructor_args) if isinstance(constructor_args, Mapping) else None
    for position, (abi_input, value) in enumerate(zip(abi_inputs, values)):
        if names is not None and abi_input.name != names[position]:
            raise ConfigurationError(
                f"{contract_name} constructor parameter '{names[position]}' at position "
                f"{position} does not match the expected ABI name '{abi_input.name}'."
            )
        if not w3.is_encodable(abi_input.type, value):
            raise ConfigurationError(
                f"Constructor param '{abi_input.name}' at position {position} has a value "
                f"'{value}' whose type does not match expected ABI type '{abi_input.type}'"
            )


class ApeChainHandle(ChainHandle):
    """
    Chain handle backed by the active ape provider plus ape accounts
    for each named role, with validated/annotated execution.
    """

    def __init__(
        self,
        network: NetworkContext,
        signers: Mapping[str, AccountAPI],
        autosign: bool = False,
        required_confirmations: int = DEFAULT_REQUIRED_CONFIRMATIONS,
    ):
        super().__init__(network)
        self._signers = dict(signers)
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
            for signer in self._signers.values():
                if hasattr(signer, "set_autosign"):
                    signer.set_autosign(autosign)
        self._autosign = autosign
        self._required_confirmations = required_confirmations

    def resolve_account(self, role: str) -> ChecksumAddress:
        return self._signer(role).address

    def _signer(self, role: str) -> AccountAPI:
        try:
            return self._signers[role]
        except KeyError:
            raise UnknownRole(role=role, network=self.network.name)

    def _get_kwargs(self) -> typing.Dict[str, Any]:
        return {"required_confirmations": self._required_confirmations}

    def _instance(self, contract: ContractRef) -> ContractInstance:
        if isinstance(contract, LedgerEntry):
            return Contract(contract.address, abi=contract.abi)
        return Contract(to_checksum_address(contract))

    def _deploy(
        self, name: str, artifact: str, constructor_args: ConstructorArgs, sender: str
    ) -> LedgerEntry:
        container: ContractContainer = get_contract_container(artifact)
        _validate_constructor_abi_inputs(
            contract_name=artifact,
            abi_inputs=container.constructor.abi.inputs,
            constructor_args=constructor_args,
        )
        if not self._autosign:
            _confirm_resolution(constructor_args, name, self.network.name)

        values = _args_list(constructor_args)
        signer = self._signer(sender)
        try:
            instance = signer.deploy(container, *values, **self._get_kwargs())
        except (TimeExhausted, TransactionNotFoundError) as e:
            raise TransactionTimeout(f"Deployment of {name} was not confirmed: {e}") from e
        except TransactionError as e:
            raise TransactionReverted(f"Deployment of {name} reverted: {e}") from e

        receipt: ReceiptAPI = instance.receipt
        return LedgerEntry(
            network=self.network.name,
            name=name,
            address=to_checksum_address(instance.address),
            abi=_get_abi(instance),
            constructor_args=to_json_compatible(values),
            tx_hash=_hex(receipt.txn_hash),
            block_number=receipt.block_number,
            deployer=receipt.transaction.sender,
        )

    def _transact(
        self, contract: ContractRef, function: str, args: tuple, sender: str
    ) -> Receipt:
        instance = self._instance(contract)
        method = getattr(instance, _function_name(function))
        named_args = _validate_method_args(method_abis=method.abis, args=args)
        base_message = (
            f"\nTransacting {instance.contract_type.name}"
            f"[{instance.address[:10]}].{function} on {self.network.name}"
        )
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        if not self._autosign:
            _continue()

        signer = self._signer(sender)
        try:
            receipt = method(*args, sender=signer, **self._get_kwargs())
        except (TimeExhausted, TransactionNotFoundError) as e:
            raise TransactionTimeout(f"{function} was not confirmed: {e}") from e
        except TransactionError as e:
            raise TransactionReverted(f"{function} reverted: {e}") from e

        if receipt.failed:
            raise TransactionReverted(f"{function} reverted (tx: {_hex(receipt.txn_hash)})")

        return Receipt(
            tx_hash=_hex(receipt.txn_hash),
            block_number=receipt.block_number,
            sender=signer.address,
            target=_target_address(contract),
            function=function,
            args=args,
        )

    def query(self, contract: ContractRef, function: str, args: Sequence[Any] = ()) -> Any:
        instance = self._instance(contract)
        method = getattr(instance, _function_name(function))
        try:
            return method(*args)
        except ContractLogicError as e:
            raise TransactionReverted(f"{function} reverted: {e}") from e
