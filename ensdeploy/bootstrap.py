"""
Post-deploy wiring of deployed contracts.

Everything here may run against a system left half-configured by an
interrupted run, so on-chain state is re-read immediately before every
state-changing call and nothing is sent when the target state already holds.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from ape.utils import ZERO_ADDRESS
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from ensdeploy.chain import ChainHandle, ContractRef, Receipt
from ensdeploy.constants import DEPLOYER, OWNER, ZERO_HASH
from ensdeploy.exceptions import BootstrapError, TransactionReverted, UnexpectedOwner
from ensdeploy.registry import LedgerEntry
from ensdeploy.utils import hex_encode_name, labelhash, namehash


def _same_address(a: Any, b: Any) -> bool:
    if not a or not b:
        return False
    return to_checksum_address(a) == to_checksum_address(b)


def _name_of(contract: ContractRef) -> str:
    if isinstance(contract, LedgerEntry):
        return contract.name
    return str(contract)


def _address_of(contract: ContractRef) -> ChecksumAddress:
    if isinstance(contract, LedgerEntry):
        return contract.address
    return to_checksum_address(contract)


#
# Root ownership handoff
#


class OwnershipState(Enum):
    UNOWNED = "unowned"
    OWNED_BY_DEPLOYER = "owned-by-deployer"
    OWNED_BY_FINAL_OWNER = "owned-by-final-owner"
    # owned by the final owner, which is also a registered controller
    COMPLETE = "complete"
    OWNED_BY_OTHER = "owned-by-other"


@dataclass
class HandoffResult:
    state: OwnershipState
    receipts: List[Receipt] = field(default_factory=list)
    warning: Optional[UnexpectedOwner] = None

    @property
    def complete(self) -> bool:
        return self.state is OwnershipState.COMPLETE


class RootOwnershipHandoff:
    """
    Moves ownership of the root contract from the deployer to the final owner,
    then registers the final owner as a controller.

        owned-by-deployer --transferOwnership--> owned-by-final-owner
        owned-by-final-owner --setController--> complete

    Any other owner stops the handoff with a warning and no transaction.
    """

    # two transitions, plus one observation per transition to confirm progress
    MAX_TRANSITIONS = 4

    def __init__(
        self,
        chain: ChainHandle,
        root: ContractRef,
        deployer_role: str = DEPLOYER,
        owner_role: str = OWNER,
    ):
        self.chain = chain
        self.root = root
        self.deployer_role = deployer_role
        self.owner_role = owner_role
        self.owner = None  # last observed owner

    @property
    def deployer_address(self) -> ChecksumAddress:
        return self.chain.resolve_account(self.deployer_role)

    @property
    def final_owner_address(self) -> ChecksumAddress:
        return self.chain.resolve_account(self.owner_role)

    def observe(self) -> OwnershipState:
        """Re-reads the on-chain state of the root contract."""
        self.owner = self.chain.query(self.root, "owner()")
        final_owner = self.final_owner_address

        if _same_address(self.owner, final_owner):
            if self.chain.query(self.root, "controllers(address)", (final_owner,)):
                return OwnershipState.COMPLETE
            return OwnershipState.OWNED_BY_FINAL_OWNER
        if _same_address(self.owner, self.deployer_address):
            return OwnershipState.OWNED_BY_DEPLOYER
        if not self.owner or _same_address(self.owner, ZERO_ADDRESS):
            return OwnershipState.UNOWNED
        return OwnershipState.OWNED_BY_OTHER

    def transfer_ownership(self) -> Receipt:
        return self.chain.call(
            self.root,
            "transferOwnership(address)",
            (self.final_owner_address,),
            sender=self.deployer_role,
        )

    def register_controller(self) -> Receipt:
        return self.chain.call(
            self.root,
            "setController(address,bool)",
            (self.final_owner_address, True),
            sender=self.owner_role,
        )

    def run(self) -> HandoffResult:
        receipts = list()
        transitions = {
            OwnershipState.OWNED_BY_DEPLOYER: self.transfer_ownership,
            OwnershipState.OWNED_BY_FINAL_OWNER: self.register_controller,
        }

        previous = None
        for _ in range(self.MAX_TRANSITIONS):
            state = self.observe()
            if state is OwnershipState.COMPLETE:
                return HandoffResult(state=state, receipts=receipts)

            if state in (OwnershipState.UNOWNED, OwnershipState.OWNED_BY_OTHER):
                warning = UnexpectedOwner(contract=_name_of(self.root), owner=str(self.owner))
                return HandoffResult(state=state, receipts=receipts, warning=warning)

            if state is previous:
                raise BootstrapError(
                    f"{_name_of(self.root)} is still {state.value} after {receipts[-1].function}"
                )
            receipts.append(transitions[state]())
            previous = state

        raise BootstrapError(
            f"Ownership handoff of {_name_of(self.root)} did not complete "
            f"after {self.MAX_TRANSITIONS} transitions"
        )


#
# Idempotent steps
#


@dataclass(frozen=True)
class BootstrapStep:
    """A state-changing call guarded by a check of the state it establishes."""

    name: str
    check: Callable[[ChainHandle], bool]
    apply: Callable[[ChainHandle], Receipt]


def run_steps(chain: ChainHandle, steps: Sequence[BootstrapStep]) -> List[Receipt]:
    """
    Runs each step whose check does not hold yet, in order.
    Returns the receipts of the steps that acted.
    """
    receipts = list()
    for step in steps:
        if step.check(chain):
            continue
        receipts.append(step.apply(chain))
        if not step.check(chain):
            raise BootstrapError(f"'{step.name}' did not take effect")
    return receipts


def assign_root_node(
    registry: ContractRef, root: ContractRef, sender: str = DEPLOYER
) -> BootstrapStep:
    """Makes the root contract the owner of the registry's root node."""
    return BootstrapStep(
        name="assign root node",
        check=lambda chain: _same_address(
            chain.query(registry, "owner(bytes32)", (ZERO_HASH,)), _address_of(root)
        ),
        apply=lambda chain: chain.call(
            registry, "setOwner(bytes32,address)", (ZERO_HASH, _address_of(root)), sender=sender
        ),
    )


def ensure_controller(
    target: ContractRef, controller: ContractRef, sender: str = DEPLOYER
) -> BootstrapStep:
    return BootstrapStep(
        name=f"{_name_of(controller)} controls {_name_of(target)}",
        check=lambda chain: bool(
            chain.query(target, "controllers(address)", (_address_of(controller),))
        ),
        apply=lambda chain: chain.call(
            target, "setController(address,bool)", (_address_of(controller), True), sender=sender
        ),
    )


def ensure_subnode_owner(
    registry: ContractRef,
    root: ContractRef,
    label: str,
    owner: ContractRef,
    accept: Sequence[ContractRef] = (),
    sender: str = OWNER,
) -> BootstrapStep:
    """
    Assigns the top level domain `label` to `owner` through the root contract.
    Owners listed in `accept` (e.g. a name wrapper holding the wrapped TLD)
    count as already done.
    """
    node = namehash(label)

    def check(chain: ChainHandle) -> bool:
        current = chain.query(registry, "owner(bytes32)", (node,))
        return any(_same_address(current, _address_of(o)) for o in (owner, *accept))

    return BootstrapStep(
        name=f"owner of .{label}",
        check=check,
        apply=lambda chain: chain.call(
            root,
            "setSubnodeOwner(bytes32,address)",
            (labelhash(label), _address_of(owner)),
            sender=sender,
        ),
    )


def ensure_approval_for_all(
    registry: ContractRef, operator: ContractRef, owner_role: str = DEPLOYER
) -> BootstrapStep:
    return BootstrapStep(
        name=f"{_name_of(operator)} approved on {_name_of(registry)}",
        check=lambda chain: bool(
            chain.query(
                registry,
                "isApprovedForAll(address,address)",
                (chain.resolve_account(owner_role), _address_of(operator)),
            )
        ),
        apply=lambda chain: chain.call(
            registry,
            "setApprovalForAll(address,bool)",
            (_address_of(operator), True),
            sender=owner_role,
        ),
    )


def ensure_tld_wrapped(
    name_wrapper: ContractRef,
    label: str,
    owner_role: str,
    fuses: int,
    expiry: int,
    sender: str = DEPLOYER,
) -> BootstrapStep:
    token_id = int.from_bytes(namehash(label), "big")
    return BootstrapStep(
        name=f".{label} wrapped",
        check=lambda chain: not _same_address(
            chain.query(name_wrapper, "ownerOf(uint256)", (token_id,)) or ZERO_ADDRESS,
            ZERO_ADDRESS,
        ),
        apply=lambda chain: chain.call(
            name_wrapper,
            "wrapTLD(bytes,address,uint32,uint64)",
            (hex_encode_name(label), chain.resolve_account(owner_role), int(fuses), expiry),
            sender=sender,
        ),
    )


def ensure_name_allowed(registrar: ContractRef, name: str, sender: str = DEPLOYER) -> BootstrapStep:
    return BootstrapStep(
        name=f"{name} allowed",
        check=lambda chain: bool(
            chain.query(registrar, "allowedNames(bytes32)", (namehash(name),))
        ),
        apply=lambda chain: chain.call(
            registrar, "allowName(bytes,bool)", (hex_encode_name(name), True), sender=sender
        ),
    )


def ensure_allow_list_disabled(registrar: ContractRef, sender: str = DEPLOYER) -> BootstrapStep:
    return BootstrapStep(
        name="allow list disabled",
        check=lambda chain: not chain.query(registrar, "useAllowList()"),
        apply=lambda chain: chain.call(registrar, "disableAllowList()", (), sender=sender),
    )


def ensure_owner(target: ContractRef, new_owner: str, sender: str = DEPLOYER) -> BootstrapStep:
    """
    Transfers an Ownable contract to `new_owner` (an address).
    A contract owned by anyone but the sender is left alone.
    """

    def apply(chain: ChainHandle) -> Receipt:
        current = chain.query(target, "owner()")
        if not _same_address(current, chain.resolve_account(sender)):
            raise UnexpectedOwner(contract=_name_of(target), owner=str(current))
        return chain.call(
            target, "transferOwnership(address)", (to_checksum_address(new_owner),), sender=sender
        )

    return BootstrapStep(
        name=f"{_name_of(target)} owned by {new_owner}",
        check=lambda chain: _same_address(chain.query(target, "owner()"), new_owner),
        apply=apply,
    )


def ensure_resolver(
    registry: ContractRef, name: str, resolver: ContractRef, sender: str = OWNER
) -> BootstrapStep:
    node = namehash(name)
    return BootstrapStep(
        name=f"resolver of {name}",
        check=lambda chain: _same_address(
            chain.query(registry, "resolver(bytes32)", (node,)), _address_of(resolver)
        ),
        apply=lambda chain: chain.call(
            registry, "setResolver(bytes32,address)", (node, _address_of(resolver)), sender=sender
        ),
    )


def ensure_addr(
    resolver: ContractRef, name: str, address: ContractRef, sender: str = OWNER
) -> BootstrapStep:
    node = namehash(name)
    return BootstrapStep(
        name=f"address of {name}",
        check=lambda chain: _same_address(
            chain.query(resolver, "addr(bytes32)", (node,)), _address_of(address)
        ),
        apply=lambda chain: chain.call(
            resolver, "setAddr(bytes32,address)", (node, _address_of(address)), sender=sender
        ),
    )


REGISTRATION_PARAM_GETTERS = (
    "minRegistrationDuration()",
    "maxRegistrationDuration()",
    "minChars()",
    "maxChars()",
)


def ensure_registration_params(
    registrar: ContractRef, params: Sequence[int], sender: str = DEPLOYER
) -> BootstrapStep:
    """Sets the registration duration and name length bounds of a registrar."""
    params = tuple(int(value) for value in params)
    return BootstrapStep(
        name=f"registration params of {_name_of(registrar)}",
        check=lambda chain: tuple(
            chain.query(registrar, getter) for getter in REGISTRATION_PARAM_GETTERS
        ) == params,
        apply=lambda chain: chain.call(
            registrar, "setParams(uint64,uint64,uint16,uint16)", params, sender=sender
        ),
    )


def ensure_character_pricing(
    controller: ContractRef, prices: Sequence[int], sender: str = DEPLOYER
) -> BootstrapStep:
    """Sets the per-length renewal prices of a price-per-character controller."""
    prices = [int(price) for price in prices]

    def check(chain: ChainHandle) -> bool:
        for index, price in enumerate(prices):
            try:
                current = chain.query(controller, "charAmounts(uint256)", (index,))
            except TransactionReverted:
                # the on-chain price list is shorter
                return False
            if current != price:
                return False
        return True

    return BootstrapStep(
        name=f"character pricing of {_name_of(controller)}",
        check=check,
        apply=lambda chain: chain.call(
            controller, "setPricingForAllLengths(uint256[])", (prices,), sender=sender
        ),
    )
