import pytest
from eth_utils import to_checksum_address

from ensdeploy.bootstrap import (
    BootstrapStep,
    OwnershipState,
    RootOwnershipHandoff,
    assign_root_node,
    ensure_addr,
    ensure_allow_list_disabled,
    ensure_approval_for_all,
    ensure_character_pricing,
    ensure_controller,
    ensure_name_allowed,
    ensure_owner,
    ensure_registration_params,
    ensure_resolver,
    ensure_subnode_owner,
    ensure_tld_wrapped,
    run_steps,
)
from ensdeploy.constants import DEPLOYER, OWNER, TLD_FUSES, TLD_WRAP_EXPIRY, ZERO_HASH
from ensdeploy.exceptions import BootstrapError, TransactionReverted, UnexpectedOwner
from ensdeploy.utils import namehash

STRANGER = to_checksum_address("0x" + "5a" * 20)


@pytest.fixture()
def registry(deployed):
    return deployed("ENSRegistry")


@pytest.fixture()
def root(deployed, registry):
    return deployed("Root", args=[registry.address])


@pytest.fixture()
def name_wrapper(deployed, registry):
    return deployed("L2NameWrapper", args=[registry.address])


def test_handoff_from_deployer(chain, root, named_accounts):
    result = RootOwnershipHandoff(chain, root).run()

    assert result.complete
    assert [r.function for r in result.receipts] == [
        "transferOwnership(address)",
        "setController(address,bool)",
    ]
    assert [tx[2] for tx in chain.calls] == ["transferOwnership", "setController"]
    assert chain.calls[0][4] == DEPLOYER
    assert chain.calls[1][4] == OWNER
    assert chain.query(root, "owner()") == named_accounts[OWNER]
    assert chain.query(root, "controllers(address)", (named_accounts[OWNER],))


def test_handoff_rerun_sends_nothing(chain, root):
    RootOwnershipHandoff(chain, root).run()
    transactions = list(chain.transactions)

    result = RootOwnershipHandoff(chain, root).run()

    assert result.state is OwnershipState.COMPLETE
    assert result.receipts == []
    assert chain.transactions == transactions


def test_handoff_resumes_after_interruption(chain, root, named_accounts):
    chain.call(root, "transferOwnership(address)", (named_accounts[OWNER],), sender=DEPLOYER)
    handoff = RootOwnershipHandoff(chain, root)
    assert handoff.observe() is OwnershipState.OWNED_BY_FINAL_OWNER

    result = handoff.run()

    assert result.complete
    assert [r.function for r in result.receipts] == ["setController(address,bool)"]


def test_handoff_leaves_foreign_owner_alone(chain, root):
    chain.call(root, "transferOwnership(address)", (STRANGER,), sender=DEPLOYER)
    transactions = list(chain.transactions)

    result = RootOwnershipHandoff(chain, root).run()

    assert result.state is OwnershipState.OWNED_BY_OTHER
    assert not result.complete
    assert isinstance(result.warning, UnexpectedOwner)
    assert STRANGER in str(result.warning)
    assert result.receipts == []
    assert chain.transactions == transactions
    assert chain.query(root, "owner()") == STRANGER


def test_handoff_reverted_transaction_propagates(chain, root):
    chain.revert_functions.add("transferOwnership")
    with pytest.raises(TransactionReverted):
        RootOwnershipHandoff(chain, root).run()


def test_handoff_without_progress(chain, root, monkeypatch):
    handoff = RootOwnershipHandoff(chain, root)
    monkeypatch.setattr(handoff, "observe", lambda: OwnershipState.OWNED_BY_DEPLOYER)
    with pytest.raises(BootstrapError, match="still owned-by-deployer"):
        handoff.run()


def test_assign_root_node(chain, registry, root):
    step = assign_root_node(registry, root)

    assert len(run_steps(chain, [step])) == 1
    assert chain.query(registry, "owner(bytes32)", (ZERO_HASH,)) == root.address
    assert run_steps(chain, [step]) == []


def test_step_without_effect(chain, registry):
    step = BootstrapStep(
        name="never holds",
        check=lambda c: False,
        apply=lambda c: c.call(registry, "disableAllowList()", ()),
    )
    with pytest.raises(BootstrapError, match="'never holds' did not take effect"):
        run_steps(chain, [step])


def test_unruggable_tld_setup(chain, registry, root, name_wrapper, named_accounts):
    deployer = named_accounts[DEPLOYER]
    steps = [
        assign_root_node(registry, root),
        ensure_subnode_owner(registry, root, "unruggable", deployer, accept=[name_wrapper]),
        ensure_approval_for_all(registry, name_wrapper, DEPLOYER),
        ensure_tld_wrapped(name_wrapper, "unruggable", OWNER, TLD_FUSES, TLD_WRAP_EXPIRY),
    ]
    RootOwnershipHandoff(chain, root).run()

    receipts = run_steps(chain, steps)

    assert [r.function.split("(")[0] for r in receipts] == [
        "setOwner",
        "setSubnodeOwner",
        "setApprovalForAll",
        "wrapTLD",
    ]
    node = namehash("unruggable")
    assert chain.query(registry, "owner(bytes32)", (node,)) == name_wrapper.address
    token_id = int.from_bytes(node, "big")
    assert chain.query(name_wrapper, "ownerOf(uint256)", (token_id,)) == named_accounts[OWNER]

    # the wrapper now owns the TLD; nothing is taken back from it
    assert run_steps(chain, steps) == []


def test_subnode_owner_requires_controller(chain, registry, root, named_accounts):
    run_steps(chain, [assign_root_node(registry, root)])
    step = ensure_subnode_owner(registry, root, "unruggable", named_accounts[DEPLOYER])
    with pytest.raises(TransactionReverted):
        run_steps(chain, [step])


def test_registrar_wiring(chain, deployed, name_wrapper):
    registrar = deployed("L2SubnameRegistrar", args=[name_wrapper.address])
    steps = [
        ensure_controller(name_wrapper, registrar),
        ensure_name_allowed(registrar, "unruggable"),
        ensure_allow_list_disabled(registrar),
    ]

    assert len(run_steps(chain, steps)) == 3
    assert chain.query(name_wrapper, "controllers(address)", (registrar.address,))
    assert chain.query(registrar, "allowedNames(bytes32)", (namehash("unruggable"),))
    assert not chain.query(registrar, "useAllowList()")
    assert run_steps(chain, steps) == []


def test_ensure_owner(chain, deployed):
    controller = deployed("L2FixedPriceRenewalController")
    step = ensure_owner(controller, STRANGER)

    assert len(run_steps(chain, [step])) == 1
    assert chain.query(controller, "owner()") == STRANGER
    assert run_steps(chain, [step]) == []


def test_ensure_owner_of_foreign_contract(chain, deployed, named_accounts):
    controller = deployed("L2FixedPriceRenewalController")
    chain.call(controller, "transferOwnership(address)", (STRANGER,))
    step = ensure_owner(controller, named_accounts[OWNER])

    with pytest.raises(UnexpectedOwner):
        run_steps(chain, [step])


def test_resolver_records(chain, registry, deployed, named_accounts):
    resolver = deployed("L2PublicResolver", args=[registry.address])
    chain.call(
        registry,
        "setOwner(bytes32,address)",
        (ZERO_HASH, named_accounts[OWNER]),
        sender=DEPLOYER,
    )
    steps = [
        ensure_resolver(registry, "resolver.eth", resolver),
        ensure_addr(resolver, "resolver.eth", resolver),
    ]

    assert len(run_steps(chain, steps)) == 2
    node = namehash("resolver.eth")
    assert chain.query(registry, "resolver(bytes32)", (node,)) == resolver.address
    assert chain.query(resolver, "addr(bytes32)", (node,)) == resolver.address
    assert run_steps(chain, steps) == []


def test_registration_params(chain, deployed):
    registrar = deployed("L2EthRegistrar")
    step = ensure_registration_params(registrar, [2419200, 31536000000, 3, 255])

    receipts = run_steps(chain, [step])

    assert [receipt.function for receipt in receipts] == [
        "setParams(uint64,uint64,uint16,uint16)"
    ]
    assert chain.query(registrar, "minChars()") == 3
    assert chain.query(registrar, "maxRegistrationDuration()") == 31536000000
    assert run_steps(chain, [step]) == []

    # a changed bound is written again
    changed = ensure_registration_params(registrar, [2419200, 31536000000, 5, 255])
    assert len(run_steps(chain, [changed])) == 1


def test_character_pricing(chain, deployed):
    controller = deployed("L2PricePerCharRenewalController")
    chain.call(controller, "setPricingForAllLengths(uint256[])", ([1, 2],))
    step = ensure_character_pricing(controller, [1, 2, 3])

    # the on-chain list is shorter than the configured one
    assert len(run_steps(chain, [step])) == 1
    assert chain.query(controller, "charAmounts(uint256)", (2,)) == 3
    assert run_steps(chain, [step]) == []
