from collections import defaultdict

import pytest
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes

from ensdeploy.chain import ChainHandle, Receipt, _function_name, _target_address
from ensdeploy.constants import DEPLOYER, L1, L2, OWNER, USE_ROOT, ZERO_HASH
from ensdeploy.exceptions import TransactionReverted, TransactionTimeout
from ensdeploy.networks import NetworkContext
from ensdeploy.registry import Ledger, LedgerEntry
from ensdeploy.utils import namehash

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEPLOYER_ADDRESS = to_checksum_address("0x" + "d1" * 20)
OWNER_ADDRESS = to_checksum_address("0x" + "0e" * 20)
STRANGER_ADDRESS = to_checksum_address("0x" + "5a" * 20)

L1_NETWORK = "l1-test"
L2_NETWORK = "l2-test"

REGISTRATION_PARAM_NAMES = (
    "minRegistrationDuration",
    "maxRegistrationDuration",
    "minChars",
    "maxChars",
)


def _node(value) -> str:
    return "0x" + bytes(HexBytes(value)).hex()


def _decode_name(encoded) -> str:
    """DNS wire format -> dotted name"""
    data = bytes(HexBytes(encoded))
    labels = list()
    while data and data[0]:
        length = data[0]
        labels.append(data[1 : 1 + length].decode())
        data = data[1 + length :]
    return ".".join(labels)


class FakeChainHandle(ChainHandle):
    """
    In-memory chain for one network.

    Deployments get deterministic addresses, every transaction is logged, and
    the handful of ownership/registry/wrapper functions used by the bootstrap
    steps are simulated against per-contract storage.
    """

    def __init__(self, network, address_prefix="c0"):
        super().__init__(network)
        self.address_prefix = address_prefix
        self.transactions = list()
        self.storage = defaultdict(dict)
        self.revert_deploys = set()
        self.timeout_deploys = set()
        self.revert_functions = set()
        self.block_number = 0

    @property
    def deployments(self):
        return [tx for tx in self.transactions if tx[0] == "deploy"]

    @property
    def calls(self):
        return [tx for tx in self.transactions if tx[0] == "call"]

    def _mine(self) -> str:
        self.block_number += 1
        return "0x" + keccak(text=f"{self.network.name}:{self.block_number}").hex()

    def _deploy(self, name, artifact, constructor_args, sender):
        if name in self.revert_deploys:
            raise TransactionReverted(f"Deployment of {name} reverted")
        if name in self.timeout_deploys:
            raise TransactionTimeout(f"Deployment of {name} was not confirmed")

        sender_address = self.resolve_account(sender)
        args = list(constructor_args.values()) if isinstance(constructor_args, dict) else list(
            constructor_args
        )
        self.transactions.append(("deploy", name, artifact, tuple(args), sender))
        tx_hash = self._mine()
        address = to_checksum_address(f"0x{self.address_prefix}{len(self.deployments):038x}")

        storage = self.storage[address]
        storage["artifact"] = artifact
        storage["args"] = args
        storage["owner"] = sender_address
        storage["controllers"] = dict()
        storage["records"] = {ZERO_HASH: sender_address}
        storage["operators"] = dict()
        storage["resolvers"] = dict()
        storage["addrs"] = dict()
        storage["tokens"] = dict()
        storage["allowed"] = dict()
        storage["use_allow_list"] = True
        storage["registration_params"] = (0, 0, 0, 0)
        storage["char_amounts"] = list()

        return LedgerEntry(
            network=self.network.name,
            name=name,
            address=address,
            abi=[{"type": "constructor", "inputs": []}],
            constructor_args=args,
            tx_hash=tx_hash,
            block_number=self.block_number,
            deployer=sender_address,
        )

    #
    # simulated contract functions
    #

    def _require(self, condition, message):
        if not condition:
            raise TransactionReverted(message)

    def _registry_owner_or_operator(self, registry, node, caller):
        owner = registry["records"].get(node, ZERO_ADDRESS)
        return owner == caller or registry["operators"].get((owner, caller), False)

    def _transact(self, contract, function, args, sender):
        name = _function_name(function)
        if name in self.revert_functions:
            raise TransactionReverted(f"{function} reverted")

        target = _target_address(contract)
        caller = self.resolve_account(sender)
        storage = self.storage[target]

        if name == "transferOwnership":
            self._require(storage["owner"] == caller, "Ownable: caller is not the owner")
            storage["owner"] = to_checksum_address(args[0])
        elif name == "setController":
            self._require(storage["owner"] == caller, "Ownable: caller is not the owner")
            storage["controllers"][to_checksum_address(args[0])] = args[1]
        elif name == "setOwner":
            node = _node(args[0])
            self._require(self._registry_owner_or_operator(storage, node, caller), "not authorised")
            storage["records"][node] = to_checksum_address(args[1])
        elif name == "setSubnodeOwner":
            self._require(storage["controllers"].get(caller), "caller is not a controller")
            registry = self.storage[to_checksum_address(storage["args"][0])]
            self._require(registry["records"].get(ZERO_HASH) == target, "root node not owned")
            node = _node(keccak(bytes(32) + bytes(HexBytes(args[0]))))
            registry["records"][node] = to_checksum_address(args[1])
        elif name == "setApprovalForAll":
            storage["operators"][(caller, to_checksum_address(args[0]))] = args[1]
        elif name == "wrapTLD":
            registry = self.storage[to_checksum_address(storage["args"][0])]
            node = _node(namehash(_decode_name(args[0])))
            self._require(self._registry_owner_or_operator(registry, node, target), "not approved")
            self._require(registry["records"].get(node) == caller, "not the TLD owner")
            registry["records"][node] = target
            storage["tokens"][int(node, 16)] = to_checksum_address(args[1])
        elif name == "disableAllowList":
            storage["use_allow_list"] = False
        elif name == "allowName":
            storage["allowed"][_node(namehash(_decode_name(args[0])))] = args[1]
        elif name == "setResolver":
            storage["resolvers"][_node(args[0])] = to_checksum_address(args[1])
        elif name == "setAddr":
            storage["addrs"][_node(args[0])] = to_checksum_address(args[1])
        elif name == "setParams":
            storage["registration_params"] = tuple(int(value) for value in args)
        elif name == "setPricingForAllLengths":
            storage["char_amounts"] = [int(price) for price in args[0]]

        self.transactions.append(("call", target, name, tuple(args), sender))
        return Receipt(
            tx_hash=self._mine(),
            block_number=self.block_number,
            sender=caller,
            target=target,
            function=function,
            args=tuple(args),
        )

    def query(self, contract, function, args=()):
        name = _function_name(function)
        storage = self.storage[_target_address(contract)]
        if name == "owner":
            if args:
                return storage["records"].get(_node(args[0]), ZERO_ADDRESS)
            return storage["owner"]
        if name == "controllers":
            return storage["controllers"].get(to_checksum_address(args[0]), False)
        if name == "isApprovedForAll":
            key = (to_checksum_address(args[0]), to_checksum_address(args[1]))
            return storage["operators"].get(key, False)
        if name == "ownerOf":
            return storage["tokens"].get(int(args[0]), ZERO_ADDRESS)
        if name == "useAllowList":
            return storage["use_allow_list"]
        if name == "allowedNames":
            return storage["allowed"].get(_node(args[0]), False)
        if name == "resolver":
            return storage["resolvers"].get(_node(args[0]), ZERO_ADDRESS)
        if name == "addr":
            return storage["addrs"].get(_node(args[0]), ZERO_ADDRESS)
        if name in REGISTRATION_PARAM_NAMES:
            return storage["registration_params"][REGISTRATION_PARAM_NAMES.index(name)]
        if name == "charAmounts":
            index = int(args[0])
            self._require(index < len(storage["char_amounts"]), "index out of bounds")
            return storage["char_amounts"][index]
        raise NotImplementedError(function)


# Fixtures


@pytest.fixture()
def registry_filepath(tmp_path):
    return tmp_path / "artifacts" / "registry.json"


@pytest.fixture()
def ledger(registry_filepath):
    return Ledger(registry_filepath)


@pytest.fixture()
def named_accounts():
    return {DEPLOYER: DEPLOYER_ADDRESS, OWNER: OWNER_ADDRESS}


@pytest.fixture()
def l2_network(ledger, named_accounts):
    return NetworkContext(
        name=L2_NETWORK,
        role=L2,
        chain_id=1337,
        ledger=ledger.view(L2_NETWORK),
        accounts=named_accounts,
        tags=frozenset([USE_ROOT]),
        companions={L1: L1_NETWORK},
    )


@pytest.fixture()
def l1_network(ledger, named_accounts):
    return NetworkContext(
        name=L1_NETWORK,
        role=L1,
        chain_id=1338,
        ledger=ledger.view(L1_NETWORK),
        accounts=named_accounts,
        companions={L2: L2_NETWORK},
    )


@pytest.fixture()
def chain_factory():
    return FakeChainHandle


@pytest.fixture()
def chain(l2_network):
    return FakeChainHandle(l2_network)


@pytest.fixture()
def l1_chain(l1_network):
    return FakeChainHandle(l1_network, address_prefix="c1")


@pytest.fixture()
def deployed(chain):
    """Deploys a contract straight through the chain handle and returns its ledger entry."""

    def _deploy(name, args=(), sender=DEPLOYER):
        return chain.deploy(name, constructor_args=args, sender=sender)

    return _deploy
