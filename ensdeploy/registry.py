import json
import os
import tempfile
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from eth_typing import ABI, ChecksumAddress
from eth_utils import to_checksum_address

from ensdeploy.exceptions import NotFound
from ensdeploy.utils import _load_json

NetworkName = str
ContractName = str


STANDARD_REGISTRY_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


class LedgerEntry(NamedTuple):
    """Represents a single deployed contract instance on one network."""

    network: NetworkName
    name: ContractName
    address: ChecksumAddress
    abi: ABI
    constructor_args: List[Any]
    tx_hash: str
    block_number: int
    deployer: str
    # transient: whether this run created the on-chain instance
    newly_deployed: bool = False


def _entry_to_dict(entry: LedgerEntry) -> Dict[str, Any]:
    entry_abi = list(entry.abi)
    entry_abi.sort(key=lambda d: (d["type"], d.get("name", "")))
    return {
        "address": entry.address,
        "abi": entry_abi,
        "constructor_args": list(entry.constructor_args),
        "tx_hash": entry.tx_hash,
        "block_number": int(entry.block_number),
        "deployer": entry.deployer,
    }


def _entry_from_dict(network: NetworkName, name: ContractName, data: Dict) -> LedgerEntry:
    return LedgerEntry(
        network=network,
        name=name,
        address=to_checksum_address(data["address"]),
        abi=data["abi"],
        constructor_args=data.get("constructor_args", []),
        tx_hash=data["tx_hash"],
        block_number=int(data["block_number"]),
        deployer=data["deployer"],
    )


def read_registry(filepath: Path) -> List[LedgerEntry]:
    data = _load_json(filepath)
    registry_entries = list()
    for network, entries in data.items():
        for contract_name, artifacts in entries.items():
            registry_entries.append(_entry_from_dict(network, contract_name, artifacts))
    return registry_entries


def write_registry(entries: List[LedgerEntry], filepath: Path) -> Path:
    """
    Writes a complete registry to a file.

    The file is replaced atomically so an interrupted write never leaves
    a truncated registry behind.
    """
    # Sort registry entries to enforce common order
    entries = sorted(entries, key=lambda entry: (entry.network, entry.name))

    data = defaultdict(dict)
    for entry in entries:
        data[entry.network][entry.name] = _entry_to_dict(entry)

    # Create the parent directory if it does not exist
    filepath.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".temp"
    )
    try:
        with os.fdopen(fd, "w") as file:
            json.dump(data, file, **STANDARD_REGISTRY_JSON_FORMAT)
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_path, filepath)
    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise

    return filepath


class Ledger:
    """
    Persistent record of deployed contract instances keyed by (network, name).

    Every `put` rewrites the registry file, so the ledger survives
    process restarts and repeated runs are cheap.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._entries: Dict[NetworkName, Dict[ContractName, LedgerEntry]] = defaultdict(dict)
        if self.filepath.exists():
            for entry in read_registry(self.filepath):
                self._entries[entry.network][entry.name] = entry

    def has(self, name: ContractName, network: NetworkName) -> bool:
        return name in self._entries.get(network, {})

    def get(self, name: ContractName, network: NetworkName) -> LedgerEntry:
        try:
            return self._entries[network][name]
        except KeyError:
            raise NotFound(name=name, network=network)

    def put(self, name: ContractName, network: NetworkName, entry: LedgerEntry) -> None:
        """Records an entry (last write wins) and persists the whole registry."""
        if entry.name != name or entry.network != network:
            entry = entry._replace(name=name, network=network)
        # the flag describes a single run and is never stored
        self._entries[network][name] = entry._replace(newly_deployed=False)
        write_registry(entries=self.all_entries(), filepath=self.filepath)

    def entries(self, network: NetworkName) -> List[LedgerEntry]:
        """Returns every entry of a network, sorted by name."""
        network_entries = self._entries.get(network, {})
        return [network_entries[name] for name in sorted(network_entries)]

    def all_entries(self) -> List[LedgerEntry]:
        return [entry for network in self.networks() for entry in self.entries(network)]

    def networks(self) -> List[NetworkName]:
        return sorted(network for network, entries in self._entries.items() if entries)

    def view(self, network: NetworkName) -> "LedgerView":
        return LedgerView(ledger=self, network=network)

    def reader(self, network: NetworkName) -> "LedgerReader":
        return LedgerReader(ledger=self, network=network)


class LedgerReader:
    """Read-only access to the ledger of a single network."""

    def __init__(self, ledger: Ledger, network: NetworkName):
        self._ledger = ledger
        self.network = network

    def has(self, name: ContractName) -> bool:
        return self._ledger.has(name, self.network)

    def get(self, name: ContractName) -> LedgerEntry:
        return self._ledger.get(name, self.network)

    def entries(self) -> List[LedgerEntry]:
        return self._ledger.entries(self.network)

    def find(self, name: ContractName) -> Optional[LedgerEntry]:
        if not self.has(name):
            return None
        return self.get(name)


class LedgerView(LedgerReader):
    """Writable access to the ledger of a single network."""

    def put(self, name: ContractName, entry: LedgerEntry) -> None:
        self._ledger.put(name, self.network, entry)
