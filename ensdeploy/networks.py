from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping

from eth_typing import ChecksumAddress

from ensdeploy.exceptions import UnknownRole
from ensdeploy.registry import LedgerView


@dataclass(frozen=True)
class NetworkContext:
    """
    Everything a unit may know about the chain it is deployed to.

    Passed explicitly into every deploy action; there is no ambient
    "current network". Only the ledger is mutable.
    """

    name: str
    role: str
    chain_id: int
    ledger: LedgerView
    accounts: Mapping[str, ChecksumAddress] = field(default_factory=dict)
    tags: FrozenSet[str] = frozenset()
    # companion role (e.g. "l2") -> companion network name
    companions: Mapping[str, str] = field(default_factory=dict)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def account(self, role: str) -> ChecksumAddress:
        try:
            return self.accounts[role]
        except KeyError:
            raise UnknownRole(role=role, network=self.name)

    def companion_network(self, network_id: str) -> str:
        """Returns the companion network name for a companion role or name."""
        if network_id in self.companions:
            return self.companions[network_id]
        if network_id in self.companions.values():
            return network_id
        raise KeyError(network_id)

    def describe(self) -> Dict[str, str]:
        return {
            "Network": self.name,
            "Layer": self.role,
            "Chain ID": str(self.chain_id),
            "Tags": ", ".join(sorted(self.tags)) or "-",
            "Companions": ", ".join(f"{k}={v}" for k, v in sorted(self.companions.items())) or "-",
        }
