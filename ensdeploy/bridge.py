from typing import Dict

from ensdeploy.exceptions import NotFound
from ensdeploy.networks import NetworkContext
from ensdeploy.registry import Ledger, LedgerEntry, LedgerReader


class CompanionBridge:
    """
    Read-only access to the ledgers of a network's companion networks.

    A unit running on one chain uses this to learn addresses of contracts
    already deployed on the other chain without touching that chain.
    """

    def __init__(self, ledger: Ledger, network: NetworkContext):
        self.network = network
        self._readers: Dict[str, LedgerReader] = {
            name: ledger.reader(name) for name in network.companions.values()
        }

    def _reader(self, network_id: str) -> LedgerReader:
        try:
            companion_name = self.network.companion_network(network_id)
        except KeyError:
            raise NotFound(
                name="*",
                network=network_id,
                message=(
                    f"'{network_id}' is not a companion network of '{self.network.name}' "
                    f"(companions: {', '.join(sorted(self.network.companions)) or 'none'})."
                ),
            )
        return self._readers[companion_name]

    def remote_get(self, network_id: str, name: str) -> LedgerEntry:
        reader = self._reader(network_id)
        if not reader.has(name):
            raise NotFound(
                name=name,
                network=reader.network,
                message=(
                    f"Companion deployment '{name}' not found on network '{reader.network}'; "
                    f"deploy it there first."
                ),
            )
        return reader.get(name)

    def remote_has(self, network_id: str, name: str) -> bool:
        try:
            self.remote_get(network_id, name)
        except NotFound:
            return False
        return True
