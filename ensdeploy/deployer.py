import threading
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ape import accounts
from ape.api import AccountAPI
from eth_typing import ChecksumAddress

from ensdeploy.bridge import CompanionBridge
from ensdeploy.chain import ApeChainHandle, ChainHandle
from ensdeploy.constants import DEFAULT_REQUIRED_CONFIRMATIONS
from ensdeploy.exceptions import ConfigurationError
from ensdeploy.graph import build_tag_index
from ensdeploy.networks import NetworkContext
from ensdeploy.orchestrator import Orchestrator, RunReport
from ensdeploy.params import DeploymentParameters, NetworkParameters
from ensdeploy.registry import Ledger
from ensdeploy.reporting import ConsoleReporter, Reporter
from ensdeploy.units import DeploymentUnit
from ensdeploy.utils import is_local_network


def load_signers(accounts_config: Mapping[str, Union[int, str]]) -> Dict[str, AccountAPI]:
    """
    Loads the ape account of each named role.
    An integer selects a test account, a string loads an account alias.
    """
    signers = dict()
    for role, account_id in accounts_config.items():
        if isinstance(account_id, int):
            signers[role] = accounts.test_accounts[account_id]
        else:
            signers[role] = accounts.load(account_id)
    return signers


def check_chain_id(network_parameters: NetworkParameters, chain_id: int) -> None:
    """Checks that the connected chain is the one the parameters were written for."""
    chain_mismatch = network_parameters.chain_id != chain_id
    live_deployment = not is_local_network(network_parameters.network_choice)
    if chain_mismatch and live_deployment:
        raise ConfigurationError(
            f"chain_id in params file ({network_parameters.chain_id}) does not match "
            f"chain_id of current network ({chain_id})."
        )


def layer_tags(units: Sequence[DeploymentUnit], tags: Sequence[str]) -> List[str]:
    """The selected tags (or unit names) that the units of one layer provide."""
    known = set(build_tag_index(units)) | {unit.name for unit in units}
    return [tag for tag in tags if tag in known]


class DeploymentSession:
    """
    One deployment of a pair of companion networks: a shared ledger,
    plus a network context, chain handle and orchestrator per layer.
    """

    def __init__(self, parameters: DeploymentParameters, reporter: Optional[Reporter] = None):
        self.parameters = parameters
        self.ledger = Ledger(parameters.registry_filepath)
        self.reporter = reporter or ConsoleReporter()

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "DeploymentSession":
        parameters = DeploymentParameters.from_yaml(filepath)
        return cls(parameters, *args, **kwargs)

    def network_context(
        self, role: str, addresses: Mapping[str, ChecksumAddress]
    ) -> NetworkContext:
        network_parameters = self.parameters.layer(role)
        return NetworkContext(
            name=network_parameters.name,
            role=role,
            chain_id=network_parameters.chain_id,
            ledger=self.ledger.view(network_parameters.name),
            accounts=dict(addresses),
            tags=network_parameters.tags,
            companions=dict(network_parameters.companions),
        )

    def ape_chain(
        self,
        role: str,
        autosign: bool = False,
        required_confirmations: Optional[int] = None,
    ) -> ApeChainHandle:
        """Chain handle for the layer on the currently connected ape provider."""
        network_parameters = self.parameters.layer(role)
        signers = load_signers(network_parameters.accounts)
        network = self.network_context(
            role, {r: signer.address for r, signer in signers.items()}
        )
        if required_confirmations is None:
            required_confirmations = (
                network_parameters.required_confirmations or DEFAULT_REQUIRED_CONFIRMATIONS
            )
        return ApeChainHandle(
            network=network,
            signers=signers,
            autosign=autosign,
            required_confirmations=required_confirmations,
        )

    def orchestrator(self, chain: ChainHandle) -> Orchestrator:
        network = chain.network
        return Orchestrator(
            chain=chain,
            bridge=CompanionBridge(self.ledger, network),
            reporter=self.reporter,
            parameters=self.parameters.layer(network.role),
        )

    def run(
        self,
        chain: ChainHandle,
        units: Sequence[DeploymentUnit],
        selected_tags: Iterable[str] = (),
        force: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> RunReport:
        orchestrator = self.orchestrator(chain)
        return orchestrator.run(units, selected_tags=selected_tags, force=force, cancel=cancel)
