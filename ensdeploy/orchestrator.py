"""
Executes resolved deployment units against one network.

Each unit runs at most once per run, in dependency order. A failure only
affects the units that (transitively) depend on the failed one; independent
branches keep going, and the returned RunReport always lists every unit.
"""

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from eth_typing import ChecksumAddress

from ensdeploy.bootstrap import BootstrapStep, run_steps
from ensdeploy.bridge import CompanionBridge
from ensdeploy.chain import ChainHandle, Receipt
from ensdeploy.constants import DEPLOYER
from ensdeploy.exceptions import NotFound, RunAborted, UnresolvedDependency
from ensdeploy.graph import dependency_map, resolve
from ensdeploy.networks import NetworkContext
from ensdeploy.params import NetworkParameters
from ensdeploy.registry import LedgerEntry
from ensdeploy.reporting import Reporter
from ensdeploy.units import DeploymentUnit, PostDeployAction

Target = Union[LedgerEntry, str]

_MISSING = object()


class UnitStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    # not executed because something it depends on did not succeed
    SKIPPED = "skipped"
    # not applicable to this network or run
    DISABLED = "disabled"
    CANCELLED = "cancelled"


# statuses that do not make a run unsuccessful
_COMPLETED = (UnitStatus.SUCCESS, UnitStatus.DISABLED)
# statuses that make dependents unresolvable
_BLOCKING = (UnitStatus.FAILED, UnitStatus.SKIPPED, UnitStatus.CANCELLED)


@dataclass
class UnitOutcome:
    name: str
    status: UnitStatus
    entries: List[LedgerEntry] = field(default_factory=list)
    error: Optional[str] = None
    exception: Optional[BaseException] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def newly_deployed(self) -> bool:
        return any(entry.newly_deployed for entry in self.entries)


@dataclass
class PostDeployOutcome:
    unit: str
    action: str
    status: UnitStatus
    error: Optional[str] = None
    exception: Optional[BaseException] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class RunReport:
    network: str
    outcomes: "OrderedDict[str, UnitOutcome]" = field(default_factory=OrderedDict)
    post_deploy: List[PostDeployOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """True only if every selected unit and every post-deploy action succeeded."""
        if self.cancelled:
            return False
        units_ok = all(o.status in _COMPLETED for o in self.outcomes.values())
        actions_ok = all(o.status in _COMPLETED for o in self.post_deploy)
        return units_ok and actions_ok

    def status(self, name: str) -> UnitStatus:
        return self.outcomes[name].status

    @property
    def order(self) -> List[str]:
        return list(self.outcomes)

    @property
    def failed(self) -> List[str]:
        return [name for name, o in self.outcomes.items() if o.status is UnitStatus.FAILED]

    @property
    def skipped(self) -> List[str]:
        return [name for name, o in self.outcomes.items() if o.status is UnitStatus.SKIPPED]

    @property
    def warnings(self) -> List[str]:
        warnings = list()
        for outcome in self.outcomes.values():
            warnings.extend(outcome.warnings)
        for outcome in self.post_deploy:
            warnings.extend(outcome.warnings)
        return warnings

    def entries(self) -> List[LedgerEntry]:
        return [entry for o in self.outcomes.values() for entry in o.entries]

    def summary(self) -> str:
        lines = [f"Run report for {self.network}:"]
        for name, outcome in self.outcomes.items():
            line = f"\t{name}: {outcome.status.value}"
            if outcome.error:
                line += f" ({outcome.error})"
            lines.append(line)
        for outcome in self.post_deploy:
            line = f"\t{outcome.unit}.{outcome.action}: {outcome.status.value}"
            if outcome.error:
                line += f" ({outcome.error})"
            lines.append(line)
        for warning in self.warnings:
            lines.append(f"\tWARNING: {warning}")
        return "\n".join(lines)


class DeploymentContext:
    """
    The only handle a deploy action gets: bound to one unit, one network,
    its ledger, the chain handle and the companion bridge.
    """

    def __init__(
        self,
        unit: DeploymentUnit,
        network: NetworkContext,
        chain: ChainHandle,
        bridge: Optional[CompanionBridge] = None,
        force: bool = False,
        reporter: Optional[Reporter] = None,
        parameters: Optional[NetworkParameters] = None,
        deployments: Iterable[LedgerEntry] = (),
    ):
        self.unit = unit
        self.network = network
        self.chain = chain
        self.bridge = bridge
        self.force = force
        self.reporter = reporter or Reporter()
        self.parameters = parameters
        self.deployments: List[LedgerEntry] = list(deployments)
        self.receipts: List[Receipt] = list()
        self.warnings: List[str] = list()

    @property
    def newly_deployed(self) -> bool:
        return any(entry.newly_deployed for entry in self.deployments)

    def account(self, role: str) -> ChecksumAddress:
        return self.chain.resolve_account(role)

    def has(self, name: str) -> bool:
        return self.network.ledger.has(name)

    def get(self, name: str) -> LedgerEntry:
        """Ledger entry of an earlier unit on this network."""
        try:
            return self.network.ledger.get(name)
        except NotFound as e:
            raise UnresolvedDependency(name=name, network=self.network.name, reason=str(e)) from e

    def remote_get(self, network_id: str, name: str) -> LedgerEntry:
        """Ledger entry of a unit deployed on a companion network."""
        if self.bridge is None:
            raise UnresolvedDependency(
                name=name, network=network_id, reason="no companion networks configured"
            )
        try:
            return self.bridge.remote_get(network_id, name)
        except NotFound as e:
            raise UnresolvedDependency(name=name, network=network_id, reason=str(e)) from e

    def constructor_args(self, name: str) -> Union[Dict[str, Any], Sequence[Any]]:
        if self.parameters is None:
            return ()
        constructor_parameters = self.parameters.constructor_parameters
        if not constructor_parameters.has(name):
            return ()
        return constructor_parameters.resolve(name, self)

    def deploy(
        self,
        name: str = None,
        args: Union[Dict[str, Any], Sequence[Any]] = None,
        artifact: str = None,
        sender: str = DEPLOYER,
    ) -> LedgerEntry:
        """
        Deploys `artifact` (default: `name`) under ledger name `name`
        (default: the unit name). Constructor arguments default to the
        ones declared in the deployment parameters.
        """
        name = name or self.unit.name
        if args is None:
            args = self.constructor_args(name)
        entry = self.chain.deploy(
            unit_name=name,
            artifact=artifact,
            constructor_args=args,
            sender=sender,
            force=self.force,
        )
        self.deployments.append(entry)
        if entry.newly_deployed:
            self.log(f"Deployed {name} at {entry.address} (tx: {entry.tx_hash})")
        else:
            self.log(f"Reusing {name} at {entry.address}")
        return entry

    def _target(self, target: Target) -> Target:
        if isinstance(target, LedgerEntry):
            return target
        if target.startswith("0x"):
            return target
        return self.get(target)

    def call(self, target: Target, function: str, *args, sender: str = DEPLOYER) -> Receipt:
        receipt = self.chain.call(self._target(target), function, args, sender=sender)
        self.receipts.append(receipt)
        self.log(f"{function} on {receipt.target} (tx: {receipt.tx_hash})")
        return receipt

    def query(self, target: Target, function: str, *args) -> Any:
        return self.chain.query(self._target(target), function, args)

    def bootstrap(self, *steps: BootstrapStep) -> List[Receipt]:
        """Runs the bootstrap steps that have not taken effect yet."""
        receipts = run_steps(self.chain, steps)
        for receipt in receipts:
            self.receipts.append(receipt)
            self.log(f"{receipt.function} on {receipt.target} (tx: {receipt.tx_hash})")
        return receipts

    def constant(self, name: str, default: Any = _MISSING) -> Any:
        constants = self.parameters.constants if self.parameters else {}
        if name in constants:
            return constants[name]
        if default is _MISSING:
            raise UnresolvedDependency(
                name=name, network=self.network.name, reason="constant is not configured"
            )
        return default

    def log(self, message: str) -> None:
        self.reporter.message(self.unit, message)

    def warn(self, warning: Union[str, Exception]) -> None:
        warning = str(warning)
        self.warnings.append(warning)
        self.reporter.warning(self.unit, warning)


class Orchestrator:
    """Runs deployment units against the network of a chain handle."""

    def __init__(
        self,
        chain: ChainHandle,
        bridge: Optional[CompanionBridge] = None,
        reporter: Optional[Reporter] = None,
        parameters: Optional[NetworkParameters] = None,
    ):
        self.chain = chain
        self.network = chain.network
        self.bridge = bridge
        self.reporter = reporter or Reporter()
        self.parameters = parameters

    def _context(
        self, unit: DeploymentUnit, force: bool, deployments: Iterable[LedgerEntry] = ()
    ) -> DeploymentContext:
        return DeploymentContext(
            unit=unit,
            network=self.network,
            chain=self.chain,
            bridge=self.bridge,
            force=force,
            reporter=self.reporter,
            parameters=self.parameters,
            deployments=deployments,
        )

    def run(
        self,
        units: Sequence[DeploymentUnit],
        selected_tags: Iterable[str] = (),
        force: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> RunReport:
        """
        Resolves and executes `units` selected by `selected_tags`.

        Configuration errors (unknown tags, cycles, duplicate names) are raised
        before any unit runs. Everything after that ends up in the report.
        """
        ordered = resolve(units, selected_tags)
        dependencies = dependency_map(units, [unit.name for unit in ordered])
        cancel = cancel or threading.Event()

        report = RunReport(network=self.network.name)
        self.reporter.run_started(self.network, ordered)

        for unit in ordered:
            if cancel.is_set():
                report.cancelled = True
            if report.cancelled:
                outcome = UnitOutcome(name=unit.name, status=UnitStatus.CANCELLED)
            else:
                outcome = self._run_unit(unit, dependencies, report.outcomes, force)
                if outcome.status is UnitStatus.CANCELLED:
                    report.cancelled = True
            report.outcomes[unit.name] = outcome
            self.reporter.unit_finished(outcome)

        self._run_post_deploy(ordered, dependencies, report, force, cancel)

        self.reporter.run_finished(report)
        return report

    def _run_unit(
        self,
        unit: DeploymentUnit,
        dependencies: Dict[str, Sequence[str]],
        outcomes: Dict[str, UnitOutcome],
        force: bool,
    ) -> UnitOutcome:
        blocked = [
            name for name in dependencies[unit.name]
            if name in outcomes and outcomes[name].status in _BLOCKING
        ]
        if blocked:
            return UnitOutcome(
                name=unit.name,
                status=UnitStatus.SKIPPED,
                error=f"unresolved dependency: {', '.join(blocked)}",
            )

        if not unit.is_enabled(self.network):
            return UnitOutcome(
                name=unit.name,
                status=UnitStatus.DISABLED,
                error=f"not enabled on {self.network.name}",
            )

        self.reporter.unit_started(unit)
        context = self._context(unit, force)
        try:
            unit.action(context)
        except RunAborted as e:
            status, error, exception = UnitStatus.CANCELLED, str(e), e
        except Exception as e:
            status, error, exception = UnitStatus.FAILED, f"{type(e).__name__}: {e}", e
        else:
            status, error, exception = UnitStatus.SUCCESS, None, None

        return UnitOutcome(
            name=unit.name,
            status=status,
            entries=context.deployments,
            error=error,
            exception=exception,
            warnings=context.warnings,
        )

    def _run_post_deploy(
        self,
        ordered: Sequence[DeploymentUnit],
        dependencies: Dict[str, Sequence[str]],
        report: RunReport,
        force: bool,
        cancel: threading.Event,
    ) -> None:
        # units whose post-deploy did not complete; their dependents' actions are skipped
        incomplete: Set[str] = set()

        for unit in ordered:
            outcome = report.outcomes[unit.name]
            blocked = [name for name in dependencies[unit.name] if name in incomplete]
            halted = False

            for action in unit.post_deploy:
                if cancel.is_set():
                    report.cancelled = True

                if report.cancelled:
                    result = self._post_outcome(unit, action, UnitStatus.CANCELLED)
                elif outcome.status is not UnitStatus.SUCCESS:
                    status = (
                        UnitStatus.DISABLED
                        if outcome.status is UnitStatus.DISABLED
                        else UnitStatus.SKIPPED
                    )
                    reason = f"unit {outcome.status.value}"
                    result = self._post_outcome(unit, action, status, reason)
                elif blocked or halted:
                    reason = f"unresolved dependency: {', '.join(blocked)}" if blocked else (
                        "an earlier post-deploy action failed"
                    )
                    result = self._post_outcome(unit, action, UnitStatus.SKIPPED, reason)
                elif action.only_if_newly_deployed and not outcome.newly_deployed:
                    result = self._post_outcome(
                        unit, action, UnitStatus.DISABLED, "not newly deployed"
                    )
                else:
                    result = self._run_action(unit, action, outcome, force)
                    if result.status is UnitStatus.CANCELLED:
                        report.cancelled = True

                if result.status in _BLOCKING:
                    halted = True
                report.post_deploy.append(result)
                self.reporter.post_deploy_finished(result)

            if halted or blocked or outcome.status in _BLOCKING:
                incomplete.add(unit.name)

    @staticmethod
    def _post_outcome(
        unit: DeploymentUnit, action: PostDeployAction, status: UnitStatus, error: str = None
    ) -> PostDeployOutcome:
        return PostDeployOutcome(unit=unit.name, action=action.name, status=status, error=error)

    def _run_action(
        self, unit: DeploymentUnit, action: PostDeployAction, outcome: UnitOutcome, force: bool
    ) -> PostDeployOutcome:
        context = self._context(unit, force, deployments=outcome.entries)
        try:
            action.action(context)
        except RunAborted as e:
            status, error, exception = UnitStatus.CANCELLED, str(e), e
        except Exception as e:
            status, error, exception = UnitStatus.FAILED, f"{type(e).__name__}: {e}", e
        else:
            status, error, exception = UnitStatus.SUCCESS, None, None

        return PostDeployOutcome(
            unit=unit.name,
            action=action.name,
            status=status,
            error=error,
            exception=exception,
            warnings=context.warnings,
        )
