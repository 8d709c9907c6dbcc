from typing import TYPE_CHECKING, Sequence

import click

from ensdeploy.networks import NetworkContext

if TYPE_CHECKING:
    from ensdeploy.orchestrator import PostDeployOutcome, RunReport, UnitOutcome
    from ensdeploy.units import DeploymentUnit


class Reporter:
    """Observer notified of run progress. The base class ignores everything."""

    def run_started(self, network: NetworkContext, units: Sequence["DeploymentUnit"]) -> None:
        pass

    def unit_started(self, unit: "DeploymentUnit") -> None:
        pass

    def unit_finished(self, outcome: "UnitOutcome") -> None:
        pass

    def post_deploy_finished(self, outcome: "PostDeployOutcome") -> None:
        pass

    def message(self, unit: "DeploymentUnit", message: str) -> None:
        pass

    def warning(self, unit: "DeploymentUnit", warning: str) -> None:
        pass

    def run_finished(self, report: "RunReport") -> None:
        pass


class RecordingReporter(Reporter):
    """Keeps every notification as a (kind, payload) tuple."""

    def __init__(self):
        self.events = list()

    def run_started(self, network, units):
        self.events.append(("run_started", [unit.name for unit in units]))

    def unit_started(self, unit):
        self.events.append(("unit_started", unit.name))

    def unit_finished(self, outcome):
        self.events.append(("unit_finished", outcome.name, outcome.status))

    def post_deploy_finished(self, outcome):
        self.events.append(("post_deploy_finished", outcome.unit, outcome.action, outcome.status))

    def message(self, unit, message):
        self.events.append(("message", unit.name, message))

    def warning(self, unit, warning):
        self.events.append(("warning", unit.name, warning))

    def run_finished(self, report):
        self.events.append(("run_finished", report.success))


_STATUS_COLORS = {
    "success": "green",
    "failed": "red",
    "skipped": "yellow",
    "disabled": None,
    "cancelled": "yellow",
}


class ConsoleReporter(Reporter):
    """Prints run progress to the terminal."""

    def run_started(self, network, units):
        click.secho(f"\nDeploying to {network.name} ({network.role})", bold=True)
        for key, value in network.describe().items():
            click.echo(f"\t{key}: {value}")
        click.echo(f"\nResolved {len(units)} unit(s): {', '.join(u.name for u in units)}")

    def unit_started(self, unit):
        click.secho(f"\n--> {unit.name}", fg="cyan")

    def unit_finished(self, outcome):
        status = outcome.status.value
        line = f"<-- {outcome.name}: {status}"
        for entry in outcome.entries:
            state = "deployed" if entry.newly_deployed else "reused"
            line += f"\n\t{entry.name} {state} at {entry.address}"
        if outcome.error:
            line += f"\n\t{outcome.error}"
        click.secho(line, fg=_STATUS_COLORS.get(status))

    def post_deploy_finished(self, outcome):
        status = outcome.status.value
        line = f"<-- {outcome.unit}.{outcome.action}: {status}"
        if outcome.error:
            line += f"\n\t{outcome.error}"
        click.secho(line, fg=_STATUS_COLORS.get(status))

    def message(self, unit, message):
        click.echo(f"\t{message}")

    def warning(self, unit, warning):
        click.secho(f"WARNING: {warning}", fg="yellow")

    def run_finished(self, report):
        click.echo()
        click.echo(report.summary())
        if report.success:
            click.secho("Deployment run succeeded.", fg="green", bold=True)
        else:
            click.secho("Deployment run did not complete.", fg="red", bold=True)
