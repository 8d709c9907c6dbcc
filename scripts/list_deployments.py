#!/usr/bin/python3

import click

from ensdeploy.constants import SUPPORTED_LAYERS
from ensdeploy.options import params_file_option
from ensdeploy.params import DeploymentParameters
from ensdeploy.registry import Ledger
from ensdeploy.types import ChecksumAddress


@click.command(name="list-deployments")
@params_file_option
@click.option(
    "--layer",
    "-l",
    help="Only list the deployments of this layer.",
    type=click.Choice(SUPPORTED_LAYERS),
)
@click.option(
    "--address",
    "-a",
    help="Only list the deployment at this address.",
    type=ChecksumAddress(),
)
def cli(params_file, layer, address):
    """List the deployments recorded in the registry of a deployment parameters file."""
    parameters = DeploymentParameters.from_yaml(params_file)
    ledger = Ledger(parameters.registry_filepath)

    for role in parameters.layers():
        if layer and layer != role:
            continue
        network = parameters.layer(role).name
        click.secho(f"\n{network} ({role})", fg="green")

        entries = ledger.entries(network)
        if address:
            entries = [entry for entry in entries if entry.address == address]
        if not entries:
            click.secho("    No deployments", fg="yellow")
        for index, entry in enumerate(entries, start=1):
            click.secho(f"    {index}. {entry.name} {entry.address}", fg="cyan")


if __name__ == "__main__":
    cli()
