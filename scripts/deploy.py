#!/usr/bin/python3

import click
from ape import networks

from ensdeploy.catalog import units_for_layer
from ensdeploy.confirm import _continue
from ensdeploy.constants import DEFAULT_LAYER_ORDER
from ensdeploy.deployer import DeploymentSession, check_chain_id, layer_tags
from ensdeploy.exceptions import RunAborted, UnresolvedTag
from ensdeploy.options import (
    auto_option,
    confirmations_option,
    force_option,
    layer_option,
    params_file_option,
    tag_option,
)


def _print_deployment_info(session, chain, provider):
    print(
        f"Config: {session.parameters.path}",
        f"Registry: {session.ledger.filepath}",
        f"Layer: {chain.network.role}",
        f"Network: {provider.network.ecosystem.name}:{provider.network.name}",
        f"Chain ID: {provider.chain_id}",
        *(f"Account ({role}): {address}" for role, address in chain.network.accounts.items()),
        sep="\n",
    )


@click.command(name="deploy")
@params_file_option
@tag_option
@layer_option
@force_option
@auto_option
@confirmations_option
def cli(params_file, tags, layers, force, auto, confirmations):
    """Deploy the ENS units of each layer, companion layer first."""
    session = DeploymentSession.from_yaml(params_file)
    configured = session.parameters.layers()
    layers = list(layers) or [layer for layer in DEFAULT_LAYER_ORDER if layer in configured]

    selections = dict()
    for layer in layers:
        units = units_for_layer(layer)
        selections[layer] = (units, layer_tags(units, tags))
    for tag in tags:
        if not any(tag in selected for _, selected in selections.values()):
            raise UnresolvedTag(tag=tag)

    incomplete = list()
    for layer in layers:
        units, selected = selections[layer]
        if tags and not selected:
            click.secho(f"\nNothing selected on {layer}, skipping", fg="yellow")
            continue

        network_parameters = session.parameters.layer(layer)
        with networks.parse_network_choice(network_parameters.network_choice) as provider:
            check_chain_id(network_parameters, provider.chain_id)
            chain = session.ape_chain(layer, autosign=auto, required_confirmations=confirmations)
            _print_deployment_info(session, chain, provider)
            if not auto:
                try:
                    _continue()
                except RunAborted:
                    incomplete.append(network_parameters.name)
                    break
            report = session.run(chain, units, selected_tags=selected, force=force)

        if not report.success:
            incomplete.append(report.network)
        if report.cancelled:
            break

    if incomplete:
        raise click.ClickException(f"Deployment did not complete on: {', '.join(incomplete)}")


if __name__ == "__main__":
    cli()
