import click

from ensdeploy.constants import SUPPORTED_LAYERS
from ensdeploy.types import MinInt, ParamsFile

params_file_option = click.option(
    "--params-file",
    "-p",
    help="Deployment parameters file, by path or by name (e.g. 'goerli').",
    type=ParamsFile(),
    required=True,
)

tag_option = click.option(
    "--tag",
    "-t",
    "tags",
    help="Deploy the units providing this tag, plus their dependencies. Repeatable.",
    multiple=True,
)

layer_option = click.option(
    "--layer",
    "-l",
    "layers",
    help="Layer to deploy, in the order given. Defaults to l2 then l1.",
    type=click.Choice(SUPPORTED_LAYERS),
    multiple=True,
)

force_option = click.option(
    "--force",
    "-f",
    help="Redeploy units even when the registry already has them.",
    is_flag=True,
    default=False,
)

auto_option = click.option(
    "--auto",
    help="Automatically sign transactions without prompting.",
    is_flag=True,
    default=False,
)

confirmations_option = click.option(
    "--confirmations",
    "-c",
    help="Number of block confirmations to wait for after each transaction.",
    type=MinInt(0),
    required=False,
)
