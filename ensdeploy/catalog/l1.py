"""ENS units deployed on the layer 1 chain, reading layer 2 addresses from its registry."""

from ensdeploy.constants import L2
from ensdeploy.units import deployment_unit


@deployment_unit(name="OPVerifier", tags=["verifier"])
def op_verifier(context):
    context.deploy()


@deployment_unit(
    name="OpOffchainResolver", tags=["layerone", "l1Resolver"], dependencies=["verifier"]
)
def op_offchain_resolver(context):
    context.deploy()


@deployment_unit(name="L1Resolver", tags=["layerone", "l1-resolver"])
def l1_resolver(context):
    owned_resolver = context.remote_get(L2, "OwnedResolver")
    context.deploy(args=[context.constant("L1_VERIFIER"), owned_resolver.address])


@deployment_unit(name="L1UnruggableResolver", tags=["resolver"], dependencies=["verifier"])
def l1_unruggable_resolver(context):
    context.deploy()


@deployment_unit(name="BasicDemo", tags=["demo"], dependencies=["verifier"])
def basic_demo(context):
    context.deploy()


L1_UNITS = [
    op_verifier,
    op_offchain_resolver,
    l1_resolver,
    l1_unruggable_resolver,
    basic_demo,
]
