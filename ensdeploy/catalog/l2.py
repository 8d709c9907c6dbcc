"""ENS units deployed on the layer 2 chain."""

from eth_utils import is_same_address

from ensdeploy.bootstrap import (
    RootOwnershipHandoff,
    assign_root_node,
    ensure_allow_list_disabled,
    ensure_approval_for_all,
    ensure_addr,
    ensure_character_pricing,
    ensure_controller,
    ensure_name_allowed,
    ensure_owner,
    ensure_registration_params,
    ensure_resolver,
    ensure_subnode_owner,
    ensure_tld_wrapped,
)
from ensdeploy.constants import (
    DEPLOYER,
    FIXED_PRICE_USD,
    MAX_CHARS,
    MAX_REGISTRATION_DURATION,
    MIN_CHARS,
    MIN_REGISTRATION_DURATION,
    OWNER,
    PRICE_PER_CHAR_USD,
    RESOLVER_NAME,
    SECONDS_IN_YEAR,
    TLD_FUSES,
    TLD_WRAP_EXPIRY,
    UNRUGGABLE_TLD,
    USE_ROOT,
    WEI_PER_USD,
)
from ensdeploy.exceptions import UnexpectedOwner
from ensdeploy.units import deployment_unit, requires_network_tag
from ensdeploy.utils import namehash


def price_per_second(usd_per_year: int) -> int:
    """Yearly USD price as wei of USD per second, rounded to the nearest integer."""
    return (usd_per_year * WEI_PER_USD + SECONDS_IN_YEAR // 2) // SECONDS_IN_YEAR


#
# Mocks
#


@deployment_unit(name="USDOracleMock", tags=["mocks"])
def usd_oracle_mock(context):
    context.deploy()


#
# Registry and root
#


@deployment_unit(name="ENSRegistry", tags=["registry"])
def ens_registry(context):
    context.deploy()


@deployment_unit(
    name="Root",
    id="root",
    tags=["root", "Root"],
    dependencies=["ENSRegistry"],
    enabled=requires_network_tag(USE_ROOT),
)
def root(context):
    context.deploy()


def set_root_node_owner(context):
    context.bootstrap(
        assign_root_node(registry=context.get("ENSRegistry"), root=context.get("Root"))
    )


def hand_over_root(context):
    handoff = RootOwnershipHandoff(chain=context.chain, root=context.get("Root"))
    result = handoff.run()
    for receipt in result.receipts:
        context.receipts.append(receipt)
        context.log(f"{receipt.function} on Root (tx: {receipt.tx_hash})")
    if result.warning:
        context.warn(result.warning)


root = root.with_post_deploy(set_root_node_owner, name="assign root node")
root = root.with_post_deploy(hand_over_root, name="root ownership handoff")


#
# Name wrapper
#


@deployment_unit(name="L2NameWrapper", tags=["name-wrapper"], dependencies=["registry"])
def l2_name_wrapper(context):
    context.deploy("L2MetadataService")
    context.deploy()


#
# Registrars
#


@deployment_unit(
    name="L2EthRegistrar",
    tags=["registrars"],
    dependencies=["mocks", "name-wrapper", "registry"],
)
def l2_eth_registrar(context):
    context.deploy()


def set_registration_params(context):
    context.bootstrap(
        ensure_registration_params(
            registrar=context.get("L2EthRegistrar"),
            params=[
                context.constant("MIN_REGISTRATION_DURATION", MIN_REGISTRATION_DURATION),
                context.constant("MAX_REGISTRATION_DURATION", MAX_REGISTRATION_DURATION),
                context.constant("MIN_CHARS", MIN_CHARS),
                context.constant("MAX_CHARS", MAX_CHARS),
            ],
        )
    )


def add_eth_registrar_controller(context):
    context.bootstrap(
        ensure_controller(
            target=context.get("L2NameWrapper"), controller=context.get("L2EthRegistrar")
        )
    )


l2_eth_registrar = l2_eth_registrar.with_post_deploy(
    set_registration_params, name="registration params"
)
l2_eth_registrar = l2_eth_registrar.with_post_deploy(
    add_eth_registrar_controller, name="name wrapper controller"
)


@deployment_unit(
    name="L2SubnameRegistrar",
    tags=["registrars"],
    dependencies=["mocks", "name-wrapper", "registry", "root"],
)
def l2_subname_registrar(context):
    context.deploy()


def add_subname_registrar_controller(context):
    context.bootstrap(
        ensure_controller(
            target=context.get("L2NameWrapper"), controller=context.get("L2SubnameRegistrar")
        )
    )


def set_up_unruggable_tld(context):
    if not context.network.has_tag(USE_ROOT):
        context.log(f"No Root on {context.network.name}, not setting up .{UNRUGGABLE_TLD}")
        return

    registry = context.get("ENSRegistry")
    name_wrapper = context.get("L2NameWrapper")
    deployer = context.account(DEPLOYER)
    context.bootstrap(
        # once wrapped, the name wrapper holds the TLD in the registry
        ensure_subnode_owner(
            registry=registry,
            root=context.get("Root"),
            label=UNRUGGABLE_TLD,
            owner=deployer,
            accept=[name_wrapper],
            sender=OWNER,
        ),
        ensure_approval_for_all(registry=registry, operator=name_wrapper, owner_role=DEPLOYER),
        ensure_tld_wrapped(
            name_wrapper=name_wrapper,
            label=UNRUGGABLE_TLD,
            owner_role=DEPLOYER,
            fuses=TLD_FUSES,
            expiry=TLD_WRAP_EXPIRY,
        ),
    )


def configure_allow_list(context):
    registrar = context.get("L2SubnameRegistrar")
    allowed_names = context.constant("ALLOWED_NAMES", default=[])
    if allowed_names:
        context.bootstrap(*[ensure_name_allowed(registrar, name) for name in allowed_names])
    else:
        context.bootstrap(ensure_allow_list_disabled(registrar))


l2_subname_registrar = l2_subname_registrar.with_post_deploy(
    add_subname_registrar_controller, name="name wrapper controller"
)
l2_subname_registrar = l2_subname_registrar.with_post_deploy(
    set_up_unruggable_tld, name=f".{UNRUGGABLE_TLD} TLD"
)
l2_subname_registrar = l2_subname_registrar.with_post_deploy(
    configure_allow_list, name="allow list"
)


#
# Renewal controllers
#


@deployment_unit(
    name="L2PricePerCharRenewalController",
    tags=["renewal-controllers"],
    dependencies=["registrars"],
)
def l2_price_per_char_renewal_controller(context):
    context.deploy()


def set_character_pricing(context):
    prices = context.constant("PRICE_PER_CHAR_USD", PRICE_PER_CHAR_USD)
    context.bootstrap(
        ensure_character_pricing(
            controller=context.get("L2PricePerCharRenewalController"),
            prices=[price_per_second(usd) for usd in prices],
        )
    )


l2_price_per_char_renewal_controller = l2_price_per_char_renewal_controller.with_post_deploy(
    set_character_pricing, name="character pricing"
)


@deployment_unit(
    name="L2FixedPriceRenewalController",
    tags=["renewal-controllers"],
    dependencies=["registrars"],
)
def l2_fixed_price_renewal_controller(context):
    usd_per_year = context.constant("FIXED_PRICE_USD", FIXED_PRICE_USD)
    context.log(f"Price (USD) per year: {usd_per_year}")
    context.deploy(
        args=[
            context.get("L2NameWrapper").address,
            context.get("USDOracleMock").address,
            price_per_second(usd_per_year),
        ]
    )


def hand_over_fixed_price_controller(context):
    new_owner = context.constant("RENEWAL_CONTROLLER_OWNER", default=None)
    if not new_owner:
        return
    try:
        context.bootstrap(ensure_owner(context.get("L2FixedPriceRenewalController"), new_owner))
    except UnexpectedOwner as e:
        context.warn(e)


l2_fixed_price_renewal_controller = l2_fixed_price_renewal_controller.with_post_deploy(
    hand_over_fixed_price_controller, name="ownership handoff"
)


#
# Resolvers
#


@deployment_unit(name="OwnedResolver", tags=["resolvers"])
def owned_resolver(context):
    context.deploy()


@deployment_unit(
    name="L2PublicResolver",
    id="resolver",
    tags=["resolver"],
    dependencies=["registry", "name-wrapper"],
)
def l2_public_resolver(context):
    context.deploy()


def set_up_resolver_name(context):
    registry = context.get("ENSRegistry")
    resolver = context.get("L2PublicResolver")
    owner = context.query(registry, "owner(bytes32)", namehash(RESOLVER_NAME))
    if not owner or not is_same_address(owner, context.account(OWNER)):
        context.log(f"{RESOLVER_NAME} is not owned by the owner address, not setting resolver")
        return
    context.bootstrap(
        ensure_resolver(registry=registry, name=RESOLVER_NAME, resolver=resolver, sender=OWNER),
        ensure_addr(resolver=resolver, name=RESOLVER_NAME, address=resolver, sender=OWNER),
    )


l2_public_resolver = l2_public_resolver.with_post_deploy(
    set_up_resolver_name, name=RESOLVER_NAME
)


#
# Demo
#


@deployment_unit(name="BasicDemoL2", tags=["basic"])
def basic_demo_l2(context):
    context.deploy()


L2_UNITS = [
    usd_oracle_mock,
    ens_registry,
    root,
    l2_name_wrapper,
    l2_eth_registrar,
    l2_subname_registrar,
    l2_price_per_char_renewal_controller,
    l2_fixed_price_renewal_controller,
    owned_resolver,
    l2_public_resolver,
    basic_demo_l2,
]
