from typing import List

from ensdeploy.catalog.l1 import L1_UNITS
from ensdeploy.catalog.l2 import L2_UNITS
from ensdeploy.constants import L1, L2
from ensdeploy.exceptions import ConfigurationError
from ensdeploy.units import DeploymentUnit

CATALOG = {
    L1: L1_UNITS,
    L2: L2_UNITS,
}


def units_for_layer(layer: str) -> List[DeploymentUnit]:
    try:
        return list(CATALOG[layer])
    except KeyError:
        raise ConfigurationError(f"No deployment units for layer '{layer}'.")
