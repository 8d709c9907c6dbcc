from enum import IntFlag
from pathlib import Path

import ensdeploy

#
# Filesystem
#

DEPLOYMENT_DIR = Path(ensdeploy.__file__).parent
PARAMS_DIR = DEPLOYMENT_DIR / "params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"

#
# Layers
#

L1 = "l1"
L2 = "l2"

SUPPORTED_LAYERS = [L1, L2]

# companion networks must be deployed first
DEFAULT_LAYER_ORDER = [L2, L1]

#
# Named accounts
#

DEPLOYER = "deployer"
OWNER = "owner"

#
# Network tags
#

USE_ROOT = "use_root"

LOCAL_NETWORK_NAMES = ["local", "localhost", "hardhat"]

#
# ENS
#

ZERO_HASH = "0x" + "00" * 32

UNRUGGABLE_TLD = "unruggable"
RESOLVER_NAME = "resolver.eth"

# year 2400
TLD_WRAP_EXPIRY = 13590337622


class Fuses(IntFlag):
    CANNOT_BURN_NAME = 1
    PARENT_CANNOT_CONTROL = 2**16


TLD_FUSES = Fuses.PARENT_CANNOT_CONTROL | Fuses.CANNOT_BURN_NAME

#
# Registrars
#

MIN_REGISTRATION_DURATION = 2419200  # 28 days
MAX_REGISTRATION_DURATION = 31556952  # 1 year
MIN_CHARS = 3
MAX_CHARS = 64

#
# Renewal pricing
#

SECONDS_IN_YEAR = 31536000
WEI_PER_USD = 10**18

# USD per year, indexed by name length (the last one applies to all longer names)
PRICE_PER_CHAR_USD = [5, 1000, 100, 10]
FIXED_PRICE_USD = 5

#
# Transactions
#

DEFAULT_REQUIRED_CONFIRMATIONS = 1
