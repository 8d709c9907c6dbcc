"""Error taxonomy for the deployment engine."""

from typing import Sequence


class DeploymentError(Exception):
    """Base exception for deployment-related errors."""


#
# Configuration errors: raised before any chain interaction
#


class ConfigurationError(DeploymentError, ValueError):
    """Raised when the declared units or parameters are inconsistent."""


class UnresolvedTag(ConfigurationError):
    """Raised when a tag is not provided by any declared unit."""

    def __init__(self, tag: str, dependent: str = None):
        self.tag = tag
        self.dependent = dependent
        if dependent:
            message = f"Unit '{dependent}' depends on '{tag}' which no unit provides."
        else:
            message = f"No unit provides tag '{tag}'."
        super().__init__(message)


class CycleError(ConfigurationError):
    """Raised when the unit dependency graph contains a cycle."""

    def __init__(self, path: Sequence[str]):
        self.path = list(path)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.path)}")


class DuplicateUnit(ConfigurationError):
    """Raised when two units share the same name."""


#
# Execution errors: scoped to the failing unit and its dependents
#


class UnknownRole(DeploymentError, LookupError):
    """Raised when a named account is not configured for a network."""

    def __init__(self, role: str, network: str):
        self.role = role
        self.network = network
        super().__init__(f"Account role '{role}' is not configured for network '{network}'.")


class NotFound(DeploymentError, LookupError):
    """Raised when a ledger lookup has no entry."""

    def __init__(self, name: str, network: str, message: str = None):
        self.name = name
        self.network = network
        super().__init__(message or f"No deployment of '{name}' recorded on network '{network}'.")


class UnresolvedDependency(DeploymentError):
    """Raised when a unit needs a deployment that has not happened (yet)."""

    def __init__(self, name: str, network: str, reason: str = None):
        self.name = name
        self.network = network
        message = f"Unresolved dependency: '{name}' on network '{network}'"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class TransactionFailed(DeploymentError):
    """Base exception for transactions that did not confirm successfully."""


class TransactionReverted(TransactionFailed):
    """Raised when a deployment or call reverts on chain."""


class TransactionTimeout(TransactionFailed, TimeoutError):
    """Raised when confirmation of a transaction was not observed in time."""


class RunAborted(DeploymentError):
    """Raised when the operator declines to continue."""


#
# Bootstrap
#


class BootstrapError(DeploymentError):
    """Raised when a bootstrap protocol cannot reach its terminal state."""


class UnexpectedOwner(DeploymentError):
    """
    Non-fatal: the contract is owned by neither the deployer nor the final owner.
    Reported as a warning, chain state is left untouched.
    """

    def __init__(self, contract: str, owner: str):
        self.contract = contract
        self.owner = owner
        super().__init__(f"{contract} is owned by {owner}; cannot transfer to owner account")
