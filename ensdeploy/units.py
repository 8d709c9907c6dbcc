from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, FrozenSet, Iterable, Optional, Tuple

from ensdeploy.networks import NetworkContext

if TYPE_CHECKING:
    from ensdeploy.orchestrator import DeploymentContext

DeployAction = Callable[["DeploymentContext"], None]
EnablePredicate = Callable[[NetworkContext], bool]


@dataclass(frozen=True)
class PostDeployAction:
    """A state-changing step that runs after every unit of the run has deployed."""

    name: str
    action: DeployAction
    # only run when the unit's contract was created by this run
    only_if_newly_deployed: bool = False


@dataclass(frozen=True)
class DeploymentUnit:
    """
    A named, idempotent deployment task.

    Descriptors are built once, at import time, and never mutated:
    `with_post_deploy` returns a new descriptor.
    """

    name: str
    action: DeployAction
    tags: FrozenSet[str] = frozenset()
    dependencies: Tuple[str, ...] = ()
    id: Optional[str] = None
    post_deploy: Tuple[PostDeployAction, ...] = ()
    enabled: Optional[EnablePredicate] = field(default=None, compare=False)

    @property
    def key(self) -> str:
        """
        Unique identity of the unit within a run; its name unless an explicit
        id is declared. Deployments themselves are skipped by ledger name,
        which defaults to the unit name.
        """
        return self.id or self.name

    def provides(self, tag: str) -> bool:
        return tag in self.tags

    def is_enabled(self, network: NetworkContext) -> bool:
        if self.enabled is None:
            return True
        return bool(self.enabled(network))

    def with_post_deploy(
        self, action: DeployAction, name: str = None, only_if_newly_deployed: bool = False
    ) -> "DeploymentUnit":
        post_deploy_action = PostDeployAction(
            name=name or action.__name__,
            action=action,
            only_if_newly_deployed=only_if_newly_deployed,
        )
        return replace(self, post_deploy=self.post_deploy + (post_deploy_action,))


def deployment_unit(
    name: str,
    tags: Iterable[str] = (),
    dependencies: Iterable[str] = (),
    id: str = None,
    enabled: EnablePredicate = None,
) -> Callable[[DeployAction], DeploymentUnit]:
    """Declares a deployment unit from its deploy action."""

    def decorator(action: DeployAction) -> DeploymentUnit:
        return DeploymentUnit(
            name=name,
            action=action,
            tags=frozenset(tags),
            dependencies=tuple(dependencies),
            id=id,
            enabled=enabled,
        )

    return decorator


def requires_network_tag(tag: str) -> EnablePredicate:
    """Enable predicate: only run on networks carrying `tag`."""

    def predicate(network: NetworkContext) -> bool:
        return network.has_tag(tag)

    predicate.__name__ = f"requires_{tag}"
    return predicate
