"""Dependency resolution over deployment units."""

import heapq
from collections import OrderedDict, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ensdeploy.exceptions import CycleError, DuplicateUnit, UnresolvedTag
from ensdeploy.units import DeploymentUnit


def build_tag_index(units: Sequence[DeploymentUnit]) -> Dict[str, List[DeploymentUnit]]:
    """Maps each tag to the units providing it, in declaration order."""
    index = defaultdict(list)
    for unit in units:
        for tag in sorted(unit.tags):
            index[tag].append(unit)
    return dict(index)


def _units_by_name(units: Sequence[DeploymentUnit]) -> "OrderedDict[str, DeploymentUnit]":
    by_name = OrderedDict()
    keys = dict()
    for unit in units:
        if unit.name in by_name:
            raise DuplicateUnit(f"Unit '{unit.name}' is declared more than once.")
        if unit.key in keys:
            raise DuplicateUnit(
                f"Units '{keys[unit.key]}' and '{unit.name}' share the id '{unit.key}'."
            )
        by_name[unit.name] = unit
        keys[unit.key] = unit.name
    return by_name


def _providers(
    reference: str,
    tag_index: Dict[str, List[DeploymentUnit]],
    by_name: Dict[str, DeploymentUnit],
) -> List[DeploymentUnit]:
    """Units satisfying a dependency reference, by tag first, then by name."""
    providers = list(tag_index.get(reference, []))
    named = by_name.get(reference)
    if named is not None and named not in providers:
        providers.append(named)
    return providers


def _unit_dependencies(
    unit: DeploymentUnit,
    tag_index: Dict[str, List[DeploymentUnit]],
    by_name: Dict[str, DeploymentUnit],
) -> Tuple[str, ...]:
    names = list()
    for reference in unit.dependencies:
        providers = [p for p in _providers(reference, tag_index, by_name) if p is not unit]
        if not providers:
            raise UnresolvedTag(tag=reference, dependent=unit.name)
        for provider in providers:
            if provider.name not in names:
                names.append(provider.name)
    return tuple(names)


def dependency_map(
    units: Sequence[DeploymentUnit], names: Optional[Iterable[str]] = None
) -> Dict[str, Tuple[str, ...]]:
    """
    Returns unit name -> names of the units it depends on, for the units
    named in `names`, or for every unit.
    """
    by_name = _units_by_name(units)
    tag_index = build_tag_index(units)
    names = list(by_name) if names is None else names
    return {name: _unit_dependencies(by_name[name], tag_index, by_name) for name in names}


def _find_cycle(names: Iterable[str], edges: Dict[str, Tuple[str, ...]]) -> Optional[List[str]]:
    white, gray, black = 0, 1, 2
    color = {name: white for name in names}
    stack: List[str] = []

    def visit(name: str) -> Optional[List[str]]:
        color[name] = gray
        stack.append(name)
        for dependency in edges[name]:
            if color[dependency] == gray:
                return stack[stack.index(dependency):] + [dependency]
            if color[dependency] == white:
                cycle = visit(dependency)
                if cycle:
                    return cycle
        stack.pop()
        color[name] = black
        return None

    for name in list(color):
        if color[name] == white:
            cycle = visit(name)
            if cycle:
                return cycle
    return None


def resolve(
    units: Sequence[DeploymentUnit], selected_tags: Optional[Iterable[str]] = None
) -> List[DeploymentUnit]:
    """
    Orders the units needed for `selected_tags` so that every unit comes
    after all the units it depends on.

    No selected tags selects every unit. Units with no ordering constraint
    between them keep their declaration order.

    Raises UnresolvedTag or CycleError before anything is executed.
    """
    by_name = _units_by_name(units)
    tag_index = build_tag_index(units)
    position = {name: i for i, name in enumerate(by_name)}

    selected_tags = list(selected_tags or [])
    if selected_tags:
        roots = list()
        for tag in selected_tags:
            providers = _providers(tag, tag_index, by_name)
            if not providers:
                raise UnresolvedTag(tag=tag)
            roots.extend(providers)
    else:
        roots = list(by_name.values())

    # collect the transitive closure of the selection
    edges: Dict[str, Tuple[str, ...]] = dict()
    pending = [unit.name for unit in roots]
    while pending:
        name = pending.pop()
        if name in edges:
            continue
        edges[name] = _unit_dependencies(by_name[name], tag_index, by_name)
        pending.extend(edges[name])

    reachable = sorted(edges, key=position.__getitem__)
    cycle = _find_cycle(reachable, edges)
    if cycle:
        raise CycleError(cycle)

    # Kahn's algorithm, lowest declaration index first
    remaining = {name: len(edges[name]) for name in reachable}
    dependents = defaultdict(list)
    for name in reachable:
        for dependency in edges[name]:
            dependents[dependency].append(name)

    ready = [position[name] for name in reachable if remaining[name] == 0]
    heapq.heapify(ready)
    names = list(by_name)
    ordered = list()
    while ready:
        name = names[heapq.heappop(ready)]
        ordered.append(by_name[name])
        for dependent in dependents[name]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    return ordered
