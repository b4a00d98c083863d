"""Call graph over top-level functions and callee-first ordering."""

from __future__ import annotations

from typing import Dict, Iterable, List, Set

from serpent.src.ast.base import walk
from serpent.src.ast.expressions import Call, Name
from serpent.src.ast.statements import FunctionDef, Module


def build_call_graph(module: Module) -> Dict[str, List[str]]:
    """Map each top-level function to the top-level functions it calls.

    Calls made from nested functions count for the enclosing top-level
    function. Edges keep source order and are deduplicated.
    """
    functions = [fn.name for fn in module.functions]
    known = set(functions)
    graph: Dict[str, List[str]] = {name: [] for name in functions}
    for fn in module.functions:
        local_names = _locally_bound_names(fn)
        seen: Set[str] = set()
        for node in walk(fn):
            if not isinstance(node, Call) or not isinstance(node.func, Name):
                continue
            callee = node.func.id
            if callee in known and callee not in local_names and callee not in seen:
                seen.add(callee)
                graph[fn.name].append(callee)
    return graph


def _locally_bound_names(fn: FunctionDef) -> Set[str]:
    """Names a function binds itself (nested defs), which shadow module names."""
    return {
        node.name for node in walk(fn) if isinstance(node, FunctionDef) and node is not fn
    }


def strongly_connected_components(graph: Dict[str, Iterable[str]]) -> List[List[str]]:
    """Tarjan's algorithm.

    Components come out callees-first: every component appears after all
    components it calls into. Members keep the graph's insertion order.
    """
    order = {name: index for index, name in enumerate(graph)}
    index_of: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: Set[str] = set()
    components: List[List[str]] = []
    counter = 0

    def visit(node: str) -> None:
        nonlocal counter
        index_of[node] = lowlink[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)
        for succ in graph.get(node, ()):
            if succ not in index_of:
                visit(succ)
                lowlink[node] = min(lowlink[node], lowlink[succ])
            elif succ in on_stack:
                lowlink[node] = min(lowlink[node], index_of[succ])
        if lowlink[node] == index_of[node]:
            component = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            components.append(sorted(component, key=order.__getitem__))

    for node in graph:
        if node not in index_of:
            visit(node)
    return components


def is_recursive(component: List[str], graph: Dict[str, Iterable[str]]) -> bool:
    """True for a cycle: several members, or one member calling itself."""
    if len(component) > 1:
        return True
    name = component[0]
    return name in graph.get(name, ())
