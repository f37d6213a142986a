"""layout engine: non-overlapping positions for fixed-size node boxes.

two modes:
- incremental: try a few slots around the parent for one new child
- global: layered (sugiyama-style) layout of the whole tree, ranks flowing
  left to right

positions are always the top-left corner of a node box.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Optional, Sequence

import networkx as nx

from .errors import LayoutFailure
from .models import ConversationTree, Handle, Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayoutConfig:
    # fixed logical size of every node box
    node_width: float = 500
    node_height: float = 400

    # gap used by incremental placement and the grid fallback
    spacing: float = 100

    # layered layout separations (within a rank, around edge bends, between ranks)
    node_sep: float = 100
    edge_sep: float = 50
    rank_sep: float = 150

    # padding around the whole layered drawing
    margin_x: float = 50
    margin_y: float = 50

    crossing_passes: int = 8
    coordinate_passes: int = 4
    grid_columns: int = 3


DEFAULT_LAYOUT = LayoutConfig()

# candidate order around the parent, in units of (width + spacing, height + spacing)
CANDIDATE_SLOTS: tuple[tuple[str, int, int], ...] = (
    ("right", 1, 0),
    ("bottom", 0, 1),
    ("left", -1, 0),
    ("bottom-right", 1, 1),
    ("bottom-left", -1, 1),
)

Edge = tuple[str, str]


# --- geometry ---

def get_edge_handles(
    source: Position,
    target: Position,
    config: LayoutConfig = DEFAULT_LAYOUT,
) -> tuple[Handle, Handle]:
    """pick the box sides an edge attaches to, from center-to-center delta."""
    dx = (target.x + config.node_width / 2) - (source.x + config.node_width / 2)
    dy = (target.y + config.node_height / 2) - (source.y + config.node_height / 2)
    if abs(dx) > abs(dy):
        return ("right", "left") if dx > 0 else ("left", "right")
    return ("bottom", "top") if dy > 0 else ("top", "bottom")


def boxes_overlap(
    a: Position,
    b: Position,
    config: LayoutConfig = DEFAULT_LAYOUT,
    tolerance: float = 0.0,
) -> bool:
    """true if two boxes come closer than ``tolerance`` on both axes."""
    return (
        abs(a.x - b.x) < config.node_width + tolerance
        and abs(a.y - b.y) < config.node_height + tolerance
    )


def candidate_positions(
    parent: Position,
    config: LayoutConfig = DEFAULT_LAYOUT,
) -> list[tuple[str, Position]]:
    """candidate slots around a parent, in the order they are tried."""
    step_x = config.node_width + config.spacing
    step_y = config.node_height + config.spacing
    return [
        (name, parent.offset(ux * step_x, uy * step_y))
        for name, ux, uy in CANDIDATE_SLOTS
    ]


# --- incremental placement ---

def place_new_node(
    parent_id: str,
    parent_position: Position,
    occupied: Iterable[Position],
    node_ids: Sequence[str] = (),
    edges: Iterable[Edge] = (),
    new_node_id: str = "__new__",
    config: LayoutConfig = DEFAULT_LAYOUT,
) -> Position:
    """choose a position for a new child of ``parent_id``.

    ``occupied`` must cover at least the parent's existing children.
    ``node_ids``/``edges`` describe the current tree and are only used
    when every candidate slot is taken.
    """
    occupied = list(occupied)
    tolerance = config.spacing / 2

    for name, candidate in candidate_positions(parent_position, config):
        if not any(boxes_overlap(candidate, p, config, tolerance) for p in occupied):
            logger.debug("placing child of %s at %s slot", parent_id, name)
            return candidate

    try:
        positions = layered_layout(
            list(node_ids) + [new_node_id],
            list(edges) + [(parent_id, new_node_id)],
            config,
        )
    except LayoutFailure as e:
        logger.warning("layered fallback failed for child of %s: %s", parent_id, e)
    else:
        if new_node_id in positions:
            return positions[new_node_id]

    return parent_position.offset(
        config.node_width + 2 * config.spacing,
        config.node_height + 2 * config.spacing,
    )


# --- global layout ---

def compute_layout(
    node_ids: Sequence[str],
    edges: Iterable[Edge],
    config: LayoutConfig = DEFAULT_LAYOUT,
) -> dict[str, Position]:
    """layered layout with a grid fallback. never raises."""
    try:
        positions = layered_layout(node_ids, edges, config)
    except (LayoutFailure, nx.NetworkXException, KeyError, ValueError) as e:
        logger.warning("layered layout failed, using grid: %s", e)
        return grid_layout(node_ids, config)

    missing = [nid for nid in node_ids if nid not in positions]
    if missing:
        logger.warning("layered layout skipped %d nodes, using grid", len(missing))
        return grid_layout(node_ids, config)
    return positions


def layout_tree(tree: ConversationTree, config: LayoutConfig = DEFAULT_LAYOUT) -> dict[str, Position]:
    """global layout of every node in a conversation tree."""
    return compute_layout(
        list(tree.nodes),
        [(e.source, e.target) for e in tree.edges.values()],
        config,
    )


def grid_layout(node_ids: Sequence[str], config: LayoutConfig = DEFAULT_LAYOUT) -> dict[str, Position]:
    """reading-order grid, ``grid_columns`` per row."""
    cell_w = config.node_width + config.spacing
    cell_h = config.node_height + config.spacing
    return {
        nid: Position((i % config.grid_columns) * cell_w, (i // config.grid_columns) * cell_h)
        for i, nid in enumerate(node_ids)
    }


def layered_layout(
    node_ids: Sequence[str],
    edges: Iterable[Edge],
    config: LayoutConfig = DEFAULT_LAYOUT,
) -> dict[str, Position]:
    """hierarchical layout: rank, order within ranks, assign coordinates.

    raises LayoutFailure for unknown edge endpoints, duplicate ids or cycles.
    """
    order = {nid: i for i, nid in enumerate(node_ids)}
    if len(order) != len(node_ids):
        raise LayoutFailure("duplicate node ids")

    graph = nx.DiGraph()
    graph.add_nodes_from(node_ids)
    for source, target in edges:
        if source not in order or target not in order:
            raise LayoutFailure(f"edge {source} -> {target} references an unknown node")
        graph.add_edge(source, target)
    if not nx.is_directed_acyclic_graph(graph):
        raise LayoutFailure("graph contains a cycle")
    if not order:
        return {}

    ranks = _assign_ranks(graph, order)
    layered, ranks = _split_long_edges(graph, ranks)
    layers = _initial_layers(layered, ranks, node_ids)
    layers = _minimize_crossings(layers, layered, config.crossing_passes)
    breadth = _assign_breadth(layers, layered, config)

    half_w = config.node_width / 2
    half_h = config.node_height / 2
    top = min(breadth[nid] for nid in node_ids) - half_h

    positions = {}
    for nid in node_ids:
        center_x = config.margin_x + half_w + ranks[nid] * (config.node_width + config.rank_sep)
        positions[nid] = Position(
            round(center_x - half_w, 2),
            round(breadth[nid] - half_h - top + config.margin_y, 2),
        )
    return positions


def _assign_ranks(graph: nx.DiGraph, order: dict[str, int]) -> dict[Hashable, int]:
    """longest path from the sources."""
    ranks: dict[Hashable, int] = {}
    for nid in nx.lexicographical_topological_sort(graph, key=order.__getitem__):
        ranks[nid] = max((ranks[p] + 1 for p in graph.predecessors(nid)), default=0)
    return ranks


def _is_dummy(node: Hashable) -> bool:
    return isinstance(node, tuple)


def _split_long_edges(graph: nx.DiGraph, ranks: dict) -> tuple[nx.DiGraph, dict]:
    """replace edges spanning several ranks with chains of dummy nodes."""
    layered = nx.DiGraph()
    layered.add_nodes_from(graph.nodes)
    ranks = dict(ranks)
    for source, target in graph.edges:
        chain: list[Hashable] = [source]
        for r in range(ranks[source] + 1, ranks[target]):
            dummy = (source, target, r)
            ranks[dummy] = r
            chain.append(dummy)
        chain.append(target)
        layered.add_edges_from(zip(chain, chain[1:]))
    return layered, ranks


def _initial_layers(layered: nx.DiGraph, ranks: dict, node_ids: Sequence[str]) -> list[list[Hashable]]:
    """depth-first visiting order keeps subtrees together before any sweeps."""
    visit: dict[Hashable, int] = {}
    for start in node_ids:
        if layered.in_degree(start) == 0:
            for n in nx.dfs_preorder_nodes(layered, start):
                visit.setdefault(n, len(visit))

    layers: list[list[Hashable]] = [[] for _ in range(max(ranks.values()) + 1)]
    for n in sorted(layered.nodes, key=visit.__getitem__):
        layers[ranks[n]].append(n)
    return layers


def _count_crossings(layers: list[list[Hashable]], layered: nx.DiGraph) -> int:
    total = 0
    for upper, lower in zip(layers, layers[1:]):
        lower_index = {n: i for i, n in enumerate(lower)}
        pairs = sorted(
            (i, lower_index[t]) for i, n in enumerate(upper) for t in layered.successors(n)
        )
        for a, (ua, la) in enumerate(pairs):
            for ub, lb in pairs[a + 1:]:
                if ua < ub and la > lb:
                    total += 1
    return total


def _barycenter_sort(
    layer: list[Hashable],
    fixed: list[Hashable],
    neighbours: Callable[[Hashable], Iterable[Hashable]],
) -> list[Hashable]:
    index = {n: i for i, n in enumerate(fixed)}

    def key(item: tuple[int, Hashable]) -> tuple[float, int]:
        pos, node = item
        linked = [index[m] for m in neighbours(node) if m in index]
        return (sum(linked) / len(linked) if linked else float(pos), pos)

    return [n for _, n in sorted(enumerate(layer), key=key)]


def _minimize_crossings(
    layers: list[list[Hashable]],
    layered: nx.DiGraph,
    passes: int,
) -> list[list[Hashable]]:
    """alternate down/up barycenter sweeps, keep the best ordering seen."""
    best = [list(layer) for layer in layers]
    best_crossings = _count_crossings(best, layered)
    current = [list(layer) for layer in layers]

    for i in range(passes):
        if best_crossings == 0:
            break
        if i % 2 == 0:
            for k in range(1, len(current)):
                current[k] = _barycenter_sort(current[k], current[k - 1], layered.predecessors)
        else:
            for k in range(len(current) - 2, -1, -1):
                current[k] = _barycenter_sort(current[k], current[k + 1], layered.successors)
        crossings = _count_crossings(current, layered)
        if crossings < best_crossings:
            best, best_crossings = [list(layer) for layer in current], crossings
    return best


def _extent(node: Hashable, config: LayoutConfig) -> float:
    return 0.0 if _is_dummy(node) else config.node_height


def _separation(a: Hashable, b: Hashable, config: LayoutConfig) -> float:
    gap = config.edge_sep if _is_dummy(a) or _is_dummy(b) else config.node_sep
    return _extent(a, config) / 2 + gap + _extent(b, config) / 2


def _place_layer(layer: list[Hashable], desired: dict, config: LayoutConfig) -> dict:
    """closest feasible centers to ``desired`` keeping order and separation.

    averages a forward (push down) and a backward (push up) compaction;
    both respect the separations so their mean does too.
    """
    if not layer:
        return {}
    forward = [desired[layer[0]]]
    for prev, node in zip(layer, layer[1:]):
        forward.append(max(desired[node], forward[-1] + _separation(prev, node, config)))

    backward = [desired[layer[-1]]]
    for node, nxt in zip(reversed(layer[:-1]), reversed(layer[1:])):
        backward.append(min(desired[node], backward[-1] - _separation(node, nxt, config)))
    backward.reverse()

    return {node: (f + b) / 2 for node, f, b in zip(layer, forward, backward)}


def _assign_breadth(
    layers: list[list[Hashable]],
    layered: nx.DiGraph,
    config: LayoutConfig,
) -> dict[Hashable, float]:
    """centers along the axis perpendicular to rank flow."""
    y: dict[Hashable, float] = {}
    for layer in layers:
        y.update(_place_layer(layer, {n: 0.0 for n in layer}, config))

    def pull(layer: list[Hashable], neighbours: Callable) -> None:
        desired = {}
        for node in layer:
            linked = [y[m] for m in neighbours(node)]
            desired[node] = sum(linked) / len(linked) if linked else y[node]
        y.update(_place_layer(layer, desired, config))

    for _ in range(config.coordinate_passes):
        for layer in layers[1:]:
            pull(layer, layered.predecessors)
        for layer in reversed(layers[:-1]):
            pull(layer, layered.successors)
    return y
