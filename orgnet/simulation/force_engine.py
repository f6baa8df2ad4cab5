"""
Force-directed layout for the relationship graph.

Velocity Verlet integration with the same force model and cooling schedule
as d3-force: link springs, Barnes-Hut many-body repulsion, a weak
centering force and collision avoidance. Parameters are tuned from graph
density so large graphs do not blow apart.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Collection, Sequence
from enum import Enum

from orgnet.analysis.models import AggregatedEdge, Node, NodePosition
from orgnet.simulation.quadtree import QuadCell, quadtree_build, quadtree_query_radius
from orgnet.utils.config_loader import SimulationSettings

logger = logging.getLogger(__name__)

INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))
DISTANCE_MIN2 = 1.0


class SimulationState(str, Enum):
    """Lifecycle of one layout run."""
    SEEDING = "seeding"
    RUNNING = "running"
    CONVERGED = "converged"
    STOPPED = "stopped"


def density_factors(node_count: int, link_count: int) -> tuple[float, float]:
    """Return ``(density_factor, repulsion_factor)`` for a graph size."""
    node_density = max(0.3, 1 - (node_count / 200) * 0.7)
    link_density = max(0.3, 1 - (link_count / 500) * 0.7)
    repulsion = min(2.5, 1 + (node_count / 200) * 1.5)
    return min(node_density, link_density), repulsion


def link_distance(count: int, base: float = 280.0, floor: float = 100.0) -> float:
    """Rest length of a link; pairs that met more often sit closer."""
    reduction = min(100.0, math.log2(max(1, count)) * 30)
    return max(floor, base - reduction)


def link_strength(count: int, density: float, base: float = 0.4) -> float:
    """Spring stiffness of a link, scaled down on dense graphs."""
    return base * min(2.0, 1 + math.log2(max(1, count)) * 0.3) * density


class _Link:
    __slots__ = ("source", "target", "distance", "strength", "bias")

    def __init__(self, source: Node, target: Node, distance: float, strength: float):
        self.source = source
        self.target = target
        self.distance = distance
        self.strength = strength
        self.bias = 0.5


class ForceSimulationEngine:
    """Owns node positions while running.

    ``step()`` advances one tick and mutates the Node objects in place;
    listeners registered with ``on("tick")`` run after every tick and
    ``on("end")`` receives an immutable snapshot when the layout converges
    or is stopped with a flush.
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        links: Sequence[AggregatedEdge],
        settings: SimulationSettings | None = None,
        width: float | None = None,
        height: float | None = None,
        restored_ids: Collection[str] | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings or SimulationSettings()
        self.nodes = list(nodes)
        self.width = float(width if width is not None else self.settings.width)
        self.height = float(height if height is not None else self.settings.height)
        self.rng = rng or random.Random(self.settings.seed)

        self.alpha_decay = self.settings.alpha_decay
        self.alpha_min = self.settings.alpha_min
        self.alpha_target = self.settings.alpha_target
        self.velocity_decay = 1 - self.settings.velocity_decay

        by_id = {n.id: n for n in self.nodes}
        self.density_factor, self.repulsion_factor = density_factors(len(self.nodes), len(links))
        self.links: list[_Link] = []
        for edge in links:
            source, target = by_id.get(edge.source), by_id.get(edge.target)
            if source is None or target is None or source is target:
                continue
            self.links.append(_Link(
                source,
                target,
                link_distance(edge.count, self.settings.base_link_distance, self.settings.min_link_distance),
                link_strength(edge.count, self.density_factor, self.settings.base_link_strength),
            ))
        self.charge = self.settings.charge_strength * self.repulsion_factor

        self.state = SimulationState.SEEDING
        self.tick_count = 0
        self._listeners: dict[str, list[Callable]] = {"tick": [], "end": []}
        self._initialize_nodes()
        self._initialize_links()

        restored = sum(1 for n in self.nodes if n.id in restored_ids) if restored_ids else 0
        self.alpha = self.initial_alpha(len(self.nodes), restored)
        logger.debug(
            "Simulation seeded: %d nodes, %d links, alpha=%.3f, density=%.2f, repulsion=%.2f",
            len(self.nodes), len(self.links), self.alpha, self.density_factor, self.repulsion_factor,
        )

    def initial_alpha(self, node_count: int, restored_count: int) -> float:
        """Start nearly settled when most nodes come back with a saved layout."""
        if node_count and restored_count * 2 > node_count:
            return self.settings.warm_alpha
        return 1.0

    # ------------------------------------------------------------ lifecycle

    def on(self, event: str, callback: Callable) -> ForceSimulationEngine:
        """Register a ``tick`` or ``end`` listener; returns the engine for chaining."""
        if event not in self._listeners:
            raise ValueError(f"Unknown simulation event '{event}'")
        self._listeners[event].append(callback)
        return self

    def _fire(self, event: str, *args):
        for callback in list(self._listeners[event]):
            callback(*args)

    @property
    def running(self) -> bool:
        """True until the engine has converged or been stopped."""
        return self.state in (SimulationState.SEEDING, SimulationState.RUNNING)

    def set_size(self, width: float, height: float):
        """Move the centering target to the middle of a resized canvas."""
        self.width = float(width)
        self.height = float(height)

    def step(self) -> bool:
        """Advance one tick. Returns False once the engine no longer runs."""
        if not self.running:
            return False
        if not self.nodes:
            self.state = SimulationState.CONVERGED
            self._fire("end", self.snapshot())
            return False
        self.state = SimulationState.RUNNING
        self.tick()
        self._fire("tick", self)
        if self.alpha < self.alpha_min:
            self.state = SimulationState.CONVERGED
            self._settle()
            logger.debug("Simulation converged after %d ticks", self.tick_count)
            self._fire("end", self.snapshot())
            return False
        return True

    def run(self, max_ticks: int | None = None) -> int:
        """Step until the engine stops or ``max_ticks`` is reached; returns ticks taken."""
        ticks = 0
        while self.running and (max_ticks is None or ticks < max_ticks):
            self.step()
            ticks += 1
        return ticks

    def stop(self, flush: bool = True):
        """Stop advancing; a flush hands the current positions to ``end`` listeners."""
        if not self.running:
            return
        self.state = SimulationState.STOPPED
        if flush:
            self._fire("end", self.snapshot())

    def reheat(self, alpha: float = 1.0):
        """Restart a settled or stopped layout at the given temperature."""
        self.alpha = alpha
        if not self.running:
            self.state = SimulationState.RUNNING

    def _settle(self):
        """Drop the residual motion left at the alpha floor so the committed layout is at rest."""
        for node in self.nodes:
            node.vx = node.vy = 0.0

    def snapshot(self) -> tuple[NodePosition, ...]:
        """Immutable copy of the current positions and velocities."""
        return tuple(NodePosition(n.id, n.x, n.y, n.vx, n.vy) for n in self.nodes)

    # ---------------------------------------------------------------- tick

    def tick(self):
        """Cool alpha, apply every force once and integrate positions."""
        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
        self.tick_count += 1

        self._apply_links()
        self._apply_charge()
        self._apply_center()
        self._apply_collide()

        for node in self.nodes:
            if node.fx is None:
                node.vx *= self.velocity_decay
                node.x += node.vx
            else:
                node.x = node.fx
                node.vx = 0.0
            if node.fy is None:
                node.vy *= self.velocity_decay
                node.y += node.vy
            else:
                node.y = node.fy
                node.vy = 0.0

    def _jiggle(self) -> float:
        return (self.rng.random() - 0.5) * 1e-6

    def _initialize_nodes(self):
        for i, node in enumerate(self.nodes):
            node.index = i
            if node.fx is not None:
                node.x = node.fx
            if node.fy is not None:
                node.y = node.fy
            if not (_finite(node.x) and _finite(node.y)):
                radius = INITIAL_RADIUS * math.sqrt(0.5 + i)
                angle = i * INITIAL_ANGLE
                node.x = radius * math.cos(angle)
                node.y = radius * math.sin(angle)
            if not (_finite(node.vx) and _finite(node.vy)):
                node.vx = node.vy = 0.0

    def _initialize_links(self):
        counts: dict[int, int] = {}
        for link in self.links:
            counts[link.source.index] = counts.get(link.source.index, 0) + 1
            counts[link.target.index] = counts.get(link.target.index, 0) + 1
        for link in self.links:
            s, t = counts[link.source.index], counts[link.target.index]
            link.bias = s / (s + t)

    def _apply_links(self):
        """d3 link force: pull each pair towards its rest length, split by degree bias."""
        alpha = self.alpha
        for link in self.links:
            source, target = link.source, link.target
            x = target.x + target.vx - source.x - source.vx or self._jiggle()
            y = target.y + target.vy - source.y - source.vy or self._jiggle()
            length = math.sqrt(x * x + y * y)
            length = (length - link.distance) / length * alpha * link.strength
            x *= length
            y *= length
            b = link.bias
            target.vx -= x * b
            target.vy -= y * b
            source.vx += x * (1 - b)
            source.vy += y * (1 - b)

    def _apply_charge(self):
        """Barnes-Hut many-body repulsion over a fresh quadtree."""
        if self.charge == 0 or len(self.nodes) < 2:
            return
        tree = quadtree_build((n.index, n.x, n.y) for n in self.nodes)
        theta2 = self.settings.theta ** 2
        for node in self.nodes:
            self._charge_visit(tree, node, theta2)

    def _charge_visit(self, cell: QuadCell, node: Node, theta2: float):
        if cell.count == 0:
            return
        alpha = self.alpha
        x = cell.cx - node.x
        y = cell.cy - node.y
        w = cell.width
        dist2 = x * x + y * y

        # Far enough away: treat the whole cell as one body
        if w * w / theta2 < dist2:
            if x == 0:
                x = self._jiggle()
                dist2 += x * x
            if y == 0:
                y = self._jiggle()
                dist2 += y * y
            if dist2 < DISTANCE_MIN2:
                dist2 = math.sqrt(DISTANCE_MIN2 * dist2)
            strength = self.charge * cell.count
            node.vx += x * strength * alpha / dist2
            node.vy += y * strength * alpha / dist2
            return

        if not cell.is_leaf:
            for child in cell.children:
                self._charge_visit(child, node, theta2)
            return

        for index, px, py in cell.points:
            if index == node.index:
                continue
            x = px - node.x
            y = py - node.y
            dist2 = x * x + y * y
            if x == 0:
                x = self._jiggle()
                dist2 += x * x
            if y == 0:
                y = self._jiggle()
                dist2 += y * y
            if dist2 < DISTANCE_MIN2:
                dist2 = math.sqrt(DISTANCE_MIN2 * dist2)
            w = self.charge * alpha / dist2
            node.vx += x * w
            node.vy += y * w

    def _apply_center(self):
        strength = self.settings.center_strength
        n = len(self.nodes)
        if not n:
            return
        sx = sum(node.x for node in self.nodes)
        sy = sum(node.y for node in self.nodes)
        sx = (sx / n - self.width / 2) * strength
        sy = (sy / n - self.height / 2) * strength
        for node in self.nodes:
            node.x -= sx
            node.y -= sy

    def _apply_collide(self):
        """Push apart nodes closer than the collision radius."""
        radius = self.settings.collide_radius
        if radius <= 0 or len(self.nodes) < 2:
            return
        reach = radius * 2
        r2 = reach * reach
        tree = quadtree_build((n.index, n.x + n.vx, n.y + n.vy) for n in self.nodes)
        for node in self.nodes:
            xi = node.x + node.vx
            yi = node.y + node.vy
            for index, _, _ in quadtree_query_radius(tree, xi, yi, reach):
                if index <= node.index:
                    continue
                other = self.nodes[index]
                x = xi - other.x - other.vx
                y = yi - other.y - other.vy
                dist2 = x * x + y * y
                if dist2 >= r2:
                    continue
                if x == 0:
                    x = self._jiggle()
                    dist2 += x * x
                if y == 0:
                    y = self._jiggle()
                    dist2 += y * y
                dist = math.sqrt(dist2)
                push = (reach - dist) / dist
                x *= push
                y *= push
                # Equal radii split the correction evenly
                node.vx += x * 0.5
                node.vy += y * 0.5
                other.vx -= x * 0.5
                other.vy -= y * 0.5


def _finite(value) -> bool:
    return value is not None and math.isfinite(value)
