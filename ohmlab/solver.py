"""
DC operating point solver based on modified nodal analysis (MNA).

Unknowns are the voltages of every non-reference net plus one branch
current per voltage source. Each component kind stamps its own
contribution into the system; the system is solved with Gaussian
elimination and partial pivoting.
"""

import logging
import math
from typing import Dict, Optional

import numpy as np

from .components import Ground, Led, LedState, VoltageSource, TERMINALS
from .config import OhmlabConfig, DEFAULT_PIVOT_EPSILON
from .errors import SolverError, MissingReference, SingularSystem, LedNotConverged
from .graph import SchematicGraph
from .nets import build_nets, REFERENCE_NET

logger = logging.getLogger(__name__)


class MNASystem:
    """
    Builder for the MNA matrix equation ``A x = z``.

    Stamps address nets by id; the reference net (and None) is ground and
    is left out of the matrix.
    """

    def __init__(self, net_ids):
        self.net_ids = list(net_ids)
        self._index = {net_id: i for i, net_id in enumerate(self.net_ids)}
        self._conductances = []   # (row, col, value)
        self._injections = []     # (row, value)
        self._sources = []        # (index_a, index_b, voltage, label)

    def _idx(self, net_id):
        if net_id is None or net_id == REFERENCE_NET:
            return None
        return self._index[net_id]

    def add_conductance(self, net_a, net_b, g):
        """Standard two-terminal conductance stamp between two nets."""
        a, b = self._idx(net_a), self._idx(net_b)
        if a is not None:
            self._conductances.append((a, a, g))
        if b is not None:
            self._conductances.append((b, b, g))
        if a is not None and b is not None:
            self._conductances.append((a, b, -g))
            self._conductances.append((b, a, -g))

    def add_current(self, from_net, into_net, current):
        """Ideal current source driving ``current`` out of from_net into into_net."""
        src, dst = self._idx(from_net), self._idx(into_net)
        if dst is not None:
            self._injections.append((dst, current))
        if src is not None:
            self._injections.append((src, -current))

    def add_voltage_source(self, net_a, net_b, voltage, label=None):
        """
        Constrain V(net_a) - V(net_b) = voltage.

        Adds an auxiliary unknown: the current flowing into the source at
        net_a. Returns the position of that unknown among the source
        currents.
        """
        self._sources.append((self._idx(net_a), self._idx(net_b), voltage, label))
        return len(self._sources) - 1

    @property
    def size(self):
        return len(self.net_ids) + len(self._sources)

    def unknown_labels(self):
        """Human-readable name for every unknown, in matrix order."""
        labels = [f"voltage of net {net_id}" for net_id in self.net_ids]
        labels.extend(f"current through {label or 'source %d' % k}"
                      for k, (_, _, _, label) in enumerate(self._sources))
        return labels

    def assemble(self):
        """Build the dense (A, z) pair."""
        n = len(self.net_ids)
        matrix = np.zeros((self.size, self.size))
        rhs = np.zeros(self.size)

        for row, col, value in self._conductances:
            matrix[row, col] += value
        for row, value in self._injections:
            rhs[row] += value

        for k, (a, b, voltage, _) in enumerate(self._sources):
            row = n + k
            if a is not None:
                matrix[a, row] += 1.0
                matrix[row, a] += 1.0
            if b is not None:
                matrix[b, row] -= 1.0
                matrix[row, b] -= 1.0
            rhs[row] = voltage

        return matrix, rhs


def gaussian_solve(matrix, rhs, epsilon=DEFAULT_PIVOT_EPSILON, labels=None):
    """
    Solve ``matrix @ x = rhs`` by Gaussian elimination with partial pivoting.

    Args:
        matrix: square coefficient matrix (not modified)
        rhs: right-hand side vector (not modified)
        epsilon: smallest acceptable pivot magnitude
        labels: optional names of the unknowns, used in error messages

    Returns:
        numpy.ndarray: solution vector

    Raises:
        SingularSystem: a pivot falls below epsilon
    """
    a = np.array(matrix, dtype=float)
    b = np.array(rhs, dtype=float)
    n = b.shape[0]

    for col in range(n):
        pivot = col + int(np.argmax(np.abs(a[col:, col])))
        if abs(a[pivot, col]) < epsilon:
            what = labels[col] if labels else f"unknown {col}"
            raise SingularSystem(
                f"Circuit has no unique solution: the {what} is undetermined "
                f"(floating sub-circuit or conflicting voltage sources)"
            )
        if pivot != col:
            a[[col, pivot]] = a[[pivot, col]]
            b[[col, pivot]] = b[[pivot, col]]

        factors = a[col + 1:, col] / a[col, col]
        a[col + 1:, col:] -= np.outer(factors, a[col, col:])
        b[col + 1:] -= factors * b[col]

    x = np.zeros(n)
    for row in range(n - 1, -1, -1):
        x[row] = (b[row] - a[row, row + 1:] @ x[row + 1:]) / a[row, row]
    return x


class SolverResult:
    """
    Outcome of one DC solve.

    On success ``voltages`` maps every net id to its potential and every
    component id to the drop V(A) - V(B) across it, and ``currents`` maps
    every component id to its branch current. On failure both maps are
    empty and ``error``/``error_code`` describe why.
    """

    def __init__(self, success, voltages=None, currents=None, error=None, error_code=None,
                 graph=None, nets=None, led_states=None):
        self.success = success
        self.voltages: Dict[str, float] = dict(voltages or {})
        self.currents: Dict[str, float] = dict(currents or {})
        self.error: Optional[str] = error
        self.error_code: Optional[str] = error_code
        self.graph = graph
        self.nets = nets
        self.led_states = dict(led_states or {})

    @classmethod
    def failure(cls, exc, graph=None):
        return cls(False, error=exc.message, error_code=exc.code, graph=graph)

    def get_component_current(self, component_id):
        """
        Get the current through a component.

        Raises:
            ValueError: the solve failed or the component is unknown
        """
        if not self.success:
            raise ValueError(f"No results available: {self.error}")
        if component_id not in self.currents:
            raise ValueError(f"Component {component_id} is not part of this circuit")
        return self.currents[component_id]

    def get_voltage(self, id):
        """Voltage of a net (by net id) or across a component (by component id)."""
        if not self.success:
            raise ValueError(f"No results available: {self.error}")
        if id not in self.voltages:
            raise ValueError(f"No net or component named {id}")
        return self.voltages[id]

    def terminal_voltage(self, component_id, terminal):
        """Potential of a component terminal relative to ground."""
        if not self.success:
            raise ValueError(f"No results available: {self.error}")
        component = self.graph.component(component_id)
        if component is None:
            raise ValueError(f"Component {component_id} is not part of this circuit")
        if terminal not in TERMINALS:
            raise ValueError(f"Unknown terminal {terminal!r}, expected one of {TERMINALS}")
        net_id = self.nets.net_of(component.terminals()[TERMINALS.index(terminal)])
        return self.voltages[net_id]

    def _branch_current(self, component):
        # Current entering the component at A and leaving at B
        current = self.currents[component.id]
        return -current if isinstance(component, VoltageSource) else current

    def kcl_residuals(self):
        """
        Sum of the currents leaving each net through its components.

        Every entry is ~0 for a valid solution, up to the leakage of OFF
        LEDs, which is reported as zero current.
        """
        if not self.success:
            raise ValueError(f"No results available: {self.error}")
        if self.nets is None:
            return {}
        residuals = {net.id: 0.0 for net in self.nets}
        for component in self.graph.components:
            terminal_a, terminal_b = component.terminals()
            current = self._branch_current(component)
            residuals[self.nets.net_of(terminal_a)] += current
            residuals[self.nets.net_of(terminal_b)] -= current
        return residuals

    def to_dict(self):
        result = {
            'success': self.success,
            'voltages': dict(self.voltages),
            'currents': dict(self.currents),
        }
        if self.error is not None:
            result['error'] = self.error
            result['error_code'] = self.error_code
        return result

    def __repr__(self):
        if self.success:
            return f"SolverResult(success, {len(self.voltages)} voltages, {len(self.currents)} currents)"
        return f"SolverResult(failed: {self.error_code})"


class DCSolver:
    """
    Solves the DC operating point of a schematic graph.

    The solver is stateless between calls; the same graph always yields the
    same result.
    """

    def __init__(self, config: Optional[OhmlabConfig] = None):
        self.config = config or OhmlabConfig()

    def solve(self, graph: SchematicGraph) -> SolverResult:
        """
        Solve a graph, reporting failures as a SolverResult.

        Args:
            graph: SchematicGraph to analyse

        Returns:
            SolverResult: success flag, voltages, currents or an error
        """
        if not graph.components:
            return SolverResult(True, graph=graph)

        try:
            return self._solve(graph)
        except SolverError as e:
            logger.warning("DC solve failed [%s]: %s", e.code, e.message)
            return SolverResult.failure(e, graph=graph)

    def _solve(self, graph):
        if not any(isinstance(c, Ground) for c in graph.components):
            raise MissingReference("Missing ground: the circuit must be referenced to 0 V")

        for component in graph.components:
            component.validate()

        nets = build_nets(graph)
        lit = LedState(True, 1.0 / self.config.led_on_resistance)
        dark = LedState(False, self.config.led_off_conductance)
        leds = [c for c in graph.components if isinstance(c, Led)]

        # LEDs start ON; each pass flips the ones whose bias disagrees with
        # their state until nothing changes.
        led_states = {led.id: lit for led in leds}
        for iteration in range(1, self.config.led_max_iterations + 1):
            net_voltages, aux = self._solve_linear(graph, nets, led_states)
            flipped = []
            for led in leds:
                v_a, v_b = (net_voltages[nets.net_of(t)] for t in led.terminals())
                state = led_states[led.id]
                if state.on and led.current(v_a, v_b, state=state) < 0:
                    led_states[led.id] = dark
                    flipped.append(led.id)
                elif not state.on and led.is_forward_biased(v_a, v_b):
                    led_states[led.id] = lit
                    flipped.append(led.id)
            if not flipped:
                break
            logger.debug("LED pass %d flipped %s", iteration, flipped)
        else:
            raise LedNotConverged(
                f"LED states did not settle after {self.config.led_max_iterations} passes"
            )

        voltages = dict(net_voltages)
        currents = {}
        for component in graph.components:
            v_a, v_b = (net_voltages[nets.net_of(t)] for t in component.terminals())
            voltages[component.id] = v_a - v_b
            currents[component.id] = component.current(
                v_a, v_b, aux=aux.get(component.id), state=led_states.get(component.id)
            )

        logger.debug("Solved %d components over %d nets", len(graph.components), len(nets))
        return SolverResult(True, voltages, currents, graph=graph, nets=nets,
                            led_states={k: v.on for k, v in led_states.items()})

    def _solve_linear(self, graph, nets, led_states):
        """Stamp every component, solve, and split the solution vector."""
        system = MNASystem(nets.non_reference_ids())
        source_slots = {}
        for component in graph.components:
            net_a, net_b = (nets.net_of(t) for t in component.terminals())
            # Only components that add an auxiliary unknown return its slot
            slot = component.stamp(system, net_a, net_b, state=led_states.get(component.id))
            if slot is not None:
                source_slots[component.id] = slot

        matrix, rhs = system.assemble()
        x = gaussian_solve(matrix, rhs, self.config.pivot_epsilon, system.unknown_labels())
        if not all(math.isfinite(v) for v in x):
            raise SingularSystem("Circuit equations produced non-finite values")

        n = len(system.net_ids)
        net_voltages = {REFERENCE_NET: 0.0}
        net_voltages.update({net_id: float(x[i]) for i, net_id in enumerate(system.net_ids)})
        aux = {component_id: float(x[n + k]) for component_id, k in source_slots.items()}
        return net_voltages, aux


def solve(components, connections=(), config=None):
    """
    Solve a circuit given as separate component and connection sequences.

    Args:
        components: iterable of Component, or a SchematicGraph
        connections: iterable of Connection (ignored when a graph is given)
        config: optional OhmlabConfig

    Returns:
        SolverResult
    """
    if isinstance(components, SchematicGraph):
        graph = components
    else:
        graph = SchematicGraph(components, connections)
    return DCSolver(config).solve(graph)
