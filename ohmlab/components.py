"""
Component classes for schematic circuit elements.

Every component is an immutable value: editing a component means building
a new one with ``with_changes()``. Each kind knows how to stamp itself into
the nodal system used by the DC solver and how to describe itself as a
SPICE line.
"""

import math
from typing import NamedTuple


TERMINALS = ("A", "B")

# Reserved for future component kinds; rejected by the solver for now.
RESERVED_TERMINALS = ("pos", "neg", "gnd")

VALID_ROTATIONS = (0, 90, 180, 270)

# Footprint of a component box on the canvas
BOX_WIDTH = 100.0
BOX_HEIGHT = 80.0


class TerminalRef(NamedTuple):
    """A terminal of a component, addressed by component id and label."""
    component_id: str
    terminal: str

    def __str__(self):
        return f"{self.component_id}.{self.terminal}"


class Component:
    """Base class for all schematic components."""

    kind = None
    display_name = "Component"
    unit = ""
    default_value = 0.0
    spice_prefix = "X"

    def __init__(self, id, value=None, x=0.0, y=0.0, rotation=0, label=None):
        if not isinstance(id, str) or not id:
            raise ValueError(f"Component id must be a non-empty string, got {id!r}")
        if rotation not in VALID_ROTATIONS:
            raise ValueError(f"Rotation must be one of {VALID_ROTATIONS}, got {rotation!r}")

        self._id = id
        self._value = float(self.default_value if value is None else value)
        self._x = float(x)
        self._y = float(y)
        self._rotation = int(rotation)
        self._label = label

    @property
    def id(self):
        return self._id

    @property
    def value(self):
        return self._value

    @property
    def x(self):
        return self._x

    @property
    def y(self):
        return self._y

    @property
    def rotation(self):
        return self._rotation

    @property
    def label(self):
        return self._label

    @property
    def position(self):
        return (self._x, self._y)

    def terminals(self):
        """Get the (A, B) terminal references of this component."""
        return (TerminalRef(self._id, "A"), TerminalRef(self._id, "B"))

    def terminal_position(self, terminal):
        """
        Get the canvas position of a terminal.

        Terminal A sits on the left edge (top edge when vertical) and B on
        the right edge (bottom edge when vertical) of the component box.

        Args:
            terminal: "A" or "B"

        Returns:
            tuple: (x, y) canvas coordinates
        """
        if terminal not in TERMINALS:
            raise ValueError(f"Unknown terminal {terminal!r}, expected one of {TERMINALS}")

        vertical = self._rotation in (90, 270)
        if vertical:
            x = self._x + BOX_WIDTH / 2
            y = self._y if terminal == "A" else self._y + BOX_HEIGHT
        else:
            x = self._x if terminal == "A" else self._x + BOX_WIDTH
            y = self._y + BOX_HEIGHT / 2
        return (x, y)

    def with_changes(self, **changes):
        """Return a copy of this component with the given attributes replaced."""
        fields = self._fields()
        unknown = set(changes) - set(fields)
        if unknown:
            raise TypeError(f"Unknown component attribute(s): {', '.join(sorted(unknown))}")
        fields.update(changes)
        return type(self)(**fields)

    def _fields(self):
        return {
            'id': self._id,
            'value': self._value,
            'x': self._x,
            'y': self._y,
            'rotation': self._rotation,
            'label': self._label,
        }

    def to_dict(self):
        record = self._fields()
        record['type'] = self.kind
        return record

    # --- Solver hooks -------------------------------------------------

    def validate(self):
        """Raise InvalidComponentValue if the value cannot be simulated."""
        from .errors import InvalidComponentValue
        if not math.isfinite(self._value):
            raise InvalidComponentValue(
                f"{self.display_name} '{self._id}' has a non-finite value ({self._value})"
            )

    def stamp(self, system, net_a, net_b, state=None):
        """Add this component's contribution to an MNA system."""
        raise NotImplementedError("Subclasses must implement stamp()")

    def current(self, v_a, v_b, aux=None, state=None):
        """Branch current from A to B given the solved terminal voltages."""
        raise NotImplementedError("Subclasses must implement current()")

    def to_spice(self, mapper, *, forced_name=None):
        """Convert to a SPICE netlist line using a NetMap; None if there is no line."""
        raise NotImplementedError("Subclasses must implement to_spice()")

    # --- Value semantics ----------------------------------------------

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self._fields() == other._fields()

    def __hash__(self):
        return hash((type(self), tuple(self._fields().items())))

    def __repr__(self):
        return f"{self.__class__.__name__}({self._id!r}, value={self._value})"


class Resistor(Component):
    """Linear resistor; value in ohms."""

    kind = "resistor"
    display_name = "Resistor"
    unit = "Ω"
    default_value = 100.0
    spice_prefix = "R"

    def validate(self):
        super().validate()
        if self._value == 0:
            from .errors import InvalidComponentValue
            raise InvalidComponentValue(f"Resistor '{self._id}' has zero resistance")

    def stamp(self, system, net_a, net_b, state=None):
        system.add_conductance(net_a, net_b, 1.0 / self._value)

    def current(self, v_a, v_b, aux=None, state=None):
        return (v_a - v_b) / self._value

    def to_spice(self, mapper, *, forced_name=None):
        a, b = (mapper.name_for(t) for t in self.terminals())
        return f"{forced_name or self._id} {a} {b} {self._value}"


class VoltageSource(Component):
    """Ideal DC voltage source; terminal A is positive."""

    kind = "voltage_source"
    display_name = "V-Source"
    unit = "V"
    default_value = 10.0
    spice_prefix = "V"

    def stamp(self, system, net_a, net_b, state=None):
        return system.add_voltage_source(net_a, net_b, self._value, label=self._id)

    def current(self, v_a, v_b, aux=None, state=None):
        # The MNA unknown is the current entering A from the circuit;
        # report the current the source delivers out of A instead.
        return -aux

    def to_spice(self, mapper, *, forced_name=None):
        a, b = (mapper.name_for(t) for t in self.terminals())
        return f"{forced_name or self._id} {a} {b} DC {self._value}"


class Ground(Component):
    """0 V reference; both terminals belong to the reference net."""

    kind = "ground"
    display_name = "Ground"
    default_value = 0.0

    def validate(self):
        pass

    def stamp(self, system, net_a, net_b, state=None):
        pass

    def current(self, v_a, v_b, aux=None, state=None):
        return 0.0

    def to_spice(self, mapper, *, forced_name=None):
        return None


class LedState(NamedTuple):
    """Solver-assigned operating state of an LED."""
    on: bool
    conductance: float


class Led(Component):
    """
    Light emitting diode as a piecewise-linear element.

    This is a modeling simplification, not a diode equation. When ON it
    behaves as a fixed forward drop (``value`` volts, anode A to cathode B)
    in series with a small on resistance, which the solver stamps as its
    Norton equivalent. When OFF it is a tiny leakage conductance so a node
    reached only through OFF LEDs still has a defined voltage; its reported
    current is 0. The solver decides ON/OFF iteratively from the solved
    voltages and passes a LedState as ``state``.
    """

    kind = "led"
    display_name = "LED"
    unit = "V"
    default_value = 2.1
    spice_prefix = "D"

    def validate(self):
        super().validate()
        if self._value < 0:
            from .errors import InvalidComponentValue
            raise InvalidComponentValue(
                f"LED '{self._id}' has a negative forward voltage ({self._value})"
            )

    def stamp(self, system, net_a, net_b, state=None):
        if state is None:
            return
        system.add_conductance(net_a, net_b, state.conductance)
        if state.on:
            # Norton source pushing g * Vf from the cathode towards the anode
            system.add_current(net_b, net_a, state.conductance * self._value)

    def current(self, v_a, v_b, aux=None, state=None):
        if state is None or not state.on:
            return 0.0
        return (v_a - v_b - self._value) * state.conductance

    def is_forward_biased(self, v_a, v_b):
        return (v_a - v_b) > self._value

    @property
    def spice_model_name(self):
        return "LED_" + f"{self._value:g}".replace(".", "p").replace("-", "m")

    def spice_model(self, series_resistance=1.0):
        """
        Diode model whose forward drop at 10 mA is close to ``value``.

        Uses emission coefficient 2 and solves Is from the Shockley equation.
        """
        thermal_voltage = 0.02585
        emission = 2.0
        saturation = 0.01 * math.exp(-self._value / (emission * thermal_voltage))
        return (f".model {self.spice_model_name} D(IS={saturation:.4g} "
                f"N={emission:g} RS={series_resistance:g})")

    def to_spice(self, mapper, *, forced_name=None):
        a, b = (mapper.name_for(t) for t in self.terminals())
        return f"{forced_name or self._id} {a} {b} {self.spice_model_name}"


COMPONENT_KINDS = {
    cls.kind: cls
    for cls in (Resistor, VoltageSource, Ground, Led)
}


def make_component(kind, id, **attributes):
    """
    Create a component of the given kind.

    Args:
        kind: One of "resistor", "voltage_source", "ground", "led"
        id: Unique component id
        **attributes: value, x, y, rotation, label

    Returns:
        Component: instance of the matching subclass
    """
    try:
        cls = COMPONENT_KINDS[kind]
    except KeyError:
        raise ValueError(
            f"Unknown component kind {kind!r}, expected one of {sorted(COMPONENT_KINDS)}"
        ) from None
    return cls(id, **attributes)
