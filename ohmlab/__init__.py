"""
Ohmlab: build small DC schematics and check them with nodal analysis.

Ohmlab keeps a schematic as an immutable graph of components and wires,
edits it through an undoable session, and solves its DC operating point
with modified nodal analysis.
"""

from .components import (
    Component, Resistor, VoltageSource, Ground, Led, LedState, TerminalRef,
    COMPONENT_KINDS, make_component,
)
from .graph import Connection, SchematicGraph
from .nets import Net, NetMap, build_nets
from .solver import DCSolver, SolverResult, MNASystem, gaussian_solve, solve
from .errors import (
    SolverError, MissingReference, InvalidComponentValue, SingularSystem,
    MalformedConnection, LedNotConverged,
)
from .session import EditSession
from .grading import Criterion, GradeReport, grade
from .config import OhmlabConfig, load_config
from .netlist import to_spice

__version__ = "0.1.0"

__all__ = [
    # Data model
    "Component", "Resistor", "VoltageSource", "Ground", "Led", "LedState", "TerminalRef",
    "COMPONENT_KINDS", "make_component", "Connection", "SchematicGraph",
    # Nets and solving
    "Net", "NetMap", "build_nets", "DCSolver", "SolverResult", "MNASystem",
    "gaussian_solve", "solve",
    # Errors
    "SolverError", "MissingReference", "InvalidComponentValue", "SingularSystem",
    "MalformedConnection", "LedNotConverged",
    # Editing
    "EditSession",
    # Grading, config, export
    "Criterion", "GradeReport", "grade", "OhmlabConfig", "load_config", "to_spice",
]
