"""
SPICE netlist export, for cross-checking the built-in solver against an
external simulator such as ngspice.
"""

from .components import Led
from .config import OhmlabConfig
from .nets import build_nets


def assign_spice_names(graph):
    """
    Give every component a SPICE instance name without touching it.

    Names are the kind prefix plus a per-prefix counter in creation order
    (R1, R2, V1, D1, ...).

    Returns:
        dict: component id -> SPICE name
    """
    name_table = {}
    type_counts = {}
    for component in graph.components:
        prefix = component.spice_prefix
        type_counts[prefix] = type_counts.get(prefix, 0) + 1
        name_table[component.id] = f"{prefix}{type_counts[prefix]}"
    return name_table


def to_spice(graph, title="Untitled Circuit", config=None):
    """
    Compile a schematic graph to a SPICE deck with an operating point analysis.

    Args:
        graph: SchematicGraph
        title: circuit title written in the header comment
        config: OhmlabConfig; its LED on resistance becomes the diode RS

    Returns:
        str: SPICE netlist

    Raises:
        MalformedConnection: a connection points outside the graph
    """
    config = config or OhmlabConfig()
    mapper = build_nets(graph)
    name_table = assign_spice_names(graph)

    lines = [f"* Circuit: {title}", ""]

    models = []
    for component in graph.components:
        if isinstance(component, Led):
            model = component.spice_model(config.led_on_resistance)
            if model not in models:
                models.append(model)
    if models:
        lines.append("* ===== LED Models ===== *")
        lines.extend(models)
        lines.append("")

    for component in graph.components:
        line = component.to_spice(mapper, forced_name=name_table[component.id])
        if line is not None:
            lines.append(line)

    lines.append("")
    lines.append(".op")
    lines.append(".end")
    return "\n".join(lines)
