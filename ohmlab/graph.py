"""
Schematic graph: components plus the wires between their terminals.

A SchematicGraph is value data. Nothing mutates it in place; the edit
session builds a new graph for every change, so any graph can be kept as
an undo snapshot or handed to the solver without copying.
"""

import warnings
from typing import Iterable, Optional, Tuple

from .components import (
    Component, TerminalRef, TERMINALS, RESERVED_TERMINALS, make_component,
)


class Connection:
    """An undirected wire between two component terminals."""

    __slots__ = ("id", "from_id", "from_terminal", "to_id", "to_terminal")

    def __init__(self, id, from_id, from_terminal, to_id, to_terminal):
        for terminal in (from_terminal, to_terminal):
            if terminal not in TERMINALS + RESERVED_TERMINALS:
                raise ValueError(f"Unknown terminal label {terminal!r}")
        object.__setattr__(self, "id", id)
        object.__setattr__(self, "from_id", from_id)
        object.__setattr__(self, "from_terminal", from_terminal)
        object.__setattr__(self, "to_id", to_id)
        object.__setattr__(self, "to_terminal", to_terminal)

    def __setattr__(self, name, value):
        raise AttributeError("Connection is immutable")

    @property
    def endpoints(self) -> Tuple[TerminalRef, TerminalRef]:
        return (TerminalRef(self.from_id, self.from_terminal),
                TerminalRef(self.to_id, self.to_terminal))

    def touches(self, component_id):
        return component_id in (self.from_id, self.to_id)

    def joins(self, first, second):
        """True if this wire links the two terminal references, in either direction."""
        ends = self.endpoints
        return ends == (first, second) or ends == (second, first)

    def to_dict(self):
        return {
            'id': self.id,
            'fromId': self.from_id,
            'fromTerminal': self.from_terminal,
            'toId': self.to_id,
            'toTerminal': self.to_terminal,
        }

    def _key(self):
        return (self.id, self.from_id, self.from_terminal, self.to_id, self.to_terminal)

    def __eq__(self, other):
        if not isinstance(other, Connection):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"Connection({self.id!r}, {self.from_id}.{self.from_terminal} -- {self.to_id}.{self.to_terminal})"


class SchematicGraph:
    """
    Ordered components and their connections.

    Components keep creation order (display order); connections keep the
    order in which they were drawn. Structural queries return None (or an
    empty tuple for collections) for unknown ids instead of raising.
    """

    def __init__(self, components: Iterable[Component] = (), connections: Iterable[Connection] = ()):
        self._components = tuple(components)
        self._connections = tuple(connections)

        ids = [c.id for c in self._components]
        if len(ids) != len(set(ids)):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            raise ValueError(f"Duplicate component id(s): {', '.join(duplicates)}")
        self._by_id = {c.id: c for c in self._components}

    @property
    def components(self):
        return self._components

    @property
    def connections(self):
        return self._connections

    # --- Structural queries ---------------------------------------------

    def component(self, component_id) -> Optional[Component]:
        return self._by_id.get(component_id)

    def __contains__(self, component_id):
        return component_id in self._by_id

    def terminals_of(self, component_id):
        component = self._by_id.get(component_id)
        if component is None:
            return None
        return component.terminals()

    def terminal_position(self, component_id, terminal):
        component = self._by_id.get(component_id)
        if component is None or terminal not in TERMINALS:
            return None
        return component.terminal_position(terminal)

    def connections_touching(self, component_id):
        return tuple(c for c in self._connections if c.touches(component_id))

    def has_wire(self, first: TerminalRef, second: TerminalRef):
        return any(c.joins(first, second) for c in self._connections)

    def all_terminals(self):
        """Yield every terminal of every component, in creation order."""
        for component in self._components:
            yield from component.terminals()

    def is_empty(self):
        return not self._components and not self._connections

    # --- Derivations (each returns a new graph) ---------------------------

    def with_component(self, component):
        return SchematicGraph(self._components + (component,), self._connections)

    def with_replaced(self, component):
        """Swap in a new version of an existing component, keeping its position in the order."""
        if component.id not in self._by_id:
            raise KeyError(component.id)
        components = tuple(component if c.id == component.id else c for c in self._components)
        return SchematicGraph(components, self._connections)

    def without_component(self, component_id):
        """Drop a component and every connection touching it."""
        return SchematicGraph(
            (c for c in self._components if c.id != component_id),
            (c for c in self._connections if not c.touches(component_id)),
        )

    def with_connection(self, connection):
        return SchematicGraph(self._components, self._connections + (connection,))

    # --- Plain-data boundary --------------------------------------------

    def to_dict(self):
        """Flat records suitable for JSON persistence."""
        return {
            'components': [c.to_dict() for c in self._components],
            'connections': [c.to_dict() for c in self._connections],
        }

    @classmethod
    def from_dict(cls, data):
        """
        Rebuild a graph from the records produced by ``to_dict()``.

        Args:
            data: dict with "components" and "connections" lists

        Returns:
            SchematicGraph

        Raises:
            ValueError: a record is missing a required field or has an
                unknown kind
        """
        components = []
        for record in data.get('components', []):
            try:
                components.append(make_component(
                    record['type'],
                    record['id'],
                    value=record.get('value'),
                    x=record.get('x', 0.0),
                    y=record.get('y', 0.0),
                    rotation=record.get('rotation', 0),
                    label=record.get('label'),
                ))
            except KeyError as e:
                raise ValueError(f"Component record is missing field {e.args[0]!r}: {record!r}") from None

        connections = []
        for record in data.get('connections', []):
            try:
                connection = Connection(
                    record['id'],
                    record['fromId'], record['fromTerminal'],
                    record['toId'], record['toTerminal'],
                )
            except KeyError as e:
                raise ValueError(f"Connection record is missing field {e.args[0]!r}: {record!r}") from None

            if any(c.joins(*connection.endpoints) for c in connections):
                warnings.warn(
                    f"Connection {connection.id!r} duplicates an existing wire between "
                    f"{connection.endpoints[0]} and {connection.endpoints[1]}",
                    UserWarning,
                    stacklevel=2,
                )
            connections.append(connection)

        return cls(components, connections)

    # --- Value semantics --------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, SchematicGraph):
            return NotImplemented
        return self._components == other._components and self._connections == other._connections

    def __hash__(self):
        return hash((self._components, self._connections))

    def __len__(self):
        return len(self._components)

    def __repr__(self):
        return f"SchematicGraph({len(self._components)} components, {len(self._connections)} connections)"
