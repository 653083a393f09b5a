"""
Interactive editing of a schematic graph with undo/redo.

The session owns the live SchematicGraph. Every change replaces the graph
with a new value; the graph that was live before a change is pushed onto
the undo stack as its snapshot. Because graphs are immutable, snapshots
never alias the live state.
"""

import itertools
import logging
import math
from typing import Callable, List, Optional

from .components import COMPONENT_KINDS, TERMINALS, VALID_ROTATIONS, TerminalRef, make_component
from .config import OhmlabConfig
from .graph import Connection, SchematicGraph
from .solver import DCSolver

logger = logging.getLogger(__name__)

IDLE = "idle"
DRAGGING = "dragging"
LINKING = "linking"


class EditSession:
    """
    Editing state machine for one schematic.

    Interaction state is a set of independent flags: an optional drag in
    progress, an optional pending terminal waiting for the second end of a
    wire, and at most one selected component. Mutating operations return
    a truthy value when they changed the graph and a falsy one when they
    were ignored (read-only session, nothing selected, invalid target).
    """

    def __init__(self, graph: Optional[SchematicGraph] = None, read_only=False,
                 config: Optional[OhmlabConfig] = None):
        self.config = config or OhmlabConfig()
        self.read_only = read_only

        self._graph = graph if graph is not None else SchematicGraph()
        self._undo: List[SchematicGraph] = []
        self._redo: List[SchematicGraph] = []

        self._selected_id = None
        self._pending = None          # TerminalRef awaiting the second click
        self._drag_id = None
        self._drag_offset = (0.0, 0.0)
        self._drag_origin = None      # graph before the drag started

        self._component_ids = itertools.count(1)
        self._connection_ids = itertools.count(1)
        self._listeners = []

    # --- State ------------------------------------------------------------

    @property
    def graph(self):
        return self._graph

    @property
    def selected_id(self):
        return self._selected_id

    @property
    def selected(self):
        return self._graph.component(self._selected_id) if self._selected_id else None

    @property
    def pending_link(self):
        return self._pending

    @property
    def dragging_id(self):
        return self._drag_id

    @property
    def mode(self):
        if self._drag_id is not None:
            return DRAGGING
        if self._pending is not None:
            return LINKING
        return IDLE

    @property
    def can_undo(self):
        return bool(self._undo)

    @property
    def can_redo(self):
        return bool(self._redo)

    @property
    def history(self):
        """Undo snapshots, oldest first."""
        return tuple(self._undo)

    @property
    def redo_stack(self):
        return tuple(self._redo)

    # --- Observers --------------------------------------------------------

    def subscribe(self, callback: Callable[[SchematicGraph], None]):
        """
        Call ``callback(graph)`` whenever the live graph changes.

        Returns:
            callable: removes the subscription when called
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _set_graph(self, graph):
        self._graph = graph
        for listener in list(self._listeners):
            listener(graph)

    def _push_undo(self, snapshot):
        self._undo.append(snapshot)
        limit = self.config.history_limit
        if limit is not None and len(self._undo) > limit:
            del self._undo[:len(self._undo) - limit]

    def _commit(self, graph, action, snapshot=None):
        """
        Make ``graph`` live, recording the previous graph for undo.

        A drag still in progress is committed first so its entry lands
        below this one.
        """
        if self._drag_id is not None:
            self.end_drag()
        self._push_undo(snapshot if snapshot is not None else self._graph)
        self._redo.clear()
        logger.debug("%s (history depth %d)", action, len(self._undo))
        self._set_graph(graph)
        return True

    # --- Id allocation ----------------------------------------------------

    def _next_component_id(self):
        while True:
            candidate = f"comp-{next(self._component_ids)}"
            if candidate not in self._graph and not self._id_in_history(candidate):
                return candidate

    def _id_in_history(self, component_id):
        return any(component_id in snapshot for snapshot in self._undo)

    def _next_connection_id(self):
        used = {c.id for c in self._graph.connections}
        while True:
            candidate = f"conn-{next(self._connection_ids)}"
            if candidate not in used:
                return candidate

    # --- Placement and selection -----------------------------------------

    def place(self, kind):
        """
        Add a new component of ``kind`` with its default value and position.

        The new component becomes the selection.

        Returns:
            str or None: the new component id, None when ignored
        """
        if self.read_only:
            return None
        cls = COMPONENT_KINDS.get(kind)
        if cls is None:
            raise ValueError(f"Unknown component kind {kind!r}, expected one of {sorted(COMPONENT_KINDS)}")

        component_id = self._next_component_id()
        x, y = self.config.default_position
        component = make_component(
            kind, component_id,
            value=cls.default_value, x=x, y=y, rotation=0,
            label=f"{cls.display_name} {len(self._graph) + 1}",
        )
        self._commit(self._graph.with_component(component), f"place {kind} {component_id}")
        self._selected_id = component_id
        return component_id

    def select(self, component_id):
        """Select a component; selection is not recorded in history."""
        if component_id not in self._graph:
            return False
        self._selected_id = component_id
        return True

    def cancel(self):
        """Clear the selection and any pending wire (click on empty canvas)."""
        self._selected_id = None
        self._pending = None

    # --- Dragging ---------------------------------------------------------

    def begin_drag(self, component_id, pointer):
        """
        Start dragging a component; it also becomes the selection.

        Args:
            component_id: component under the pointer
            pointer: (x, y) pointer position

        Returns:
            bool: whether a drag started
        """
        if self.read_only:
            return False
        component = self._graph.component(component_id)
        if component is None:
            return False
        if self._drag_id is not None:
            self.end_drag()

        self._drag_id = component_id
        self._drag_offset = (pointer[0] - component.x, pointer[1] - component.y)
        self._drag_origin = self._graph
        self._selected_id = component_id
        return True

    def update_drag(self, pointer):
        """Move the dragged component under the pointer. Not recorded in history."""
        if self._drag_id is None:
            return False
        component = self._graph.component(self._drag_id)
        moved = component.with_changes(
            x=pointer[0] - self._drag_offset[0],
            y=pointer[1] - self._drag_offset[1],
        )
        if moved != component:
            self._set_graph(self._graph.with_replaced(moved))
        return True

    def end_drag(self):
        """
        Finish the drag as a single undoable move.

        Returns:
            bool: whether the drag moved the component (and pushed history)
        """
        if self._drag_id is None:
            return False
        component_id, origin = self._drag_id, self._drag_origin
        self._drag_id = None
        self._drag_origin = None
        if self._graph == origin:
            return False
        return self._commit(self._graph, f"move {component_id}", snapshot=origin)

    # --- Wiring -----------------------------------------------------------

    def click_terminal(self, component_id, terminal):
        """
        Handle a click on a terminal.

        The first click remembers the terminal. A second click on a terminal
        of a different component wires the two together; a second click on
        the same component cancels the pending wire. Wires that already exist
        are not duplicated.

        Returns:
            Connection or None: the wire created by this click
        """
        if self.read_only:
            return None
        if component_id not in self._graph or terminal not in TERMINALS:
            return None

        clicked = TerminalRef(component_id, terminal)
        if self._pending is None:
            self._pending = clicked
            return None

        pending, self._pending = self._pending, None
        if pending.component_id == component_id:
            logger.debug("Cancelled wire from %s", pending)
            return None
        if pending.component_id not in self._graph or self._graph.has_wire(pending, clicked):
            return None

        connection = Connection(
            self._next_connection_id(),
            pending.component_id, pending.terminal,
            clicked.component_id, clicked.terminal,
        )
        self._commit(self._graph.with_connection(connection), f"wire {pending} -> {clicked}")
        return connection

    # --- Removal ----------------------------------------------------------

    def delete_selected(self):
        """Remove the selected component and every wire touching it."""
        if self.read_only or self._selected_id is None:
            return False
        component_id = self._selected_id
        if component_id not in self._graph:
            self._selected_id = None
            return False

        if self._pending is not None and self._pending.component_id == component_id:
            self._pending = None
        self._selected_id = None
        return self._commit(self._graph.without_component(component_id), f"delete {component_id}")

    def clear(self, confirmed):
        """
        Remove everything from the schematic.

        Args:
            confirmed: the caller's answer to its own confirmation prompt;
                nothing happens unless it is True
        """
        if self.read_only or confirmed is not True or self._graph.is_empty():
            return False
        self._selected_id = None
        self._pending = None
        return self._commit(SchematicGraph(), "clear")

    # --- Property edits ---------------------------------------------------

    def _edit_selected(self, action, **changes):
        if self.read_only:
            return False
        component = self.selected
        if component is None:
            return False
        updated = component.with_changes(**changes)
        if updated == component:
            return False
        return self._commit(self._graph.with_replaced(updated), f"{action} {component.id}")

    def set_value(self, value):
        try:
            value = float(value)
        except (TypeError, ValueError):
            return False
        if math.isnan(value):
            return False
        return self._edit_selected("set value", value=value)

    def set_label(self, label):
        return self._edit_selected("set label", label=label)

    def set_rotation(self, rotation):
        if rotation not in VALID_ROTATIONS:
            return False
        return self._edit_selected("set rotation", rotation=rotation)

    def rotate_selected(self):
        """Turn the selected component a quarter turn clockwise."""
        component = self.selected
        if component is None:
            return False
        return self.set_rotation((component.rotation + 90) % 360)

    # --- History ----------------------------------------------------------

    def undo(self):
        """Restore the graph as it was before the last change."""
        if self.read_only:
            return False
        if self._drag_id is not None:
            self.end_drag()
        if not self._undo:
            return False
        self._redo.append(self._graph)
        logger.debug("undo (history depth %d)", len(self._undo) - 1)
        self._restore(self._undo.pop())
        return True

    def redo(self):
        """Re-apply the last undone change."""
        if self.read_only or not self._redo:
            return False
        if self._drag_id is not None:
            self.end_drag()
            # A drag that moved something is a fresh edit and cleared redo
            if not self._redo:
                return False
        self._push_undo(self._graph)
        logger.debug("redo (redo depth %d)", len(self._redo) - 1)
        self._restore(self._redo.pop())
        return True

    def _restore(self, graph):
        self._set_graph(graph)
        if self._selected_id is not None and self._selected_id not in graph:
            self._selected_id = None
        if self._pending is not None and self._pending.component_id not in graph:
            self._pending = None

    # --- Analysis ---------------------------------------------------------

    def solve(self):
        """Solve the live graph."""
        return DCSolver(self.config).solve(self._graph)

    def __repr__(self):
        return (f"EditSession({self._graph!r}, mode={self.mode}, "
                f"undo={len(self._undo)}, redo={len(self._redo)})")
