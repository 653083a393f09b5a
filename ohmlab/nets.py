"""
Net builder: collapse wired terminals into electrical nets.
"""

import logging

from networkx.utils import UnionFind

from .components import Ground, TERMINALS
from .errors import MalformedConnection

logger = logging.getLogger(__name__)

REFERENCE_NET = "gnd"


class Net:
    """A maximal set of terminals held at the same potential."""

    __slots__ = ("id", "terminals")

    def __init__(self, id, terminals):
        self.id = id
        self.terminals = tuple(terminals)

    @property
    def is_reference(self):
        return self.id == REFERENCE_NET

    def __contains__(self, terminal):
        return terminal in self.terminals

    def __repr__(self):
        return f"Net({self.id!r}, {', '.join(str(t) for t in self.terminals)})"


class NetMap:
    """
    Partition of a graph's terminals into nets.

    Net ids are deterministic: the net holding the ground terminals is
    named "gnd", the others "N1", "N2", ... in the order their first
    terminal appears in component creation order.
    """

    def __init__(self, nets):
        self._nets = {net.id: net for net in nets}
        self._net_of = {
            terminal: net.id
            for net in nets
            for terminal in net.terminals
        }

    def net_of(self, terminal):
        """Net id holding the given terminal, or None for unknown terminals."""
        return self._net_of.get(terminal)

    # SPICE export looks nets up by terminal
    name_for = net_of

    def net(self, net_id):
        return self._nets.get(net_id)

    @property
    def has_reference(self):
        return REFERENCE_NET in self._nets

    def non_reference_ids(self):
        return [net_id for net_id in self._nets if net_id != REFERENCE_NET]

    def members(self):
        """Mapping of net id to its member terminals."""
        return {net_id: net.terminals for net_id, net in self._nets.items()}

    def __iter__(self):
        return iter(self._nets.values())

    def __len__(self):
        return len(self._nets)

    def __repr__(self):
        return f"NetMap({len(self._nets)} nets)"


def check_connections(graph):
    """
    Raise MalformedConnection if any wire points outside the graph.

    Args:
        graph: SchematicGraph to check
    """
    for connection in graph.connections:
        for terminal in connection.endpoints:
            if terminal.component_id not in graph:
                raise MalformedConnection(
                    f"Connection '{connection.id}' references unknown component "
                    f"'{terminal.component_id}'"
                )
            if terminal.terminal not in TERMINALS:
                raise MalformedConnection(
                    f"Connection '{connection.id}' uses terminal '{terminal.terminal}', "
                    f"which {terminal.component_id} does not have"
                )


def build_nets(graph):
    """
    Group every terminal of the graph into nets using union-find.

    Each terminal starts in its own set and every connection unions its two
    endpoints; an unwired terminal stays a net of its own. Both terminals of
    every ground component are unioned into one reference net.

    Args:
        graph: SchematicGraph

    Returns:
        NetMap

    Raises:
        MalformedConnection: a connection references an unknown component
            or terminal
    """
    check_connections(graph)

    terminals = list(graph.all_terminals())
    sets = UnionFind(terminals)

    for connection in graph.connections:
        sets.union(*connection.endpoints)

    grounds = [t for c in graph.components if isinstance(c, Ground) for t in c.terminals()]
    if grounds:
        sets.union(*grounds)
    ground_root = sets[grounds[0]] if grounds else None

    # Name nets in terminal order so ids do not depend on union order
    members = {}
    for terminal in terminals:
        members.setdefault(sets[terminal], []).append(terminal)

    nets = []
    counter = 1
    for root, group in members.items():
        if root == ground_root:
            nets.append(Net(REFERENCE_NET, group))
        else:
            nets.append(Net(f"N{counter}", group))
            counter += 1

    logger.debug("Built %d nets from %d terminals and %d connections",
                 len(nets), len(terminals), len(graph.connections))
    return NetMap(nets)
