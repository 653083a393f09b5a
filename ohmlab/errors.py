"""
Solver error taxonomy.

The solver raises these internally; DCSolver.solve() turns them into a
failed SolverResult so callers never see an exception for a bad circuit.
"""


class SolverError(Exception):
    """Base class for every condition that prevents a DC solution."""
    code = "SolverError"

    def __init__(self, message=None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class MissingReference(SolverError):
    """Missing ground: the circuit must be referenced to 0 V."""
    code = "MissingReference"


class InvalidComponentValue(SolverError):
    """A component value is zero or non-finite where a real value is required."""
    code = "InvalidComponentValue"


class SingularSystem(SolverError):
    """The circuit equations have no unique solution."""
    code = "SingularSystem"


class MalformedConnection(SolverError):
    """A connection references a component or terminal that does not exist."""
    code = "MalformedConnection"


class LedNotConverged(SolverError):
    """LED on/off states did not settle."""
    code = "LedNotConverged"
