"""
Grading adapter: compare a solved circuit against an authored criterion.
"""

from typing import Optional, Sequence, Tuple

from .solver import DCSolver, SolverResult


class Criterion:
    """
    What a correct answer must show.

    Args:
        tolerance: largest accepted absolute difference
        expected_current_through: (component id, amperes)
        expected_voltage_at: (net or component id, volts)
        required_components: component kinds that must be present
        min_components: smallest accepted component count
    """

    def __init__(
        self,
        tolerance: float,
        expected_current_through: Optional[Tuple[str, float]] = None,
        expected_voltage_at: Optional[Tuple[str, float]] = None,
        required_components: Sequence[str] = (),
        min_components: Optional[int] = None,
    ):
        if tolerance < 0:
            raise ValueError("tolerance must not be negative")
        self.tolerance = tolerance
        self.expected_current_through = expected_current_through
        self.expected_voltage_at = expected_voltage_at
        self.required_components = tuple(required_components)
        self.min_components = min_components

    @classmethod
    def from_dict(cls, data):
        """Build a criterion from the authored record shape."""
        current = data.get('expectedCurrentThrough')
        voltage = data.get('expectedVoltageAt')
        return cls(
            tolerance=data['tolerance'],
            expected_current_through=(current['componentId'], current['value']) if current else None,
            expected_voltage_at=(voltage['nodeId'], voltage['value']) if voltage else None,
            required_components=data.get('requiredComponents', ()),
            min_components=data.get('minComponents'),
        )


class GradeReport:
    """Pass/fail verdict with an accuracy percentage and a message."""

    def __init__(self, passed, accuracy, message, result: Optional[SolverResult] = None):
        self.passed = passed
        self.accuracy = accuracy
        self.message = message
        self.result = result

    def __repr__(self):
        verdict = "PASS" if self.passed else "FAIL"
        return f"GradeReport({verdict}, accuracy={self.accuracy:.1f}%)"


def accuracy(measured, expected):
    """100 * (1 - |error| / |expected|), clamped at 0; |expected| of 0 counts as 1."""
    error = abs(measured - expected)
    return max(0.0, 100.0 * (1.0 - error / (abs(expected) or 1.0)))


def grade(graph, criterion, solver=None):
    """
    Solve ``graph`` and judge it against ``criterion``.

    A missing entry in the solver output counts as 0, so an answer that
    lacks the named component fails on accuracy rather than raising.

    Returns:
        GradeReport
    """
    kinds = {c.kind for c in graph.components}
    missing = [k for k in criterion.required_components if k not in kinds]
    if missing:
        return GradeReport(False, 0.0, f"Missing required component(s): {', '.join(missing)}")
    if criterion.min_components is not None and len(graph.components) < criterion.min_components:
        return GradeReport(
            False, 0.0,
            f"Use at least {criterion.min_components} components (found {len(graph.components)})",
        )

    result = (solver or DCSolver()).solve(graph)
    if not result.success:
        return GradeReport(False, 0.0, result.error or "Check wiring.", result)

    passed = True
    score = 100.0
    checks = []
    if criterion.expected_current_through is not None:
        component_id, expected = criterion.expected_current_through
        checks.append((result.currents.get(component_id, 0.0), expected))
    if criterion.expected_voltage_at is not None:
        node_id, expected = criterion.expected_voltage_at
        checks.append((result.voltages.get(node_id, 0.0), expected))

    for measured, expected in checks:
        if abs(measured - expected) > criterion.tolerance:
            passed = False
        score = min(score, accuracy(measured, expected))

    if passed:
        return GradeReport(True, score, "Excellent work! Logic verified.", result)
    return GradeReport(False, score, "Accuracy too low. Re-check component values and wiring.", result)
