#!/usr/bin/env python3
"""
Tests for the DC solver: MNA stamping, Gaussian elimination, LED states
and the error taxonomy.
"""

import math
import unittest
import os
import sys

import numpy as np

# Add the parent directory to the path to import ohmlab
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ohmlab import (
    SchematicGraph, Resistor, VoltageSource, Ground, Led, DCSolver, OhmlabConfig,
    MNASystem, gaussian_solve, solve, SingularSystem,
)
from circuit_builders import (
    wire, series_circuit, parallel_circuit, divider_circuit, led_circuit,
)


class TestTrivialAndReference(unittest.TestCase):
    """Early exits before any matrix is built."""

    def test_empty_graph_succeeds(self):
        result = DCSolver().solve(SchematicGraph())
        self.assertTrue(result.success)
        self.assertEqual(result.voltages, {})
        self.assertEqual(result.currents, {})
        self.assertIsNone(result.error)

    def test_missing_ground(self):
        graph = SchematicGraph(
            [VoltageSource("v", 5), Resistor("r", 10)],
            [wire("w1", "v.A", "r.A"), wire("w2", "v.B", "r.B")],
        )
        result = DCSolver().solve(graph)
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "MissingReference")
        self.assertIn("ground", result.error.lower())
        self.assertEqual(result.voltages, {})
        self.assertEqual(result.currents, {})

    def test_missing_ground_reported_before_malformed_wires(self):
        graph = SchematicGraph([Resistor("r", 10)], [wire("w1", "r.A", "ghost.B")])
        result = DCSolver().solve(graph)
        self.assertEqual(result.error_code, "MissingReference")

    def test_ground_only(self):
        result = DCSolver().solve(SchematicGraph([Ground("g")]))
        self.assertTrue(result.success)
        self.assertEqual(result.voltages["gnd"], 0.0)
        self.assertEqual(result.currents["g"], 0.0)


class TestLinearCircuits(unittest.TestCase):
    """Resistive circuits with known hand-calculated answers."""

    def setUp(self):
        self.solver = DCSolver()

    def test_series_circuit(self):
        result = self.solver.solve(series_circuit())
        self.assertTrue(result.success, result.error)
        self.assertAlmostEqual(result.currents["main-resistor"], 0.1, delta=1e-6)
        self.assertAlmostEqual(result.voltages["main-resistor"], 10.0, delta=1e-6)
        # Source delivers the same current it pushes through the loop
        self.assertAlmostEqual(result.currents["source"], 0.1, delta=1e-6)
        self.assertAlmostEqual(result.voltages["source"], 10.0, delta=1e-6)

    def test_parallel_circuit(self):
        result = self.solver.solve(parallel_circuit())
        self.assertTrue(result.success, result.error)
        self.assertAlmostEqual(result.currents["r1"], 0.05, delta=1e-6)
        self.assertAlmostEqual(result.currents["r2"], 0.05, delta=1e-6)
        self.assertAlmostEqual(result.currents["source"], 0.1, delta=1e-6)
        self.assertAlmostEqual(
            result.currents["r1"] + result.currents["r2"], result.currents["source"], delta=1e-6
        )

    def test_voltage_divider(self):
        result = self.solver.solve(divider_circuit())
        self.assertTrue(result.success, result.error)
        self.assertAlmostEqual(result.voltages["N2"], 10.0, delta=0.5)
        self.assertAlmostEqual(result.voltages["N1"], 20.0, delta=1e-9)
        self.assertAlmostEqual(result.get_voltage("bottom"), 10.0, delta=1e-9)
        self.assertAlmostEqual(result.terminal_voltage("top", "B"), 10.0, delta=1e-9)

    def test_unequal_divider(self):
        result = self.solver.solve(divider_circuit(volts=12.0, top=300.0, bottom=100.0))
        self.assertAlmostEqual(result.voltages["N2"], 3.0, delta=1e-9)
        self.assertAlmostEqual(result.currents["top"], 0.03, delta=1e-9)

    def test_kirchhoff_current_law_holds(self):
        for graph in (series_circuit(), parallel_circuit(), divider_circuit(), led_circuit()):
            result = self.solver.solve(graph)
            self.assertTrue(result.success, result.error)
            for net_id, residual in result.kcl_residuals().items():
                self.assertAlmostEqual(residual, 0.0, delta=1e-9, msg=f"net {net_id}")

    def test_multiple_grounds_share_reference(self):
        graph = SchematicGraph(
            [VoltageSource("v", 10), Resistor("r", 100), Ground("g1"), Ground("g2")],
            [wire("w1", "v.A", "r.A"), wire("w2", "r.B", "g1.A"), wire("w3", "v.B", "g2.B")],
        )
        result = self.solver.solve(graph)
        self.assertTrue(result.success, result.error)
        self.assertAlmostEqual(result.currents["r"], 0.1, delta=1e-9)

    def test_reversed_source_gives_negative_current(self):
        graph = SchematicGraph(
            [VoltageSource("v", 10), Resistor("r", 100), Ground("g")],
            [wire("w1", "v.B", "r.A"), wire("w2", "r.B", "g.A"), wire("w3", "v.A", "g.A")],
        )
        result = self.solver.solve(graph)
        self.assertAlmostEqual(result.currents["r"], -0.1, delta=1e-9)
        self.assertAlmostEqual(result.voltages["N1"], -10.0, delta=1e-9)

    def test_self_loop_does_not_crash(self):
        graph = series_circuit()
        graph = graph.with_component(Resistor("extra", 50)) \
            .with_connection(wire("w4", "extra.A", "source.A")) \
            .with_connection(wire("w5", "extra.A", "extra.B"))
        result = self.solver.solve(graph)
        self.assertTrue(result.success, result.error)
        self.assertAlmostEqual(result.currents["extra"], 0.0, delta=1e-12)
        self.assertAlmostEqual(result.currents["main-resistor"], 0.1, delta=1e-9)

    def test_solve_is_deterministic(self):
        graph = divider_circuit()
        first = self.solver.solve(graph).to_dict()
        second = self.solver.solve(graph).to_dict()
        self.assertEqual(first, second)

    def test_module_level_solve_accepts_sequences(self):
        graph = series_circuit()
        result = solve(graph.components, graph.connections)
        self.assertAlmostEqual(result.get_component_current("main-resistor"), 0.1, delta=1e-9)


class TestSolverErrors(unittest.TestCase):
    """Every failure is a structured result, never an exception."""

    def setUp(self):
        self.solver = DCSolver()

    def test_floating_loop_is_singular(self):
        graph = SchematicGraph(
            [Resistor("r1", 100), Resistor("r2", 100), Ground("g")],
            [wire("w1", "r1.A", "r2.A"), wire("w2", "r1.B", "r2.B")],
        )
        result = self.solver.solve(graph)
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "SingularSystem")
        self.assertEqual(result.currents, {})

    def test_conflicting_sources_are_singular(self):
        graph = SchematicGraph(
            [VoltageSource("v1", 10), VoltageSource("v2", 5), Resistor("r", 100), Ground("g")],
            [
                wire("w1", "v1.A", "v2.A"), wire("w2", "v1.A", "r.A"),
                wire("w3", "v1.B", "g.A"), wire("w4", "v2.B", "g.A"), wire("w5", "r.B", "g.A"),
            ],
        )
        result = self.solver.solve(graph)
        self.assertEqual(result.error_code, "SingularSystem")

    def test_shorted_source_is_singular(self):
        graph = series_circuit().with_connection(wire("w9", "source.A", "source.B"))
        result = self.solver.solve(graph)
        self.assertEqual(result.error_code, "SingularSystem")

    def test_zero_ohm_resistor(self):
        result = self.solver.solve(series_circuit(ohms=0.0))
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "InvalidComponentValue")
        self.assertIn("main-resistor", result.error)

    def test_non_finite_values(self):
        for graph in (series_circuit(ohms=math.inf), series_circuit(volts=math.nan)):
            result = self.solver.solve(graph)
            self.assertEqual(result.error_code, "InvalidComponentValue")

    def test_connection_to_unknown_component(self):
        graph = series_circuit().with_connection(wire("w9", "source.A", "ghost.B"))
        result = self.solver.solve(graph)
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "MalformedConnection")
        self.assertIn("ghost", result.error)

    def test_reserved_terminal_label(self):
        graph = series_circuit().with_connection(wire("w9", "source.pos", "main-resistor.A"))
        result = self.solver.solve(graph)
        self.assertEqual(result.error_code, "MalformedConnection")

    def test_failed_result_refuses_lookups(self):
        result = self.solver.solve(series_circuit(ohms=0.0))
        with self.assertRaises(ValueError):
            result.get_component_current("main-resistor")
        with self.assertRaises(ValueError):
            result.kcl_residuals()

    def test_to_dict_includes_error(self):
        data = self.solver.solve(series_circuit(ohms=0.0)).to_dict()
        self.assertFalse(data['success'])
        self.assertEqual(data['error_code'], "InvalidComponentValue")
        self.assertEqual(data['voltages'], {})


class TestLedModel(unittest.TestCase):
    """Piecewise-linear LED: forward drop plus on resistance, else a small leak."""

    def test_forward_biased_led_conducts(self):
        result = DCSolver().solve(led_circuit())
        self.assertTrue(result.success, result.error)
        self.assertTrue(result.led_states["led"])
        # (5 V - 2.1 V) across 100 ohm plus the 1 ohm on resistance
        self.assertAlmostEqual(result.currents["led"], 2.9 / 101, delta=1e-9)
        self.assertAlmostEqual(result.currents["limit"], result.currents["led"], delta=1e-9)

    def test_reverse_biased_led_is_dark(self):
        result = DCSolver().solve(led_circuit(reversed=True))
        self.assertTrue(result.success, result.error)
        self.assertFalse(result.led_states["led"])
        self.assertEqual(result.currents["led"], 0.0)
        self.assertAlmostEqual(result.currents["limit"], 0.0, delta=1e-6)

    def test_supply_below_forward_voltage(self):
        result = DCSolver().solve(led_circuit(volts=2.0))
        self.assertFalse(result.led_states["led"])
        self.assertEqual(result.currents["led"], 0.0)

    def test_on_resistance_from_config(self):
        solver = DCSolver(OhmlabConfig(led_on_resistance=10.0))
        result = solver.solve(led_circuit())
        self.assertAlmostEqual(result.currents["led"], 2.9 / 110, delta=1e-9)

    def _chain(self, volts, reversed=False):
        """Source, resistor and two LEDs in series to ground."""
        anode, cathode = ("B", "A") if reversed else ("A", "B")
        return SchematicGraph(
            [VoltageSource("v", volts), Resistor("r", 100), Led("d1"), Led("d2"), Ground("g")],
            [
                wire("w1", "v.A", "r.A"),
                wire("w2", "r.B", f"d1.{anode}"),
                wire("w3", f"d1.{cathode}", f"d2.{anode}"),
                wire("w4", f"d2.{cathode}", "g.A"),
                wire("w5", "v.B", "g.A"),
            ],
        )

    def test_underdriven_led_chain_is_dark(self):
        """Too little voltage for two drops: no current, but still a solution."""
        result = DCSolver().solve(self._chain(3.0))
        self.assertTrue(result.success, result.error)
        self.assertEqual(result.led_states, {"d1": False, "d2": False})
        self.assertEqual(result.currents["d1"], 0.0)
        self.assertEqual(result.currents["d2"], 0.0)
        self.assertAlmostEqual(result.currents["r"], 0.0, delta=1e-6)
        # The node between the two dark LEDs still gets a finite voltage
        self.assertTrue(math.isfinite(result.voltages["N3"]))

    def test_reversed_led_chain_is_dark(self):
        result = DCSolver().solve(self._chain(5.0, reversed=True))
        self.assertTrue(result.success, result.error)
        self.assertEqual(result.led_states, {"d1": False, "d2": False})
        self.assertAlmostEqual(result.currents["r"], 0.0, delta=1e-6)

    def test_driven_led_chain_lights(self):
        result = DCSolver().solve(self._chain(9.0))
        self.assertTrue(result.success, result.error)
        self.assertEqual(result.led_states, {"d1": True, "d2": True})
        self.assertAlmostEqual(result.currents["r"], (9.0 - 4.2) / 102, delta=1e-9)

    def test_off_conductance_from_config(self):
        solver = DCSolver(OhmlabConfig(led_off_conductance=1e-6))
        result = solver.solve(self._chain(3.0))
        self.assertTrue(result.success, result.error)
        # 3 V across 100 ohm plus two 1 Mohm leakage paths
        self.assertAlmostEqual(result.currents["r"], 3.0 / (100 + 2e6), delta=1e-9)


class TestGaussianSolve(unittest.TestCase):
    """The elimination routine on its own."""

    def test_matches_numpy(self):
        matrix = np.array([[2.0, 1.0, -1.0], [-3.0, -1.0, 2.0], [-2.0, 1.0, 2.0]])
        rhs = np.array([8.0, -11.0, -3.0])
        x = gaussian_solve(matrix, rhs)
        np.testing.assert_allclose(x, [2.0, 3.0, -1.0], atol=1e-12)

    def test_needs_pivoting(self):
        matrix = np.array([[0.0, 1.0], [1.0, 0.0]])
        x = gaussian_solve(matrix, np.array([3.0, 4.0]))
        np.testing.assert_allclose(x, [4.0, 3.0])

    def test_inputs_untouched(self):
        matrix = np.array([[0.0, 1.0], [1.0, 0.0]])
        rhs = np.array([3.0, 4.0])
        gaussian_solve(matrix, rhs)
        np.testing.assert_array_equal(matrix, [[0.0, 1.0], [1.0, 0.0]])
        np.testing.assert_array_equal(rhs, [3.0, 4.0])

    def test_singular_names_unknown(self):
        with self.assertRaises(SingularSystem) as ctx:
            gaussian_solve(np.array([[1.0, 1.0], [1.0, 1.0]]), np.array([1.0, 2.0]),
                           labels=["voltage of net N1", "voltage of net N2"])
        self.assertIn("N2", str(ctx.exception))

    def test_empty_system(self):
        self.assertEqual(len(gaussian_solve(np.zeros((0, 0)), np.zeros(0))), 0)


class TestMNASystem(unittest.TestCase):
    """Stamp patterns."""

    def test_conductance_stamp(self):
        system = MNASystem(["N1", "N2"])
        system.add_conductance("N1", "N2", 0.5)
        system.add_conductance("N2", "gnd", 0.25)
        matrix, rhs = system.assemble()
        np.testing.assert_allclose(matrix, [[0.5, -0.5], [-0.5, 0.75]])
        np.testing.assert_allclose(rhs, [0.0, 0.0])

    def test_voltage_source_augmentation(self):
        system = MNASystem(["N1"])
        slot = system.add_voltage_source("N1", "gnd", 5.0, label="v")
        self.assertEqual(slot, 0)
        matrix, rhs = system.assemble()
        np.testing.assert_allclose(matrix, [[0.0, 1.0], [1.0, 0.0]])
        np.testing.assert_allclose(rhs, [0.0, 5.0])
        self.assertEqual(system.unknown_labels(), ["voltage of net N1", "current through v"])

    def test_current_injection(self):
        system = MNASystem(["N1", "N2"])
        system.add_current("N1", "N2", 2.0)
        _, rhs = system.assemble()
        np.testing.assert_allclose(rhs, [-2.0, 2.0])


if __name__ == '__main__':
    unittest.main()
