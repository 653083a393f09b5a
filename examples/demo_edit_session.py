#!/usr/bin/env python3
"""
Build an LED circuit through an edit session, solve it, grade it and
export it as a SPICE deck.

Steps:
- place components and wire their terminals with two clicks each
- solve the DC operating point and read currents and voltages
- undo an edit and watch the result change back
"""

import logging

from ohmlab import EditSession, Criterion, grade, to_spice


def main():
    logging.basicConfig(level=logging.INFO)

    print("LED Circuit Demonstration")
    print("=" * 50)

    session = EditSession()
    source = session.place("voltage_source")
    resistor = session.place("resistor")
    led = session.place("led")
    ground = session.place("ground")

    # Vsource(A) -> R -> LED -> GND, Vsource(B) -> GND
    for (a, ta), (b, tb) in [
        ((source, "A"), (resistor, "A")),
        ((resistor, "B"), (led, "A")),
        ((led, "B"), (ground, "A")),
        ((source, "B"), (ground, "A")),
    ]:
        session.click_terminal(a, ta)
        session.click_terminal(b, tb)

    result = session.solve()
    print(f"Solve succeeded: {result.success}")
    for component in session.graph.components:
        print(f"  {component.label:<12} I = {result.currents[component.id] * 1000:8.3f} mA"
              f"   V = {result.voltages[component.id]:7.3f} V")
    print(f"  LED lit: {result.led_states[led]}")
    print()

    # Raise the resistor to 470 Ω, then undo it
    session.select(resistor)
    session.set_value(470)
    print(f"With 470 Ω: LED current = {session.solve().currents[led] * 1000:.3f} mA")
    session.undo()
    print(f"After undo: LED current = {session.solve().currents[led] * 1000:.3f} mA")
    print()

    criterion = Criterion(tolerance=0.005, expected_current_through=(led, 0.079),
                          required_components=["led"])
    report = grade(session.graph, criterion)
    print(f"Grade: {report}  {report.message}")
    print()

    print("SPICE deck:")
    print(to_spice(session.graph, title="LED Demo"))


if __name__ == "__main__":
    main()
