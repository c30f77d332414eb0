import pytest

from scanner.app.liveness.guidance import GUIDANCE_TABLE, GuidanceStateMachine, GuidanceStep


def test_table_order_and_durations():
    assert [step.instruction for step in GuidanceStep] == [
        "Center your face",
        "Smile naturally",
        "Look to the left",
        "Look to the right",
        "Look up",
        "Look down",
        "Blink naturally",
    ]
    assert [prompt.duration for prompt in GUIDANCE_TABLE] == [1.5, 1.0, 0.8, 0.8, 0.8, 0.8, 0.5]
    assert sum(prompt.duration for prompt in GUIDANCE_TABLE) == pytest.approx(6.2)


def test_next_wraps_around():
    assert GuidanceStep.CENTER.next() == GuidanceStep.SMILE
    assert GuidanceStep.BLINK.next() == GuidanceStep.CENTER


def test_starts_centered():
    machine = GuidanceStateMachine()
    assert machine.current_step == GuidanceStep.CENTER
    assert machine.step_progress == 0.0


def test_progress_accumulates_within_step():
    machine = GuidanceStateMachine(0.1)
    assert machine.tick() is False
    assert machine.step_progress == pytest.approx(0.1 / 1.5)
    for _ in range(13):
        machine.tick()
    assert machine.current_step == GuidanceStep.CENTER
    assert machine.step_progress == pytest.approx(1.4 / 1.5)


def test_advances_after_step_duration():
    machine = GuidanceStateMachine(0.1)
    changed = [machine.tick() for _ in range(15)]
    assert changed[-1] is True
    assert changed.count(True) == 1
    assert machine.current_step == GuidanceStep.SMILE
    assert machine.step_progress == 0.0


def test_full_cycle_is_62_ticks():
    machine = GuidanceStateMachine(0.1)
    visited = []
    for _ in range(61):
        if machine.tick():
            visited.append(machine.current_step)
    assert machine.current_step == GuidanceStep.BLINK
    assert machine.tick() is True
    assert machine.current_step == GuidanceStep.CENTER
    assert machine.step_progress == 0.0
    assert visited == [
        GuidanceStep.SMILE,
        GuidanceStep.LOOK_LEFT,
        GuidanceStep.LOOK_RIGHT,
        GuidanceStep.LOOK_UP,
        GuidanceStep.LOOK_DOWN,
        GuidanceStep.BLINK,
    ]


def test_reset():
    machine = GuidanceStateMachine(0.1)
    for _ in range(20):
        machine.tick()
    machine.reset()
    assert machine.current_step == GuidanceStep.CENTER
    assert machine.step_progress == 0.0
