import threading
from dataclasses import dataclass, field

import pytest

from azchroot.builder import StepRunner
from azchroot.constants import StateKey
from azchroot.datacls import StateBag
from azchroot.exceptions import BuildCancelledError, StepError
from azchroot.steps import BuildStep, StepAction


@dataclass
class RecordingStep(BuildStep):
    label: str
    log: list
    halt_with: str | None = None
    raise_with: Exception | None = None
    silent_halt: bool = False
    cleanup_error: Exception | None = None
    on_run: object = field(default=None, repr=False)

    def __post_init__(self):
        self.name = self.label

    def run(self, state):
        self.log.append(("run", self.label))
        if self.on_run is not None:
            self.on_run()
        if self.raise_with is not None:
            raise self.raise_with
        if self.halt_with is not None:
            return self.halt(state, self.halt_with)
        if self.silent_halt:
            return StepAction.HALT
        return StepAction.CONTINUE

    def cleanup(self, state):
        self.log.append(("cleanup", self.label))
        if self.cleanup_error is not None:
            raise self.cleanup_error


@pytest.fixture
def log():
    return []


def make_steps(log, count=4, **overrides):
    steps = []
    for i in range(1, count + 1):
        steps.append(RecordingStep(f"s{i}", log, **overrides.get(f"s{i}", {})))
    return steps


class TestStepRunner:

    def test_success_runs_everything_then_cleans_newest_first(self, log):
        state = StateBag()
        ok = StepRunner(make_steps(log, 3)).run(state)
        assert ok
        assert log == [
            ("run", "s1"), ("run", "s2"), ("run", "s3"),
            ("cleanup", "s3"), ("cleanup", "s2"), ("cleanup", "s1"),
        ]
        assert StateKey.ERROR not in state

    def test_halt_stops_and_cleans_only_completed_steps(self, log):
        state = StateBag()
        runner = StepRunner(make_steps(log, 4, s3={"halt_with": "disk exploded"}))
        assert not runner.run(state)
        assert log == [
            ("run", "s1"), ("run", "s2"), ("run", "s3"),
            ("cleanup", "s2"), ("cleanup", "s1"),
        ]
        error = state.get(StateKey.ERROR)
        assert isinstance(error, StepError)
        assert str(error) == "disk exploded"
        assert error.step == "s3"
        assert state.get(StateKey.ERROR_STEP) == "s3"
        assert [s.name for s in runner.completed] == ["s1", "s2"]

    def test_raising_step_is_converted_to_a_halt(self, log):
        state = StateBag()
        boom = RuntimeError("boom")
        StepRunner(make_steps(log, 3, s2={"raise_with": boom})).run(state)
        error = state.get(StateKey.ERROR)
        assert isinstance(error, StepError)
        assert error.__cause__ is boom
        assert error.step == "s2"
        assert ("run", "s3") not in log
        assert log[-1] == ("cleanup", "s1")

    def test_halt_without_error_is_recorded(self, log):
        state = StateBag()
        StepRunner(make_steps(log, 2, s1={"silent_halt": True})).run(state)
        error = state.get(StateKey.ERROR)
        assert isinstance(error, StepError)
        assert error.step == "s1"

    def test_cleanup_errors_do_not_mask_the_original_error(self, log):
        state = StateBag()
        steps = make_steps(log, 3, s1={"cleanup_error": RuntimeError("cannot delete")}, s3={"halt_with": "failed"})
        StepRunner(steps).run(state)
        assert str(state.get(StateKey.ERROR)) == "failed"
        assert state.get(StateKey.CLEANUP_ERRORS) == ["s1: cannot delete"]
        # cleanup continues past the failing one
        assert log[-2:] == [("cleanup", "s2"), ("cleanup", "s1")]

    def test_cleanup_errors_after_success(self, log):
        state = StateBag()
        ok = StepRunner(make_steps(log, 2, s2={"cleanup_error": OSError("busy")})).run(state)
        assert ok
        assert state.get(StateKey.CLEANUP_ERRORS) == ["s2: busy"]
        assert log[-1] == ("cleanup", "s1")


class TestCancellation:

    def test_cancelled_before_start(self, log):
        state = StateBag()
        cancel = threading.Event()
        cancel.set()
        assert not StepRunner(make_steps(log, 3)).run(state, cancel)
        assert log == []
        error = state.get(StateKey.ERROR)
        assert isinstance(error, BuildCancelledError)
        assert error.step == "s1"

    def test_cancelled_between_steps(self, log):
        state = StateBag()
        cancel = threading.Event()
        steps = make_steps(log, 4, s2={"on_run": cancel.set})
        StepRunner(steps).run(state, cancel)
        assert log == [
            ("run", "s1"), ("run", "s2"),
            ("cleanup", "s2"), ("cleanup", "s1"),
        ]
        assert isinstance(state.get(StateKey.ERROR), BuildCancelledError)
        assert state.get(StateKey.ERROR_STEP) == "s3"
