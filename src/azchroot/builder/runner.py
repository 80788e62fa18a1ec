import logging
import threading
from typing import List, Optional, Sequence

from ..constants import StateKey
from ..datacls import StateBag
from ..exceptions import BuildCancelledError, StepError
from ..steps import BuildStep, StepAction

logger = logging.getLogger(__name__)


class StepRunner:
    """
    Runs steps strictly in order against one state bag.

    - The first step that halts (or raises) stops the run; its error is kept under `error`.
    - Steps that completed are cleaned up newest first, after a halt as well as
      after success. The failing step itself is not: it releases its own
      partial work before halting.
    - Cleanup is best effort; failures are logged and collected under
      `cleanup_errors` and never replace `error`.
    - `cancel` is checked before every step; a cancelled run unwinds like a failed one.
    """

    def __init__(self, steps: Sequence[BuildStep]):
        self.steps = list(steps)
        self.completed: List[BuildStep] = []

    def run(self, state: StateBag, cancel: Optional[threading.Event] = None) -> bool:
        self.completed = []
        for index, step in enumerate(self.steps, start=1):
            if cancel is not None and cancel.is_set():
                logger.warning(f"[Runner] Build cancelled before step '{step.name}'")
                state.put(StateKey.ERROR, BuildCancelledError("build was cancelled", step=step.name))
                state.put(StateKey.ERROR_STEP, step.name)
                break

            logger.info(f"[Runner] ({index}/{len(self.steps)}) {step.describe()}")
            try:
                action = step.run(state)
            except Exception as e:
                logger.debug(f"[Runner] Step '{step.name}' raised", exc_info=True)
                action = step.halt(state, e)

            if action is StepAction.HALT:
                if StateKey.ERROR not in state:
                    step.halt(state, StepError("step halted without reporting an error", step=step.name))
                break
            self.completed.append(step)

        self._cleanup(state)
        return StateKey.ERROR not in state

    def _cleanup(self, state: StateBag):
        for step in reversed(self.completed):
            logger.debug(f"[Runner] Cleaning up '{step.name}'")
            try:
                step.cleanup(state)
            except Exception as e:
                logger.error(f"[Runner] Cleanup of '{step.name}' failed: {e}")
                state.append(StateKey.CLEANUP_ERRORS, f"{step.name}: {e}")
