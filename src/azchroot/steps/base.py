"""
Build step abstractions

Every step exposes `run(state) -> StepAction` and an idempotent `cleanup(state)`.
Steps are dataclasses: the constructor fields are the step's parameters and take
part in equality, run-time bookkeeping is excluded from it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ClassVar, List
import logging

from ..constants import StateKey
from ..datacls import StateBag, StaticMetadataProvider
from ..exceptions import StepError
from ..template import TemplateRenderer

logger = logging.getLogger(__name__)


class StepAction(str, Enum):
    CONTINUE = "continue"
    HALT = "halt"


@dataclass
class BuildStep(ABC):
    """
    Abstract class describing one unit of work of the build.
    """

    name: ClassVar[str] = "step"

    @abstractmethod
    def run(self, state: StateBag) -> StepAction:
        pass

    def cleanup(self, state: StateBag) -> None:
        """Undo what `run` did. Must be safe to call more than once."""
        pass

    def describe(self) -> str:
        return self.name

    def halt(self, state: StateBag, error: Exception | str) -> StepAction:
        """Record the failure in the state bag and stop the run."""
        if not isinstance(error, StepError):
            cause = error if isinstance(error, Exception) else None
            error = StepError(str(error), step=self.name)
            error.__cause__ = cause
        elif error.step is None:
            error.step = self.name
        logger.error(f"[{self.name}] {error}")
        state.put(StateKey.ERROR, error)
        state.put(StateKey.ERROR_STEP, self.name)
        return StepAction.HALT


class HostCleanupStep(BuildStep):
    """
    A step that changes host state (attachments, mounts, copied files).

    Host state is always released, whatever `skip_cleanup` says. After a
    successful run the step registers itself so EarlyCleanup can release it
    before image creation; `cleanup_func` must then turn into a no-op.
    """

    @abstractmethod
    def cleanup_func(self, state: StateBag) -> None:
        """Release host state, raising on failure."""
        pass

    def register_cleanup(self, state: StateBag):
        state.append(StateKey.HOST_CLEANUPS, self)

    def cleanup(self, state: StateBag) -> None:
        self.cleanup_func(state)


class CloudResourceStep(BuildStep):
    """
    A step that creates a transient cloud resource it owns for deletion.
    With `skip_cleanup` the resource is handed over to the caller instead.
    Subclasses declare the `skip_cleanup` field.
    """

    skip_cleanup = False

    @abstractmethod
    def delete_resource(self, state: StateBag, resource_id: str) -> None:
        pass

    def created_resource(self) -> str | None:
        return getattr(self, "_resource", None)

    def forget_resource(self):
        self._resource = None

    def create_or_halt(self, state: StateBag, resource_id: str, create: Callable[[], None]) -> StepAction:
        """
        Run `create`, owning `resource_id` from before the call on.
        A failed creation may leave a half-made resource behind, so the step
        releases it itself: the runner only cleans steps that completed.
        """
        self._resource = resource_id
        try:
            create()
        except Exception as e:
            action = self.halt(state, f"error creating '{resource_id}': {e}")
            try:
                self.cleanup(state)
            except Exception as ce:
                logger.warning(f"[{self.name}] Could not remove '{resource_id}' after failed creation: {ce}")
                state.append(StateKey.CLEANUP_ERRORS, f"{self.name}: {ce}")
            return action
        return StepAction.CONTINUE

    def cleanup(self, state: StateBag) -> None:
        resource_id = self.created_resource()
        if not resource_id:
            return
        if self.skip_cleanup:
            logger.info(f"[{self.name}] Skipping cleanup of {resource_id}")
            retain(state, resource_id)
            self.forget_resource()
            return

        logger.info(f"[{self.name}] Deleting {resource_id}")
        try:
            self.delete_resource(state, resource_id)
        except Exception:
            retain(state, resource_id)
            raise
        finally:
            self.forget_resource()


def retain(state: StateBag, resource_id: str):
    retained: List[str] = state.get(StateKey.RETAINED_RESOURCES) or []
    if resource_id not in retained:
        state.append(StateKey.RETAINED_RESOURCES, resource_id)


def renderer_for(state: StateBag) -> TemplateRenderer:
    renderer = state.get(StateKey.RENDERER)
    if renderer is None:
        renderer = TemplateRenderer(StaticMetadataProvider(state.require(StateKey.INSTANCE)))
        state.put(StateKey.RENDERER, renderer)
    return renderer


def wrapper_for(state: StateBag) -> Callable[[str], str]:
    return state.get(StateKey.WRAPPED_COMMAND) or (lambda command: command)


def same_location(a: str, b: str) -> bool:
    """Locations compare case-insensitively and ignoring spaces ('West US' == 'westus')."""
    return a.replace(" ", "").lower() == b.replace(" ", "").lower()
