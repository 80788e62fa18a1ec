import logging
import sys
import threading
from typing import List, Optional

from ..config import BuildConfig
from ..constants import StateKey
from ..datacls import Artifact, EnvironmentInfo, StateBag, StaticMetadataProvider
from ..exceptions import BuildError, UnsupportedPlatformError
from ..protocols import CloudClient, HostOperations, MetadataProvider, Provisioner
from ..steps import BuildStep
from ..template import TemplateRenderer, command_wrapper
from .graph import build_steps
from .runner import StepRunner

logger = logging.getLogger(__name__)


class Builder:
    """
    Runs one build: resolved config + collaborators in, Artifact out.
    Errors raise BuildError naming the failed step and any resources left behind.
    """

    def __init__(self, config: BuildConfig, cloud: CloudClient, host: HostOperations,
                 metadata: MetadataProvider, provisioner: Optional[Provisioner] = None,
                 platform: Optional[str] = None):
        self.config = config
        self.cloud = cloud
        self.host = host
        self.metadata = metadata
        self.provisioner = provisioner
        self.platform = platform or sys.platform
        self.steps: List[BuildStep] = []
        logger.debug(f"Builder initialized for source type '{config.source_type.value if config.source_type else None}'.")

    def run(self, cancel: Optional[threading.Event] = None) -> Artifact:
        """Orchestrates the entire build process step by step."""
        if not self.platform.startswith("linux"):
            raise UnsupportedPlatformError("the azure-chroot builder only works on Linux environments")

        info = self._get_instance()
        state = self._init_state(info)

        self.steps = build_steps(self.config, info)
        logger.info(f"[Builder] Starting build with {len(self.steps)} steps...")
        StepRunner(self.steps).run(state, cancel)

        for cleanup_error in state.get(StateKey.CLEANUP_ERRORS) or []:
            logger.warning(f"[Builder] Cleanup error: {cleanup_error}")

        error = state.get(StateKey.ERROR)
        if error is not None:
            raise self._build_error(state, error)

        artifact = self._assemble(state)
        logger.info(f"[Builder] Build finished. {artifact}")
        return artifact

    def _get_instance(self) -> EnvironmentInfo:
        try:
            return self.metadata.get_compute_info()
        except Exception as e:
            logger.debug(f"metadata.get_compute_info(): error: {e!r}")
            raise BuildError(
                "Error retrieving information ARM resource ID and location of the VM the build is running on. "
                "Please verify that the build is running on a proper Azure VM."
            ) from e

    def _init_state(self, info: EnvironmentInfo) -> StateBag:
        renderer = TemplateRenderer(StaticMetadataProvider(info))
        state = StateBag()
        state.put(StateKey.CONFIG, self.config)
        state.put(StateKey.INSTANCE, info)
        state.put(StateKey.CLOUD, self.cloud)
        state.put(StateKey.HOST, self.host)
        state.put(StateKey.PROVISIONER, self.provisioner)
        state.put(StateKey.RENDERER, renderer)
        state.put(StateKey.WRAPPED_COMMAND, command_wrapper(self.config.command_wrapper, renderer))
        return state

    def _build_error(self, state: StateBag, error: Exception) -> BuildError:
        retained = list(state.get(StateKey.RETAINED_RESOURCES) or [])
        step = state.get(StateKey.ERROR_STEP)
        if not isinstance(error, BuildError):
            wrapped = BuildError(str(error), step=step)
            wrapped.__cause__ = error
            error = wrapped
        error.step = error.step or step
        error.retained_resources = retained
        return error

    def _assemble(self, state: StateBag) -> Artifact:
        """Only resources that were actually created are listed."""
        resources = []
        for key in (StateKey.IMAGE_RESOURCE_ID, StateKey.SHARED_IMAGE_VERSION_ID):
            value, ok = state.get_ok(key)
            if ok and value:
                resources.append(value)
        return Artifact(
            resources=resources,
            state_data={
                "source": self.config.source,
                "source_type": self.config.source_type.value if self.config.source_type else None,
                "retained_resources": list(state.get(StateKey.RETAINED_RESOURCES) or []),
            },
        )
