"""
Steps that prepare the chroot on the attached disk, provision it, and release
the host-side state again before an image is taken.
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping
import logging
import posixpath

from ..config import ChrootMount
from ..constants import StateKey
from ..datacls import StateBag
from ..exceptions import TemplateError
from .base import BuildStep, HostCleanupStep, StepAction, renderer_for, wrapper_for

logger = logging.getLogger(__name__)


class CommandsStep(BuildStep):
    """Shared logic for the pre- and post-mount command hooks."""

    commands: List[str]

    @abstractmethod
    def template_data(self, state: StateBag) -> Dict[str, Any]:
        """Values the command templates may reference."""
        pass

    def run(self, state: StateBag) -> StepAction:
        if not self.commands:
            return StepAction.CONTINUE
        return self.run_commands(state, self.commands, self.template_data(state))

    def run_commands(self, state: StateBag, commands: List[str], data: Mapping[str, Any]) -> StepAction:
        host = state.require(StateKey.HOST)
        renderer = renderer_for(state)
        wrap = wrapper_for(state)

        for template in commands:
            try:
                command = wrap(renderer.render(template, data))
            except TemplateError as e:
                return self.halt(state, f"error preparing command '{template}': {e}")
            logger.info(f"[{self.name}] Executing command: {command}")
            try:
                host.run_command(command)
            except Exception as e:
                return self.halt(state, f"error executing command '{command}': {e}")
        return StepAction.CONTINUE


@dataclass
class PreMountCommands(CommandsStep):
    """Commands run after attaching and before mounting; `{{.Device}}` is available."""
    commands: List[str] = field(default_factory=list)

    name = "pre_mount_commands"

    def template_data(self, state: StateBag) -> Dict[str, Any]:
        return {"Device": state.require(StateKey.DEVICE)}

    def describe(self) -> str:
        return f"Run {len(self.commands)} pre-mount command(s)"


@dataclass
class PostMountCommands(CommandsStep):
    """Commands run after mounting; `{{.Device}}` and `{{.MountPath}}` are available."""
    commands: List[str] = field(default_factory=list)

    name = "post_mount_commands"

    def template_data(self, state: StateBag) -> Dict[str, Any]:
        return {
            "Device": state.require(StateKey.DEVICE),
            "MountPath": state.require(StateKey.MOUNT_PATH),
        }

    def describe(self) -> str:
        return f"Run {len(self.commands)} post-mount command(s)"


@dataclass
class MountDevice(HostCleanupStep):
    """Mount the root partition; puts `mount_path` into the state bag."""
    mount_options: List[str] = field(default_factory=list)
    mount_partition: str = "1"
    mount_path: str = ""

    name = "mount_device"

    def run(self, state: StateBag) -> StepAction:
        host = state.require(StateKey.HOST)
        device: str = state.require(StateKey.DEVICE)

        try:
            mount_path = renderer_for(state).render(self.mount_path, {"Device": posixpath.basename(device)})
        except TemplateError as e:
            return self.halt(state, f"error preparing mount directory: {e}")
        mount_path = posixpath.normpath(mount_path)

        # partition 0 means the filesystem lives on the whole device
        source = device if self.mount_partition == "0" else f"{device}{self.mount_partition}"

        logger.info(f"[{self.name}] Mounting '{source}' on '{mount_path}'")
        try:
            host.mount(source, mount_path, None, list(self.mount_options))
        except Exception as e:
            return self.halt(state, f"error mounting root volume: {e}")

        self._mounted = mount_path
        state.put(StateKey.MOUNT_PATH, mount_path)
        self.register_cleanup(state)
        return StepAction.CONTINUE

    def cleanup_func(self, state: StateBag) -> None:
        mount_path = getattr(self, "_mounted", None)
        if not mount_path:
            return
        logger.info(f"[{self.name}] Unmounting root device '{mount_path}'")
        state.require(StateKey.HOST).unmount(mount_path)
        self._mounted = None

    def describe(self) -> str:
        return f"Mount partition {self.mount_partition} on '{self.mount_path}'"


@dataclass
class MountExtra(HostCleanupStep):
    """Mount the auxiliary filesystems (proc, sysfs, /dev, ...) inside the chroot."""
    chroot_mounts: List[ChrootMount] = field(default_factory=list)

    name = "mount_extra"

    def run(self, state: StateBag) -> StepAction:
        host = state.require(StateKey.HOST)
        mount_path: str = state.require(StateKey.MOUNT_PATH)
        self._mounts: List[str] = []

        for fstype, source, target in self.chroot_mounts:
            inner = posixpath.normpath(f"{mount_path}/{target.lstrip('/')}")
            if fstype == "bind":
                fs, options = None, ["bind"]
            else:
                fs, options = fstype, []

            logger.info(f"[{self.name}] Mounting {fstype} '{source}' on '{inner}'")
            try:
                host.mount(source, inner, fs, options)
            except Exception as e:
                action = self.halt(state, f"error mounting '{source}' on '{inner}': {e}")
                self._release_after_failure(state)
                return action
            self._mounts.append(inner)

        self.register_cleanup(state)
        return StepAction.CONTINUE

    def _release_after_failure(self, state: StateBag):
        try:
            self.cleanup_func(state)
        except Exception as e:
            logger.warning(f"[{self.name}] Could not unmount after failure: {e}")
            state.append(StateKey.CLEANUP_ERRORS, f"{self.name}: {e}")

    def cleanup_func(self, state: StateBag) -> None:
        mounts: List[str] = getattr(self, "_mounts", [])
        host = state.require(StateKey.HOST) if mounts else None
        # innermost first; each success is forgotten so a retry resumes where it failed
        while mounts:
            target = mounts[-1]
            logger.info(f"[{self.name}] Unmounting '{target}'")
            host.unmount(target)
            mounts.pop()

    def describe(self) -> str:
        return f"Mount {len(self.chroot_mounts)} extra filesystem(s) in the chroot"


@dataclass
class CopyFiles(HostCleanupStep):
    """Copy host files (e.g. /etc/resolv.conf) into the chroot."""
    files: List[str] = field(default_factory=list)

    name = "copy_files"

    def run(self, state: StateBag) -> StepAction:
        host = state.require(StateKey.HOST)
        mount_path: str = state.require(StateKey.MOUNT_PATH)
        self._copied: List[str] = []

        for path in self.files:
            destination = posixpath.normpath(f"{mount_path}/{path.lstrip('/')}")
            logger.info(f"[{self.name}] Copying '{path}' to '{destination}'")
            try:
                host.copy_file(path, destination)
            except Exception as e:
                action = self.halt(state, f"error copying '{path}' into the chroot: {e}")
                try:
                    self.cleanup_func(state)
                except Exception as ce:
                    logger.warning(f"[{self.name}] Could not remove copied files after failure: {ce}")
                    state.append(StateKey.CLEANUP_ERRORS, f"{self.name}: {ce}")
                return action
            self._copied.append(destination)

        self.register_cleanup(state)
        return StepAction.CONTINUE

    def cleanup_func(self, state: StateBag) -> None:
        copied: List[str] = getattr(self, "_copied", [])
        host = state.require(StateKey.HOST) if copied else None
        while copied:
            logger.info(f"[{self.name}] Removing '{copied[-1]}'")
            host.remove_file(copied[-1])
            copied.pop()

    def describe(self) -> str:
        return f"Copy {len(self.files)} file(s) into the chroot"


@dataclass
class ChrootProvision(BuildStep):
    """Hand the chroot to the provisioning hook."""

    name = "chroot_provision"

    def run(self, state: StateBag) -> StepAction:
        provisioner = state.get(StateKey.PROVISIONER)
        if provisioner is None:
            logger.info(f"[{self.name}] No provisioner configured, skipping.")
            return StepAction.CONTINUE

        mount_path: str = state.require(StateKey.MOUNT_PATH)
        logger.info(f"[{self.name}] Running provisioning in chroot '{mount_path}'")
        try:
            provisioner.provision(mount_path, wrapper_for(state))
        except Exception as e:
            return self.halt(state, f"error provisioning chroot: {e}")
        return StepAction.CONTINUE

    def describe(self) -> str:
        return "Provision inside the chroot"


@dataclass
class EarlyCleanup(BuildStep):
    """
    Release every registered host-side change, newest first, so that the
    image taken afterwards contains no build-time mounts or copied files and
    the disk is detached.
    """

    name = "early_cleanup"

    def run(self, state: StateBag) -> StepAction:
        cleanups: List[HostCleanupStep] = state.get(StateKey.HOST_CLEANUPS) or []
        while cleanups:
            step = cleanups[-1]
            logger.info(f"[{self.name}] Running early cleanup for '{step.name}'")
            try:
                step.cleanup_func(state)
            except Exception as e:
                return self.halt(state, f"error during early cleanup of '{step.name}': {e}")
            cleanups.pop()
        return StepAction.CONTINUE

    def describe(self) -> str:
        return "Unmount and detach before creating outputs"
