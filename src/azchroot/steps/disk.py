"""
Steps that produce the OS disk and attach it to the build host.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from .. import constants
from ..constants import StateKey
from ..datacls import EnvironmentInfo, StateBag
from ..exceptions import ParseError
from ..ids import PlatformImage, PlatformImageVersion, parse_resource_id
from .base import BuildStep, CloudResourceStep, HostCleanupStep, StepAction, same_location

logger = logging.getLogger(__name__)


@dataclass
class ResolvePlatformImageVersion(BuildStep):
    """Pin a `latest` platform image to the newest concrete version available in the location."""
    platform_image: PlatformImage
    location: str

    name = "resolve_platform_image_version"

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        pi = self.platform_image
        try:
            versions = cloud.list_platform_image_versions(self.location, pi.publisher, pi.offer, pi.sku)
        except Exception as e:
            return self.halt(state, f"error retrieving versions of platform image '{pi}': {e}")

        parsed = []
        for v in versions:
            try:
                parsed.append(PlatformImageVersion(v))
            except ValueError:
                logger.debug(f"[{self.name}] Ignoring unrecognized version '{v}'")
        if not parsed:
            return self.halt(state, f"no versions found for platform image '{pi}' in location '{self.location}'")

        pinned = pi.with_version(str(max(parsed)))
        logger.info(f"[{self.name}] Resolved latest version of source image: {pinned.version}")
        state.put(StateKey.PLATFORM_IMAGE, pinned)
        return StepAction.CONTINUE

    def describe(self) -> str:
        return f"Resolve latest version of platform image '{self.platform_image}' in '{self.location}'"


@dataclass
class VerifySourceDisk(BuildStep):
    """Check the source disk exists, is in this subscription and in the build location."""
    source_disk_resource_id: str
    location: str

    name = "verify_source_disk"

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        info: EnvironmentInfo = state.require(StateKey.INSTANCE)

        try:
            disk_id = parse_resource_id(self.source_disk_resource_id)
        except ParseError as e:
            return self.halt(state, f"could not parse source disk id: {e}")
        if not disk_id.is_a(constants.COMPUTE_PROVIDER, constants.DISKS_TYPE):
            return self.halt(state, f"'{self.source_disk_resource_id}' is not a managed disk resource id")
        if disk_id.subscription_id.lower() != info.subscription_id.lower():
            return self.halt(
                state,
                f"source disk is in subscription '{disk_id.subscription_id}', "
                f"a different subscription than the build host ('{info.subscription_id}')",
            )

        logger.info(f"[{self.name}] Verifying source disk '{self.source_disk_resource_id}'")
        try:
            disk = cloud.get_disk(self.source_disk_resource_id)
        except Exception as e:
            return self.halt(state, f"unable to retrieve source disk '{self.source_disk_resource_id}': {e}")

        disk_location = disk.get("location", "")
        if not same_location(disk_location, self.location):
            return self.halt(
                state,
                f"source disk location '{disk_location}' does not match the build location '{self.location}'",
            )
        return StepAction.CONTINUE

    def describe(self) -> str:
        return f"Verify source disk '{self.source_disk_resource_id}' is accessible in '{self.location}'"


@dataclass
class CreateNewDisk(CloudResourceStep):
    """
    Create the temporary OS disk: blank, from a platform image, or as a copy of a disk.
    Puts `os_disk_resource_id` into the state bag.
    """
    resource_id: str
    disk_size_gb: int
    storage_account_type: str
    hyperv_generation: str
    location: str
    platform_image: Optional[PlatformImage] = None
    source_disk_resource_id: str = ""
    skip_cleanup: bool = False

    name = "create_disk"

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        info: EnvironmentInfo = state.require(StateKey.INSTANCE)

        try:
            disk_id = parse_resource_id(self.resource_id)
        except ParseError as e:
            return self.halt(state, f"could not parse temporary disk id: {e}")
        if not disk_id.is_a(constants.COMPUTE_PROVIDER, constants.DISKS_TYPE):
            return self.halt(state, f"temporary disk id '{self.resource_id}' is not a managed disk resource id")

        state.put(StateKey.OS_DISK_RESOURCE_ID, self.resource_id)
        try:
            properties = self.disk_properties(state, info)
        except ValueError as e:
            return self.halt(state, e)

        logger.info(f"[{self.name}] Creating disk '{self.resource_id}'")
        return self.create_or_halt(
            state, self.resource_id, lambda: cloud.create_disk(self.resource_id, properties))

    def disk_properties(self, state: StateBag, info: EnvironmentInfo) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "location": self.location,
            "sku": {"name": self.storage_account_type},
            "os_type": constants.OS_TYPE_LINUX,
            "hyper_v_generation": self.hyperv_generation,
        }
        if self.disk_size_gb:
            properties["disk_size_gb"] = self.disk_size_gb

        if self.platform_image is not None:
            image = state.get(StateKey.PLATFORM_IMAGE) or self.platform_image
            if image.is_latest:
                raise ValueError(f"platform image '{image}' has no concrete version; resolve it first")
            properties["creation_data"] = {
                "create_option": "FromImage",
                "image_reference": {"id": image.resource_id(info.subscription_id, self.location)},
            }
        elif self.source_disk_resource_id:
            properties["creation_data"] = {
                "create_option": "Copy",
                "source_resource_id": self.source_disk_resource_id,
            }
        else:
            properties["creation_data"] = {"create_option": "Empty"}
        return properties

    def delete_resource(self, state: StateBag, resource_id: str) -> None:
        state.require(StateKey.CLOUD).delete_disk(resource_id)

    def describe(self) -> str:
        if self.platform_image is not None:
            origin = f"from platform image '{self.platform_image}'"
        elif self.source_disk_resource_id:
            origin = f"as a copy of '{self.source_disk_resource_id}'"
        else:
            origin = f"blank, {self.disk_size_gb} GB"
        return f"Create disk '{self.resource_id}' {origin}"


@dataclass
class AttachDisk(HostCleanupStep):
    """Attach the temporary disk to the build host; puts `device` into the state bag."""

    name = "attach_disk"

    def run(self, state: StateBag) -> StepAction:
        host = state.require(StateKey.HOST)
        disk_id = state.require(StateKey.OS_DISK_RESOURCE_ID)

        logger.info(f"[{self.name}] Attaching disk '{disk_id}'")
        try:
            device = host.attach_disk(disk_id)
        except Exception as e:
            return self.halt(state, f"error attaching disk '{disk_id}': {e}")

        self._attached = disk_id
        logger.info(f"[{self.name}] Disk attached as '{device}'")
        state.put(StateKey.DEVICE, device)
        self.register_cleanup(state)
        return StepAction.CONTINUE

    def cleanup_func(self, state: StateBag) -> None:
        disk_id = getattr(self, "_attached", None)
        if not disk_id:
            return
        logger.info(f"[{self.name}] Detaching disk '{disk_id}'")
        state.require(StateKey.HOST).detach_disk(disk_id)
        self._attached = None
        state.remove(StateKey.DEVICE)

    def describe(self) -> str:
        return "Attach the OS disk to the build host"
