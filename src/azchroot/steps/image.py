"""
Steps around the build outputs: a managed image and/or a shared image gallery version.
"""

from dataclasses import dataclass
from typing import Any, Dict, List
import logging

from .. import constants
from ..config import SharedImageGalleryDestination
from ..constants import StateKey
from ..datacls import EnvironmentInfo, StateBag
from ..exceptions import ParseError
from ..ids import parse_resource_id
from .base import BuildStep, CloudResourceStep, StepAction, same_location

logger = logging.getLogger(__name__)


@dataclass
class VerifySharedImageDestination(BuildStep):
    """Fail before any resource is created if the gallery destination cannot take the new version."""
    destination: SharedImageGalleryDestination
    location: str

    name = "verify_shared_image_destination"

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        info: EnvironmentInfo = state.require(StateKey.INSTANCE)
        d = self.destination
        target = f"{d.resource_group}/{d.gallery_name}/{d.image_name}"

        logger.info(f"[{self.name}] Validating that shared image '{target}' exists")
        try:
            image = cloud.get_gallery_image(info.subscription_id, d.resource_group, d.gallery_name, d.image_name)
        except Exception as e:
            return self.halt(state, f"error retrieving shared image '{target}': {e}")

        image_location = image.get("location", "")
        if not same_location(image_location, self.location):
            return self.halt(
                state,
                f"destination shared image '{target}' is in location '{image_location}', "
                f"but the build host is in '{self.location}'",
            )
        os_type = image.get("os_type", "")
        if os_type.lower() != constants.OS_TYPE_LINUX.lower():
            return self.halt(state, f"destination shared image '{target}' is not a Linux image (found '{os_type}')")

        try:
            versions = cloud.list_gallery_image_versions(
                info.subscription_id, d.resource_group, d.gallery_name, d.image_name)
        except Exception as e:
            return self.halt(state, f"error listing versions of shared image '{target}': {e}")
        if d.image_version in versions:
            return self.halt(state, f"shared image version '{d.image_version}' already exists for '{target}'")

        logger.info(f"[{self.name}] Destination '{target}' version '{d.image_version}' is available")
        return StepAction.CONTINUE

    def describe(self) -> str:
        d = self.destination
        return f"Verify shared image destination '{d.gallery_name}/{d.image_name}:{d.image_version}'"


@dataclass
class CreateImage(BuildStep):
    """Create the managed image from the (detached) OS disk. The image is an output and is kept."""
    image_resource_id: str
    image_os_state: str
    os_disk_cache_type: str
    os_disk_storage_account_type: str
    location: str

    name = "create_image"

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        disk_id = state.require(StateKey.OS_DISK_RESOURCE_ID)

        properties: Dict[str, Any] = {
            "location": self.location,
            "storage_profile": {
                "os_disk": {
                    "os_state": self.image_os_state,
                    "os_type": constants.OS_TYPE_LINUX,
                    "managed_disk": {"id": disk_id},
                    "caching": self.os_disk_cache_type,
                    "storage_account_type": self.os_disk_storage_account_type,
                },
            },
        }

        logger.info(f"[{self.name}] Creating image '{self.image_resource_id}' from '{disk_id}'")
        try:
            cloud.create_image(self.image_resource_id, properties)
        except Exception as e:
            return self.halt(state, f"error creating image '{self.image_resource_id}': {e}")

        state.put(StateKey.IMAGE_RESOURCE_ID, self.image_resource_id)
        return StepAction.CONTINUE

    def describe(self) -> str:
        return f"Create managed image '{self.image_resource_id}' ({self.image_os_state})"


@dataclass
class CreateSnapshot(CloudResourceStep):
    """Snapshot the OS disk as the source of the gallery version."""
    resource_id: str
    location: str
    skip_cleanup: bool = False

    name = "create_snapshot"

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        disk_id = state.require(StateKey.OS_DISK_RESOURCE_ID)

        try:
            snapshot_id = parse_resource_id(self.resource_id)
        except ParseError as e:
            return self.halt(state, f"could not parse temporary snapshot id: {e}")
        if not snapshot_id.is_a(constants.COMPUTE_PROVIDER, constants.SNAPSHOTS_TYPE):
            return self.halt(state, f"temporary snapshot id '{self.resource_id}' is not a snapshot resource id")

        properties = {
            "location": self.location,
            "creation_data": {"create_option": "Copy", "source_resource_id": disk_id},
            "incremental": False,
        }
        logger.info(f"[{self.name}] Creating snapshot '{self.resource_id}' of '{disk_id}'")
        action = self.create_or_halt(
            state, self.resource_id, lambda: cloud.create_snapshot(self.resource_id, properties))
        if action is StepAction.CONTINUE:
            state.put(StateKey.SNAPSHOT_RESOURCE_ID, self.resource_id)
        return action

    def delete_resource(self, state: StateBag, resource_id: str) -> None:
        state.require(StateKey.CLOUD).delete_snapshot(resource_id)

    def describe(self) -> str:
        return f"Create snapshot '{self.resource_id}'"


@dataclass
class CreateSharedImageVersion(BuildStep):
    """Publish the snapshot as a new version of the gallery image."""
    destination: SharedImageGalleryDestination
    os_disk_cache_type: str
    location: str

    name = "create_shared_image_version"

    def target_regions(self) -> List[Dict[str, Any]]:
        if not self.destination.target_regions:
            return [{"name": self.location}]
        regions = []
        for region in self.destination.target_regions:
            entry: Dict[str, Any] = {"name": region.name, "regional_replica_count": region.replicas}
            if region.storage_account_type:
                entry["storage_account_type"] = region.storage_account_type
            regions.append(entry)
        return regions

    def run(self, state: StateBag) -> StepAction:
        cloud = state.require(StateKey.CLOUD)
        info: EnvironmentInfo = state.require(StateKey.INSTANCE)
        snapshot_id = state.require(StateKey.SNAPSHOT_RESOURCE_ID)
        version_id = self.destination.resource_id(info.subscription_id)

        properties = {
            "location": self.location,
            "publishing_profile": {
                "target_regions": self.target_regions(),
                "exclude_from_latest": self.destination.exclude_from_latest,
            },
            "storage_profile": {
                "os_disk_image": {
                    "source": {"id": snapshot_id},
                    "host_caching": self.os_disk_cache_type,
                },
            },
        }

        logger.info(f"[{self.name}] Creating shared image version '{version_id}'")
        try:
            cloud.create_gallery_image_version(version_id, properties)
        except Exception as e:
            return self.halt(state, f"error creating shared image version '{version_id}': {e}")

        state.put(StateKey.SHARED_IMAGE_VERSION_ID, version_id)
        return StepAction.CONTINUE

    def describe(self) -> str:
        d = self.destination
        return f"Create shared image version '{d.gallery_name}/{d.image_name}:{d.image_version}'"
