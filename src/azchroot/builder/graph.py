import logging
from typing import List

from .. import constants
from ..config import BuildConfig
from ..constants import SourceType
from ..datacls import EnvironmentInfo
from ..exceptions import InternalInvariantError, ParseError
from ..ids import parse_platform_image
from ..steps import (
    BuildStep,
    VerifySharedImageDestination,
    ResolvePlatformImageVersion,
    VerifySourceDisk,
    CreateNewDisk,
    AttachDisk,
    PreMountCommands,
    MountDevice,
    PostMountCommands,
    MountExtra,
    CopyFiles,
    ChrootProvision,
    EarlyCleanup,
    CreateImage,
    CreateSnapshot,
    CreateSharedImageVersion,
)

logger = logging.getLogger(__name__)


def build_steps(config: BuildConfig, info: EnvironmentInfo) -> List[BuildStep]:
    """
    Turn a resolved configuration into the ordered list of steps for one run.

    Pure: no I/O and no randomness, so identical inputs give equal step lists.
    Later phases read what earlier ones put into the state bag (disk id,
    device, mount path, pinned image version, snapshot id), so the order is fixed.
    """
    steps: List[BuildStep] = []
    has_valid_shared_image = config.has_shared_image_destination

    if has_valid_shared_image:
        # fail on a bad destination before anything is created
        steps.append(VerifySharedImageDestination(
            destination=config.shared_image_destination,
            location=info.location,
        ))

    steps.extend(_source_steps(config, info))

    steps.extend([
        AttachDisk(),
        PreMountCommands(commands=list(config.pre_mount_commands)),
        MountDevice(
            mount_options=list(config.mount_options),
            mount_partition=config.mount_partition,
            mount_path=config.mount_path,
        ),
        PostMountCommands(commands=list(config.post_mount_commands)),
        MountExtra(chroot_mounts=list(config.chroot_mounts)),
        CopyFiles(files=list(config.copy_files or [])),
        ChrootProvision(),
        # outputs must not capture build-time mounts or copied files
        EarlyCleanup(),
    ])

    if config.image_resource_id:
        steps.append(CreateImage(
            image_resource_id=config.image_resource_id,
            image_os_state=constants.IMAGE_OS_STATE_GENERALIZED,
            os_disk_cache_type=config.os_disk_cache_type,
            os_disk_storage_account_type=config.os_disk_storage_account_type,
            location=info.location,
        ))

    if has_valid_shared_image:
        steps.extend([
            CreateSnapshot(
                resource_id=config.temporary_os_disk_snapshot_id,
                location=info.location,
                skip_cleanup=config.skip_cleanup,
            ),
            CreateSharedImageVersion(
                destination=config.shared_image_destination,
                os_disk_cache_type=config.os_disk_cache_type,
                location=info.location,
            ),
        ])

    logger.debug(f"[Graph] Built {len(steps)} steps: {[s.name for s in steps]}")
    return steps


def _source_steps(config: BuildConfig, info: EnvironmentInfo) -> List[BuildStep]:
    def new_disk(**kwargs) -> CreateNewDisk:
        return CreateNewDisk(
            resource_id=config.temporary_os_disk_id,
            disk_size_gb=config.os_disk_size_gb,
            storage_account_type=config.os_disk_storage_account_type,
            hyperv_generation=config.image_hyperv_generation,
            location=info.location,
            skip_cleanup=config.skip_cleanup,
            **kwargs,
        )

    source_type = config.source_type
    if config.from_scratch and source_type is SourceType.FROM_SCRATCH:
        return [new_disk()]

    if source_type is SourceType.PLATFORM_IMAGE:
        try:
            platform_image = parse_platform_image(config.source)
        except ParseError as e:
            raise InternalInvariantError(
                f"source '{config.source}' was classified as a platform image but does not parse: {e}") from e
        steps: List[BuildStep] = []
        if platform_image.is_latest:
            # pin before the disk is created so the disk references a fixed version
            steps.append(ResolvePlatformImageVersion(platform_image=platform_image, location=info.location))
        steps.append(new_disk(platform_image=platform_image))
        return steps

    if source_type is SourceType.EXISTING_DISK:
        return [
            VerifySourceDisk(source_disk_resource_id=config.source, location=info.location),
            new_disk(source_disk_resource_id=config.source),
        ]

    raise InternalInvariantError(
        f"unknown source type {source_type!r} for source '{config.source}'; the configuration was not resolved")
