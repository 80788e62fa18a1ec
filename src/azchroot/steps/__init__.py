"""
Build steps

The closed set of step variants the graph builder emits:

- disk: ResolvePlatformImageVersion, VerifySourceDisk, CreateNewDisk, AttachDisk
- chroot: PreMountCommands, MountDevice, PostMountCommands, MountExtra,
  CopyFiles, ChrootProvision, EarlyCleanup
- image: VerifySharedImageDestination, CreateImage, CreateSnapshot,
  CreateSharedImageVersion
"""

from .base import BuildStep, CloudResourceStep, HostCleanupStep, StepAction
from .disk import ResolvePlatformImageVersion, VerifySourceDisk, CreateNewDisk, AttachDisk
from .chroot import (
    PreMountCommands,
    MountDevice,
    PostMountCommands,
    MountExtra,
    CopyFiles,
    ChrootProvision,
    EarlyCleanup,
)
from .image import VerifySharedImageDestination, CreateImage, CreateSnapshot, CreateSharedImageVersion

__all__ = [
    'BuildStep',
    'CloudResourceStep',
    'HostCleanupStep',
    'StepAction',
    'ResolvePlatformImageVersion',
    'VerifySourceDisk',
    'CreateNewDisk',
    'AttachDisk',
    'PreMountCommands',
    'MountDevice',
    'PostMountCommands',
    'MountExtra',
    'CopyFiles',
    'ChrootProvision',
    'EarlyCleanup',
    'VerifySharedImageDestination',
    'CreateImage',
    'CreateSnapshot',
    'CreateSharedImageVersion',
]
