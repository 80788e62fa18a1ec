from enum import Enum

BUILDER_ID = "azure.chroot"

# --- Log and Debug ---
# Short aliases for module names to keep CLI/env concise
LOG_ALIAS_MAP = {
    "conf": "azchroot.config",
    "config": "azchroot.config",
    "tpl": "azchroot.template",
    "template": "azchroot.template",
    "ids": "azchroot.ids",
    "graph": "azchroot.builder.graph",
    "run": "azchroot.builder.runner",
    "runner": "azchroot.builder.runner",
    "build": "azchroot.builder.build",
    "bld": "azchroot.builder.build",
    "steps": "azchroot.steps",
    "disk": "azchroot.steps.disk",
    "chroot": "azchroot.steps.chroot",
    "image": "azchroot.steps.image",
}

# Top-level modules within azchroot for auto-prefixing
KNOWN_TOP_MODULES = {
    "builder",
    "steps",
    "ids",
    "datacls",
    "utils",
    "config",
    "template",
    "cli",
}

LOG_LEVELS_ENV = "AZCHROOT_LOG_LEVELS"


class SourceType(str, Enum):
    """Where the initial content of the OS disk comes from."""
    FROM_SCRATCH = "FromScratch"
    PLATFORM_IMAGE = "PlatformImage"
    EXISTING_DISK = "ExistingDisk"


# --- Defaults ---
DEFAULT_CHROOT_MOUNTS = [
    ("proc", "proc", "/proc"),
    ("sysfs", "sysfs", "/sys"),
    ("bind", "/dev", "/dev"),
    ("devpts", "devpts", "/dev/pts"),
    ("binfmt_misc", "binfmt_misc", "/proc/sys/fs/binfmt_misc"),
]
DEFAULT_COPY_FILES = ["/etc/resolv.conf"]
DEFAULT_COMMAND_WRAPPER = "{{.Command}}"
DEFAULT_MOUNT_PATH = "/mnt/packer-azure-chroot-disks/{{.Device}}"
DEFAULT_MOUNT_PARTITION = "1"
DEFAULT_TEMPORARY_OS_DISK_ID = (
    "/subscriptions/{{ vm `subscription_id` }}/resourceGroups/{{ vm `resource_group` }}"
    "/providers/Microsoft.Compute/disks/PackerTemp-osdisk-{{timestamp}}"
)
DEFAULT_TEMPORARY_OS_DISK_SNAPSHOT_ID = (
    "/subscriptions/{{ vm `subscription_id` }}/resourceGroups/{{ vm `resource_group` }}"
    "/providers/Microsoft.Compute/snapshots/PackerTemp-osdisk-snapshot-{{timestamp}}"
)

# --- Enumerated values accepted by the compute API ---
CACHING_TYPES = ["None", "ReadOnly", "ReadWrite"]
DISK_STORAGE_ACCOUNT_TYPES = ["Standard_LRS", "Premium_LRS", "StandardSSD_LRS", "UltraSSD_LRS"]
HYPERV_GENERATIONS = ["V1", "V2"]

DEFAULT_STORAGE_ACCOUNT_TYPE = "Premium_LRS"
DEFAULT_CACHING_TYPE = "ReadOnly"
DEFAULT_HYPERV_GENERATION = "V1"

IMAGE_OS_STATE_GENERALIZED = "Generalized"
OS_TYPE_LINUX = "Linux"

# --- Resource namespaces ---
COMPUTE_PROVIDER = "Microsoft.Compute"
DISKS_TYPE = "disks"
IMAGES_TYPE = "images"
SNAPSHOTS_TYPE = "snapshots"

LATEST_VERSION = "latest"


# --- State bag keys ---
class StateKey:
    CONFIG = "config"
    INSTANCE = "instance"
    CLOUD = "azureclient"
    HOST = "host"
    PROVISIONER = "provisioner"
    WRAPPED_COMMAND = "wrapped_command"
    RENDERER = "template_renderer"
    PLATFORM_IMAGE = "platform_image"
    OS_DISK_RESOURCE_ID = "os_disk_resource_id"
    DEVICE = "device"
    MOUNT_PATH = "mount_path"
    HOST_CLEANUPS = "host_cleanups"
    SNAPSHOT_RESOURCE_ID = "os_disk_snapshot_resource_id"
    IMAGE_RESOURCE_ID = "image_resource_id"
    SHARED_IMAGE_VERSION_ID = "shared_image_version_id"
    RETAINED_RESOURCES = "retained_resources"
    CLEANUP_ERRORS = "cleanup_errors"
    ERROR = "error"
    ERROR_STEP = "error_step"
