"""
azchroot Protocol Definitions

The collaborators the build steps talk to. Implementations live outside this
package (a cloud SDK client, the host's block-device and mount tooling, a
provisioning hook); tests use in-memory fakes.

Protocols are the foundation layer with no dependencies on other azchroot modules.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .datacls.contexts import EnvironmentInfo


# ============================================================================
# Metadata
# ============================================================================

@runtime_checkable
class MetadataProvider(Protocol):
    """Answers questions about the virtual machine the build runs on."""

    def get_compute_info(self) -> "EnvironmentInfo":
        ...


# ============================================================================
# Cloud API
# ============================================================================

@runtime_checkable
class CloudClient(Protocol):
    """
    Disk, snapshot, image and gallery operations of the compute API.

    Every call blocks until the long-running operation behind it completes
    and raises on failure. Lookups raise when the resource does not exist.
    """

    def get_disk(self, resource_id: str) -> Dict[str, Any]:
        """Return the disk's properties; at least `location`."""
        ...

    def create_disk(self, resource_id: str, properties: Dict[str, Any]) -> None:
        ...

    def delete_disk(self, resource_id: str) -> None:
        ...

    def list_platform_image_versions(self, location: str, publisher: str, offer: str, sku: str) -> List[str]:
        ...

    def create_image(self, resource_id: str, properties: Dict[str, Any]) -> None:
        ...

    def create_snapshot(self, resource_id: str, properties: Dict[str, Any]) -> None:
        ...

    def delete_snapshot(self, resource_id: str) -> None:
        ...

    def get_gallery_image(self, subscription_id: str, resource_group: str,
                          gallery_name: str, image_name: str) -> Dict[str, Any]:
        """Return the gallery image definition; at least `location` and `os_type`."""
        ...

    def list_gallery_image_versions(self, subscription_id: str, resource_group: str,
                                    gallery_name: str, image_name: str) -> List[str]:
        ...

    def create_gallery_image_version(self, resource_id: str, properties: Dict[str, Any]) -> None:
        ...


# ============================================================================
# Host operations
# ============================================================================

@runtime_checkable
class HostOperations(Protocol):
    """Operating-system level work on the build host."""

    def attach_disk(self, disk_resource_id: str) -> str:
        """Attach the disk to this VM and return the block device path once it appears."""
        ...

    def detach_disk(self, disk_resource_id: str) -> None:
        ...

    def run_command(self, command: str) -> None:
        """Run a (wrapped) shell command, raising on a non-zero exit status."""
        ...

    def mount(self, source: str, target: str, fstype: Optional[str] = None,
              options: Sequence[str] = ()) -> None:
        """Create `target` if needed and mount `source` on it."""
        ...

    def unmount(self, target: str) -> None:
        ...

    def copy_file(self, source: str, destination: str) -> None:
        ...

    def remove_file(self, path: str) -> None:
        ...


# ============================================================================
# Provisioning hook
# ============================================================================

@runtime_checkable
class Provisioner(Protocol):
    """Runs the user's provisioning inside the chroot."""

    def provision(self, mount_path: str, wrap_command: Callable[[str], str]) -> None:
        ...
