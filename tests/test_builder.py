import threading

import pytest

from azchroot.builder import Builder
from azchroot.exceptions import BuildCancelledError, BuildError, UnsupportedPlatformError

from conftest import DESTINATION, IMAGE_ID, PLATFORM_CONFIG, SUBSCRIPTION, TEMP_DISK_ID, TEMP_SNAPSHOT_ID

MOUNT_PATH = "/mnt/packer-azure-chroot-disks/sdc"
VERSION_ID = (f"/subscriptions/{SUBSCRIPTION}/resourceGroups/gallery-rg/providers/Microsoft.Compute"
              "/galleries/gallery/images/ubuntu/versions/1.0.0")


class BrokenMetadata:
    def get_compute_info(self):
        raise ConnectionError("169.254.169.254 unreachable")


@pytest.fixture
def make_builder(resolve, cloud, host, metadata, provisioner):
    def _make(raw, metadata=metadata, platform="linux"):
        return Builder(resolve(raw), cloud, host, metadata, provisioner=provisioner, platform=platform)
    return _make


class TestSuccessfulBuild:

    def test_managed_image_from_platform_image(self, make_builder, cloud, call_log):
        artifact = make_builder(PLATFORM_CONFIG).run()

        assert artifact.resources == [IMAGE_ID]
        assert artifact.builder_id == "azure.chroot"
        assert artifact.state_data["source_type"] == "PlatformImage"
        assert artifact.state_data["retained_resources"] == []

        # the disk references the pinned version, never "latest"
        assert call_log.index_of("list_platform_image_versions") < call_log.index_of("create_disk")
        image_reference = cloud.created[TEMP_DISK_ID]["creation_data"]["image_reference"]["id"]
        assert image_reference.endswith("/Versions/18.04.202001010")

    def test_host_state_is_released_before_the_image_is_taken(self, make_builder, host, call_log):
        make_builder(PLATFORM_CONFIG).run()
        create_image = call_log.index_of("create_image")
        assert call_log.index_of("detach_disk", TEMP_DISK_ID) < create_image
        assert call_log.index_of("unmount", MOUNT_PATH) < create_image
        assert call_log.index_of("remove_file", f"{MOUNT_PATH}/etc/resolv.conf") < create_image
        assert host.mounts == []

    def test_temporary_disk_is_deleted_after_success(self, make_builder, call_log):
        make_builder(PLATFORM_CONFIG).run()
        assert call_log[-1] == ("delete_disk", TEMP_DISK_ID)
        assert call_log.names().count("detach_disk") == 1

    def test_provisioner_runs_in_mounted_chroot(self, make_builder, call_log):
        make_builder(dict(PLATFORM_CONFIG, command_wrapper="sudo {{.Command}}")).run()
        provision = call_log.index_of("provision", MOUNT_PATH)
        assert call_log.index_of("mount", "proc") < provision < call_log.index_of("unmount", MOUNT_PATH)
        assert ("provision_command", f"sudo chroot {MOUNT_PATH} apt-get update") in call_log

    def test_shared_image_version(self, make_builder, call_log):
        raw = {"source": PLATFORM_CONFIG["source"], "shared_image_destination": DESTINATION}
        artifact = make_builder(raw).run()

        assert artifact.resources == [VERSION_ID]
        assert call_log.names()[0] == "get_gallery_image"
        assert "create_image" not in call_log.names()
        assert call_log.index_of("create_snapshot") < call_log.index_of("create_gallery_image_version")
        # temporaries go newest first: snapshot, then disk
        assert call_log[-2:] == [("delete_snapshot", TEMP_SNAPSHOT_ID), ("delete_disk", TEMP_DISK_ID)]

    def test_both_outputs(self, make_builder):
        artifact = make_builder(dict(PLATFORM_CONFIG, shared_image_destination=DESTINATION)).run()
        assert artifact.resources == [IMAGE_ID, VERSION_ID]
        assert artifact.id == f"{IMAGE_ID},{VERSION_ID}"

    def test_skip_cleanup_keeps_cloud_resources_but_releases_the_host(self, make_builder, host, call_log):
        raw = dict(PLATFORM_CONFIG, shared_image_destination=DESTINATION, skip_cleanup=True)
        artifact = make_builder(raw).run()

        assert "delete_disk" not in call_log.names()
        assert "delete_snapshot" not in call_log.names()
        assert "detach_disk" in call_log.names()
        assert host.mounts == []
        assert artifact.state_data["retained_resources"] == [TEMP_SNAPSHOT_ID, TEMP_DISK_ID]


class TestFailedBuild:

    def test_failure_unwinds_everything_completed(self, make_builder, provisioner, host, call_log):
        provisioner.fail["provision"] = RuntimeError("apt-get failed")
        with pytest.raises(BuildError) as excinfo:
            make_builder(PLATFORM_CONFIG).run()

        error = excinfo.value
        assert error.step == "chroot_provision"
        assert "apt-get failed" in str(error)
        assert error.retained_resources == []
        assert "create_image" not in call_log.names()
        assert host.mounts == []
        tail = call_log.names()[call_log.index_of("provision"):]
        assert tail[-3:] == ["unmount", "detach_disk", "delete_disk"]

    def test_cleanup_failure_keeps_original_error(self, make_builder, provisioner, cloud):
        provisioner.fail["provision"] = RuntimeError("apt-get failed")
        cloud.fail["delete_disk"] = RuntimeError("disk is leased")
        with pytest.raises(BuildError) as excinfo:
            make_builder(PLATFORM_CONFIG).run()

        assert excinfo.value.step == "chroot_provision"
        assert "apt-get failed" in str(excinfo.value)
        assert excinfo.value.retained_resources == [TEMP_DISK_ID]
        assert TEMP_DISK_ID in excinfo.value.describe()

    def test_failure_before_creation_creates_nothing(self, make_builder, cloud, call_log):
        cloud.gallery_versions = ["1.0.0"]
        raw = {"source": PLATFORM_CONFIG["source"], "shared_image_destination": DESTINATION}
        with pytest.raises(BuildError) as excinfo:
            make_builder(raw).run()
        assert excinfo.value.step == "verify_shared_image_destination"
        assert "create_disk" not in call_log.names()

    def test_cancelled_build(self, make_builder, call_log):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(BuildCancelledError):
            make_builder(PLATFORM_CONFIG).run(cancel)
        assert call_log == []

    def test_unsupported_platform(self, make_builder, call_log):
        with pytest.raises(UnsupportedPlatformError, match="only works on Linux"):
            make_builder(PLATFORM_CONFIG, platform="win32").run()
        assert call_log == []

    def test_metadata_failure(self, make_builder):
        builder = make_builder(PLATFORM_CONFIG, metadata=BrokenMetadata())
        with pytest.raises(BuildError, match="Error retrieving information ARM resource ID") as excinfo:
            builder.run()
        assert isinstance(excinfo.value.__cause__, ConnectionError)
