import pytest
import yaml
from pathlib import Path

from azchroot.config import ConfigResolver
from azchroot.constants import StateKey
from azchroot.datacls import EnvironmentInfo, StateBag, StaticMetadataProvider
from azchroot.template import TemplateRenderer, command_wrapper

TIMESTAMP = 1700000000
SUBSCRIPTION = "00000000-1111-2222-3333-444444444444"
IMAGE_ID = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/images-rg/providers/Microsoft.Compute/images/my-image"
SOURCE_DISK_ID = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/disks-rg/providers/Microsoft.Compute/disks/golden"
TEMP_DISK_ID = (f"/subscriptions/{SUBSCRIPTION}/resourceGroups/build-rg"
                f"/providers/Microsoft.Compute/disks/PackerTemp-osdisk-{TIMESTAMP}")
TEMP_SNAPSHOT_ID = (f"/subscriptions/{SUBSCRIPTION}/resourceGroups/build-rg"
                    f"/providers/Microsoft.Compute/snapshots/PackerTemp-osdisk-snapshot-{TIMESTAMP}")

PLATFORM_CONFIG = {
    "source": "Canonical:UbuntuServer:18.04-LTS:latest",
    "image_resource_id": IMAGE_ID,
}

DESTINATION = {
    "resource_group": "gallery-rg",
    "gallery_name": "gallery",
    "image_name": "ubuntu",
    "image_version": "1.0.0",
}


class CallLog(list):
    """Ordered record of every call made to the fakes, shared between them."""

    def names(self):
        return [call[0] for call in self]

    def index_of(self, name, *args):
        for i, call in enumerate(self):
            if call[0] == name and call[1:1 + len(args)] == args:
                return i
        raise ValueError(f"{name}{args} was not called")


class FakeBase:
    def __init__(self, log: CallLog):
        self.log = log
        self.fail = {}

    def _call(self, name, *args):
        self.log.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]


class FakeCloud(FakeBase):
    def __init__(self, log: CallLog):
        super().__init__(log)
        self.disks = {SOURCE_DISK_ID: {"location": "westus"}}
        self.platform_versions = ["18.04.201912180", "18.04.202001010", "18.04.201911130"]
        self.gallery_image = {"location": "westus", "os_type": "Linux"}
        self.gallery_versions = ["0.9.0"]
        self.created = {}

    def get_disk(self, resource_id):
        self._call("get_disk", resource_id)
        if resource_id not in self.disks:
            raise KeyError(f"disk '{resource_id}' not found")
        return self.disks[resource_id]

    def create_disk(self, resource_id, properties):
        self._call("create_disk", resource_id)
        self.created[resource_id] = properties

    def delete_disk(self, resource_id):
        self._call("delete_disk", resource_id)

    def list_platform_image_versions(self, location, publisher, offer, sku):
        self._call("list_platform_image_versions", location, publisher, offer, sku)
        return list(self.platform_versions)

    def create_image(self, resource_id, properties):
        self._call("create_image", resource_id)
        self.created[resource_id] = properties

    def create_snapshot(self, resource_id, properties):
        self._call("create_snapshot", resource_id)
        self.created[resource_id] = properties

    def delete_snapshot(self, resource_id):
        self._call("delete_snapshot", resource_id)

    def get_gallery_image(self, subscription_id, resource_group, gallery_name, image_name):
        self._call("get_gallery_image", subscription_id, resource_group, gallery_name, image_name)
        return self.gallery_image

    def list_gallery_image_versions(self, subscription_id, resource_group, gallery_name, image_name):
        self._call("list_gallery_image_versions", subscription_id, resource_group, gallery_name, image_name)
        return list(self.gallery_versions)

    def create_gallery_image_version(self, resource_id, properties):
        self._call("create_gallery_image_version", resource_id)
        self.created[resource_id] = properties


class FakeHost(FakeBase):
    def __init__(self, log: CallLog, device: str = "/dev/sdc"):
        super().__init__(log)
        self.device = device
        self.mounts = []

    def attach_disk(self, disk_resource_id):
        self._call("attach_disk", disk_resource_id)
        return self.device

    def detach_disk(self, disk_resource_id):
        self._call("detach_disk", disk_resource_id)

    def run_command(self, command):
        self._call("run_command", command)

    def mount(self, source, target, fstype=None, options=()):
        self._call("mount", source, target, fstype, tuple(options))
        self.mounts.append(target)

    def unmount(self, target):
        self._call("unmount", target)
        if target in self.mounts:
            self.mounts.remove(target)

    def copy_file(self, source, destination):
        self._call("copy_file", source, destination)

    def remove_file(self, path):
        self._call("remove_file", path)


class FakeProvisioner(FakeBase):
    def __init__(self, log: CallLog, commands=("apt-get update",)):
        super().__init__(log)
        self.commands = list(commands)

    def provision(self, mount_path, wrap_command):
        self._call("provision", mount_path)
        for command in self.commands:
            self.log.append(("provision_command", wrap_command(f"chroot {mount_path} {command}")))


@pytest.fixture
def info():
    return EnvironmentInfo(
        name="build-vm",
        resource_group="build-rg",
        subscription_id=SUBSCRIPTION,
        location="westus",
    )


@pytest.fixture
def metadata(info):
    return StaticMetadataProvider(info)


@pytest.fixture
def call_log():
    return CallLog()


@pytest.fixture
def cloud(call_log):
    return FakeCloud(call_log)


@pytest.fixture
def host(call_log):
    return FakeHost(call_log)


@pytest.fixture
def provisioner(call_log):
    return FakeProvisioner(call_log)


@pytest.fixture
def resolve(metadata):
    """Resolve a raw mapping against the default build host, returning the config only."""
    def _resolve(raw: dict):
        config, _ = ConfigResolver(metadata, timestamp=TIMESTAMP).resolve(raw)
        return config
    return _resolve


@pytest.fixture
def state(info, metadata, cloud, host):
    """A state bag prepared the way the Builder prepares it, without a provisioner."""
    renderer = TemplateRenderer(metadata, timestamp=TIMESTAMP)
    bag = StateBag()
    bag.put(StateKey.INSTANCE, info)
    bag.put(StateKey.CLOUD, cloud)
    bag.put(StateKey.HOST, host)
    bag.put(StateKey.RENDERER, renderer)
    bag.put(StateKey.WRAPPED_COMMAND, command_wrapper("{{.Command}}", renderer))
    return bag


@pytest.fixture
def create_config_file(tmp_path: Path):
    """A pytest fixture to create a temporary config.yml file."""
    def _create_file(config_data: dict) -> Path:
        config_file = tmp_path / "config.yml"
        with open(config_file, 'w') as f:
            yaml.dump(config_data, f)
        return config_file
    return _create_file
