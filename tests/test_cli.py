import re

import pytest
from click.testing import CliRunner

from azchroot import __version__
from azchroot.cli import cli

from conftest import DESTINATION, IMAGE_ID, PLATFORM_CONFIG, SUBSCRIPTION

HOST_ENV = {
    "AZCHROOT_LOCATION": "westus",
    "AZCHROOT_SUBSCRIPTION_ID": SUBSCRIPTION,
    "AZCHROOT_RESOURCE_GROUP": "build-rg",
    "AZCHROOT_VM_NAME": "build-vm",
}


@pytest.fixture
def runner():
    return CliRunner()


class TestCli:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_validate_valid_config(self, runner, create_config_file):
        path = create_config_file(PLATFORM_CONFIG)
        result = runner.invoke(cli, ["validate", str(path)], env=HOST_ENV)
        assert result.exit_code == 0, result.output
        assert "Configuration is valid (source type: PlatformImage)." in result.output

    def test_validate_with_options(self, runner, create_config_file):
        path = create_config_file(PLATFORM_CONFIG)
        result = runner.invoke(cli, [
            "validate", str(path),
            "--location", "westus",
            "--subscription-id", SUBSCRIPTION,
            "--resource-group", "build-rg",
            "--vm-name", "build-vm",
        ])
        assert result.exit_code == 0, result.output

    def test_validate_invalid_config(self, runner, create_config_file):
        path = create_config_file({"source": "nonsense", "image_resource_id": IMAGE_ID})
        result = runner.invoke(cli, ["validate", str(path)], env=HOST_ENV)
        assert result.exit_code != 0
        assert "Configuration is valid" not in result.output

    def test_validate_without_host_facts(self, runner, create_config_file):
        """Default temporary ids need the subscription and resource group of the build host."""
        path = create_config_file(PLATFORM_CONFIG)
        result = runner.invoke(cli, ["validate", str(path)], env={k: "" for k in HOST_ENV})
        assert result.exit_code != 0

    def test_validate_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["validate", str(tmp_path / "missing.yml")], env=HOST_ENV)
        assert result.exit_code != 0

    def test_plan(self, runner, create_config_file):
        path = create_config_file(dict(PLATFORM_CONFIG, shared_image_destination=DESTINATION))
        result = runner.invoke(cli, ["plan", str(path)], env=HOST_ENV)
        assert result.exit_code == 0, result.output
        assert "Source type: PlatformImage" in result.output
        steps = [line for line in result.output.splitlines() if re.match(r"^\s?\d+\. ", line)]
        assert len(steps) == 14
        assert steps[0] == " 1. Verify shared image destination 'gallery/ubuntu:1.0.0'"
        assert steps[1].startswith(" 2. Resolve latest version of platform image")
        assert steps[-1] == "14. Create shared image version 'gallery/ubuntu:1.0.0'"
