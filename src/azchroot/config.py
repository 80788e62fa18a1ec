import yaml
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pydantic import BaseModel, Field, PrivateAttr, ValidationError, ConfigDict, model_validator

from . import constants
from .constants import SourceType
from .ids import parse_platform_image, is_resource_of_type
from .protocols import MetadataProvider
from .template import TemplateRenderer
from .utils import LOG_SECRET_FILTER, install_secret_filter
from .exceptions import (
    ConfigDecodeError,
    ConfigFileMissingError,
    ConfigParsingError,
    ConfigValidationError,
    ParseError,
    TemplateError,
)


logger = logging.getLogger(__name__)

ChrootMount = Tuple[str, str, str]
IMAGE_VERSION_REGEX = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")


class TargetRegion(BaseModel):
    """
        Class Config-Validation Model describe one replication region of a shared image version
    """
    model_config = ConfigDict(extra="forbid")

    name: str = ""
    replicas: int = 1
    storage_account_type: str = ""


class SharedImageGalleryDestination(BaseModel):
    """
        Class Config-Validation Model describe `shared_image_destination`
    """
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    resource_group: str = ""
    gallery_name: str = ""
    image_name: str = ""
    image_version: str = ""
    target_regions: List[TargetRegion] = Field(default_factory=list)
    exclude_from_latest: bool = False
    # misspelled key accepted by older templates
    exlude_from_latest: Optional[bool] = None

    @model_validator(mode='after')
    def fold_misspelled_exclude(self) -> 'SharedImageGalleryDestination':
        if self.exlude_from_latest is not None and 'exclude_from_latest' not in self.model_fields_set:
            self.exclude_from_latest = self.exlude_from_latest
        return self

    def check(self, prefix: str = "") -> Tuple[List[str], List[str]]:
        """Structural validation; returns (errors, warnings) so the caller can merge them."""
        errs: List[str] = []
        warns: List[str] = []
        dot = f"{prefix}." if prefix else ""

        if not self.resource_group:
            errs.append(f"{dot}resource_group is required")
        if not self.gallery_name:
            errs.append(f"{dot}gallery_name is required")
        if not self.image_name:
            errs.append(f"{dot}image_name is required")
        if not IMAGE_VERSION_REGEX.match(self.image_version):
            errs.append(f"{dot}image_version: '{self.image_version}' should match '{IMAGE_VERSION_REGEX.pattern}'")

        for i, region in enumerate(self.target_regions):
            if not region.name:
                errs.append(f"{dot}target_regions[{i}].name is required")
            if region.replicas < 1:
                errs.append(f"{dot}target_regions[{i}].replicas must be at least 1")
            if region.storage_account_type and region.storage_account_type not in constants.DISK_STORAGE_ACCOUNT_TYPES:
                errs.append(
                    f"{dot}target_regions[{i}].storage_account_type: '{region.storage_account_type}' "
                    f"is not a valid value {constants.DISK_STORAGE_ACCOUNT_TYPES}"
                )

        if self.exlude_from_latest is not None:
            warns.append(f"{dot}exlude_from_latest is deprecated, use exclude_from_latest instead")
        return errs, warns

    def resource_id(self, subscription_id: str) -> str:
        return (f"/subscriptions/{subscription_id}/resourceGroups/{self.resource_group}"
                f"/providers/Microsoft.Compute/galleries/{self.gallery_name}"
                f"/images/{self.image_name}/versions/{self.image_version}")


class BuildConfig(BaseModel):
    """
        Class Config-Validation Model describe the whole build

        Decoding only checks shapes and types; defaults and the cross-field
        rules are applied by ConfigResolver so every violation is reported together.
    """
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    # --- client credentials ---
    cloud_environment_name: str = "Public"
    subscription_id: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    client_jwt: str = ""
    client_cert_path: str = ""

    # --- source ---
    from_scratch: bool = False
    source: str = ""

    # --- chroot ---
    command_wrapper: str = ""
    pre_mount_commands: List[str] = Field(default_factory=list)
    mount_options: List[str] = Field(default_factory=list)
    mount_partition: str = ""
    mount_path: str = ""
    post_mount_commands: List[str] = Field(default_factory=list)
    chroot_mounts: List[ChrootMount] = Field(default_factory=list)
    copy_files: Optional[List[str]] = None

    # --- disk and image ---
    os_disk_size_gb: int = Field(0, ge=0, le=2**31 - 1)
    os_disk_storage_account_type: str = ""
    os_disk_cache_type: str = ""
    image_hyperv_generation: str = ""
    temporary_os_disk_id: str = ""
    temporary_os_disk_snapshot_id: str = ""
    skip_cleanup: bool = False

    # --- outputs ---
    image_resource_id: str = ""
    shared_image_destination: SharedImageGalleryDestination = Field(default_factory=SharedImageGalleryDestination)

    _source_type: Optional[SourceType] = PrivateAttr(default=None)

    @property
    def source_type(self) -> Optional[SourceType]:
        return self._source_type

    @property
    def has_shared_image_destination(self) -> bool:
        errs, _ = self.shared_image_destination.check()
        return not errs


class ConfigResolver:
    """
    Turns raw key/value input into a validated BuildConfig.

    Decoding failures are fatal and raised at once. Everything after decoding
    (defaults that need rendering, source classification, field rules) is
    accumulated and raised as a single ConfigValidationError.
    """

    def __init__(self, metadata: Optional[MetadataProvider] = None, timestamp: Optional[int] = None):
        self.renderer = TemplateRenderer(metadata, timestamp=timestamp)

    def resolve(self, raw: Mapping[str, Any]) -> Tuple[BuildConfig, List[str]]:
        if not isinstance(raw, Mapping):
            raise ConfigDecodeError(f"Configuration must be a mapping, got {type(raw).__name__}.")
        try:
            config = BuildConfig.model_validate(dict(raw))
        except ValidationError as e:
            raise ConfigDecodeError(f"Configuration could not be decoded:\n{e}") from e

        errs: List[str] = []
        warns: List[str] = []

        self._apply_defaults(config, errs)
        self._classify_source(config, errs)
        self._check_enums(config, errs)
        self._check_outputs(config, errs, warns)

        if errs:
            logger.debug(f"Configuration has {len(errs)} error(s).")
            raise ConfigValidationError(errs, warns)

        LOG_SECRET_FILTER.set(config.client_secret, config.client_jwt)
        install_secret_filter()
        logger.debug(f"Configuration resolved, source type '{config.source_type.value}'.")
        return config, warns

    def _apply_defaults(self, config: BuildConfig, errs: List[str]):
        if not config.chroot_mounts:
            config.chroot_mounts = list(constants.DEFAULT_CHROOT_MOUNTS)

        if config.copy_files is None:
            config.copy_files = [] if config.from_scratch else list(constants.DEFAULT_COPY_FILES)

        if not config.command_wrapper:
            config.command_wrapper = constants.DEFAULT_COMMAND_WRAPPER
        if not config.mount_path:
            config.mount_path = constants.DEFAULT_MOUNT_PATH
        if not config.mount_partition:
            config.mount_partition = constants.DEFAULT_MOUNT_PARTITION

        if not config.temporary_os_disk_id:
            try:
                config.temporary_os_disk_id = self.renderer.render(constants.DEFAULT_TEMPORARY_OS_DISK_ID)
            except TemplateError as e:
                errs.append(f"unable to render temporary disk id: {e}")

        if not config.temporary_os_disk_snapshot_id:
            try:
                config.temporary_os_disk_snapshot_id = self.renderer.render(
                    constants.DEFAULT_TEMPORARY_OS_DISK_SNAPSHOT_ID)
            except TemplateError as e:
                errs.append(f"unable to render temporary snapshot id: {e}")

        if not config.os_disk_storage_account_type:
            config.os_disk_storage_account_type = constants.DEFAULT_STORAGE_ACCOUNT_TYPE
        if not config.os_disk_cache_type:
            config.os_disk_cache_type = constants.DEFAULT_CACHING_TYPE
        if not config.image_hyperv_generation:
            config.image_hyperv_generation = constants.DEFAULT_HYPERV_GENERATION

    def _classify_source(self, config: BuildConfig, errs: List[str]):
        if config.from_scratch:
            config._source_type = SourceType.FROM_SCRATCH
            if config.source:
                errs.append("source cannot be specified when building from_scratch")
            if config.os_disk_size_gb == 0:
                errs.append("os_disk_size_gb is required with from_scratch")
            if not config.pre_mount_commands:
                errs.append("pre_mount_commands is required with from_scratch")
            return

        config._source_type = classify_source(config.source)
        if config._source_type is None:
            errs.append(f"source: '{config.source}' is not a valid platform image specifier, nor is it a disk resource ID")
        else:
            logger.info(f"Source is {config._source_type.value}: {config.source}")

    def _check_enums(self, config: BuildConfig, errs: List[str]):
        checks = [
            ("os_disk_cache_type", config.os_disk_cache_type, constants.CACHING_TYPES),
            ("os_disk_storage_account_type", config.os_disk_storage_account_type, constants.DISK_STORAGE_ACCOUNT_TYPES),
            ("image_hyperv_generation", config.image_hyperv_generation, constants.HYPERV_GENERATIONS),
        ]
        for key, value, allowed in checks:
            if value not in allowed:
                errs.append(f"{key}: '{value}' is not a valid value {allowed}")

    def _check_outputs(self, config: BuildConfig, errs: List[str], warns: List[str]):
        if config.image_resource_id:
            if not is_resource_of_type(config.image_resource_id, constants.COMPUTE_PROVIDER, constants.IMAGES_TYPE):
                errs.append(f"image_resource_id: '{config.image_resource_id}' is not a valid image resource id")

        has_destination = "shared_image_destination" in config.model_fields_set
        if has_destination:
            e, w = config.shared_image_destination.check("shared_image_destination")
            errs.extend(e)
            warns.extend(w)

        if not has_destination and not config.image_resource_id:
            errs.append("image_resource_id or shared_image_destination is required")


def classify_source(source: str) -> Optional[SourceType]:
    """Platform image specifier first, then disk resource id; None when it is neither."""
    try:
        parse_platform_image(source)
        return SourceType.PLATFORM_IMAGE
    except ParseError:
        pass
    if is_resource_of_type(source, constants.COMPUTE_PROVIDER, constants.DISKS_TYPE):
        return SourceType.EXISTING_DISK
    return None


class Config:
    """
    Loads a YAML (or JSON) configuration file and resolves it.
    It is the sole gatekeeper for configuration.
    """
    def __init__(self, config_path: str, metadata: Optional[MetadataProvider] = None,
                 timestamp: Optional[int] = None):
        self.path = config_path
        logger.info(f"Loading configuration from '{self.path}'...")
        raw_data = self._load_raw_config()

        logger.info("Resolving configuration...")
        self.model, self.warnings = ConfigResolver(metadata, timestamp=timestamp).resolve(raw_data)
        for warning in self.warnings:
            logger.warning(warning)
        logger.info("Configuration validation passed.")

    def _load_raw_config(self) -> Dict[str, Any]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigFileMissingError(f"Configuration file not found at: {self.path}")
        except yaml.YAMLError as e:
            raise ConfigParsingError(f"Error parsing YAML file: {e}")
        if not isinstance(config_data, dict):
            raise ConfigParsingError("Configuration file must be a YAML document containing a dictionary.")
        logger.debug(f"Successfully parsed YAML from '{self.path}'.")
        return config_data

    @property
    def source_type(self) -> Optional[SourceType]:
        return self.model.source_type
