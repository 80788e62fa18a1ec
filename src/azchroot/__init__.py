"""
azchroot

Builds Azure managed images and shared image gallery versions from a disk
attached to the build host, without booting a temporary virtual machine.

Main modules:
- config: Configuration decoding, defaults, source classification and validation
- ids: Platform image specifiers and resource id parsing
- template: Rendering of `{{ ... }}` templates in configuration values
- steps: The build steps (disk, chroot, image)
- builder: Step graph construction, the sequential runner and the Builder
- datacls: Environment info, state bag and artifact
- protocols: Interfaces of the cloud, host and provisioning collaborators
- utils: Logging setup and secret redaction

Quick start example:
```python
from azchroot import Config, Builder

config = Config("build.yml", metadata)
artifact = Builder(config.model, cloud, host, metadata).run()
```
"""

__version__ = "0.1.0"

from .protocols import MetadataProvider, CloudClient, HostOperations, Provisioner
from .config import Config, ConfigResolver, BuildConfig, SharedImageGalleryDestination
from .datacls import EnvironmentInfo, StaticMetadataProvider, StateBag, Artifact
from .builder import Builder, StepRunner, build_steps
from .exceptions import (
    ChrootBuilderError,
    ConfigurationError,
    ConfigValidationError,
    BuildError,
    DefinitionError,
    InternalInvariantError,
)

__all__ = [
    # Version
    '__version__',
    # Protocols
    'MetadataProvider',
    'CloudClient',
    'HostOperations',
    'Provisioner',
    # Config
    'Config',
    'ConfigResolver',
    'BuildConfig',
    'SharedImageGalleryDestination',
    # Data
    'EnvironmentInfo',
    'StaticMetadataProvider',
    'StateBag',
    'Artifact',
    # Builder
    'Builder',
    'StepRunner',
    'build_steps',
    # Exceptions
    'ChrootBuilderError',
    'ConfigurationError',
    'ConfigValidationError',
    'BuildError',
    'DefinitionError',
    'InternalInvariantError',
]
