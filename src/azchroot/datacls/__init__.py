from .contexts import EnvironmentInfo, StaticMetadataProvider, StateBag
from .artifacts import Artifact

__all__ = [
    'EnvironmentInfo',
    'StaticMetadataProvider',
    'StateBag',
    'Artifact',
]
