from .platform_image import PlatformImage, PlatformImageVersion, parse_platform_image
from .resource_id import ResourceID, parse_resource_id, is_resource_of_type

__all__ = [
    'PlatformImage',
    'PlatformImageVersion',
    'parse_platform_image',
    'ResourceID',
    'parse_resource_id',
    'is_resource_of_type',
]
