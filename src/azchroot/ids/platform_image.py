from functools import total_ordering
from typing import NamedTuple
import re

from .. import constants
from ..exceptions import ParseError

PLATFORM_IMAGE_REGEX = re.compile(
    r"^(?P<publisher>[-_.a-zA-Z0-9]+):"
    r"(?P<offer>[-_.a-zA-Z0-9]+):"
    r"(?P<sku>[-_.a-zA-Z0-9]+):"
    r"(?P<version>[-_.a-zA-Z0-9]+)$"
)


class PlatformImage(NamedTuple):
    """
        Class describe a marketplace image `publisher:offer:sku:version`
    """
    publisher: str
    offer: str
    sku: str
    version: str

    @property
    def is_latest(self) -> bool:
        return self.version.lower() == constants.LATEST_VERSION

    def with_version(self, version: str) -> "PlatformImage":
        return self._replace(version=version)

    def resource_id(self, subscription_id: str, location: str) -> str:
        """Image reference id used as creation data for a disk."""
        return (
            f"/Subscriptions/{subscription_id}/Providers/Microsoft.Compute"
            f"/Locations/{location}/Publishers/{self.publisher}/ArtifactTypes/VMImage"
            f"/Offers/{self.offer}/Skus/{self.sku}/Versions/{self.version}"
        )

    def __str__(self):
        return f"{self.publisher}:{self.offer}:{self.sku}:{self.version}"


def parse_platform_image(urn: str) -> PlatformImage:
    match = PLATFORM_IMAGE_REGEX.match(urn or "")
    if not match:
        raise ParseError(f"'{urn}' is not a valid platform image specifier (publisher:offer:sku:version)")
    return PlatformImage(**match.groupdict())


@total_ordering
class PlatformImageVersion:
    """
        Class describe a concrete platform image version like `18.04.201912180`
    """
    VERSION_REGEX = re.compile(r"^\d+(\.\d+)*$")

    def __init__(self, version_str: str):
        self.version_str = version_str
        if not self.VERSION_REGEX.match(version_str or ""):
            raise ValueError(f"Unrecognized platform image version '{version_str}'")
        self.parts = tuple(int(p) for p in version_str.split('.'))

    def __str__(self):
        return self.version_str

    def __repr__(self):
        return f"PlatformImageVersion('{self.version_str}')"

    def __eq__(self, other):
        if not isinstance(other, PlatformImageVersion):
            return NotImplemented
        return self.parts == other.parts

    def __lt__(self, other):
        if not isinstance(other, PlatformImageVersion):
            return NotImplemented
        return self.parts < other.parts

    def __hash__(self):
        return hash(self.parts)
