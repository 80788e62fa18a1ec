from typing import List, NamedTuple, Tuple

from ..exceptions import ParseError


class ResourceID(NamedTuple):
    """
        Class describe a hierarchical ARM resource id

        `/subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}[/{type}/{name}...]`

        `resource_type` and `resource_name` describe the top-level resource,
        nested resources are kept in `children`.
    """
    subscription_id: str
    resource_group: str
    provider: str
    resource_type: str
    resource_name: str
    children: Tuple[Tuple[str, str], ...] = ()

    def is_a(self, provider: str, resource_type: str) -> bool:
        """Case-insensitive check of the provider namespace and top-level type."""
        return (self.provider.lower() == provider.lower()
                and self.resource_type.lower() == resource_type.lower())

    def __str__(self):
        path = (f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"
                f"/providers/{self.provider}/{self.resource_type}/{self.resource_name}")
        for child_type, child_name in self.children:
            path += f"/{child_type}/{child_name}"
        return path


def _expect(segments: List[str], index: int, key: str, resource_id: str) -> str:
    if len(segments) <= index + 1 or segments[index].lower() != key.lower() or not segments[index + 1]:
        raise ParseError(f"'{resource_id}' is not a valid resource id: expected '{key}/<value>'")
    return segments[index + 1]


def parse_resource_id(resource_id: str) -> ResourceID:
    if not resource_id or not resource_id.startswith('/'):
        raise ParseError(f"'{resource_id}' is not a valid resource id: must start with '/'")

    segments = resource_id.strip('/').split('/')
    subscription = _expect(segments, 0, "subscriptions", resource_id)
    group = _expect(segments, 2, "resourceGroups", resource_id)
    provider = _expect(segments, 4, "providers", resource_id)

    rest = segments[6:]
    if len(rest) < 2 or len(rest) % 2 != 0 or not all(rest):
        raise ParseError(f"'{resource_id}' is not a valid resource id: expected '<type>/<name>' pairs after the provider")

    pairs = [(rest[i], rest[i + 1]) for i in range(0, len(rest), 2)]
    (resource_type, resource_name), children = pairs[0], tuple(pairs[1:])
    return ResourceID(subscription, group, provider, resource_type, resource_name, children)


def is_resource_of_type(resource_id: str, provider: str, resource_type: str) -> bool:
    """True if `resource_id` parses and names a `provider/resource_type` resource."""
    try:
        return parse_resource_id(resource_id).is_a(provider, resource_type)
    except ParseError:
        return False
