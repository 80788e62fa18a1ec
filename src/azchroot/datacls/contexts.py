"""
Build run contexts

EnvironmentInfo holds the read-only facts about the host performing the build,
StateBag is the single mutable store shared by every step of one run.
"""

import logging
from typing import Any, Dict, Iterator, Tuple

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class EnvironmentInfo(BaseModel):
    """
    Facts about the virtual machine the build runs on.
    Supplied once per run by a metadata provider and never modified.
    """
    model_config = ConfigDict(frozen=True)

    name: str = ""
    resource_group: str = ""
    subscription_id: str = ""
    location: str = ""

    @property
    def resource_id(self) -> str:
        return (f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"
                f"/providers/Microsoft.Compute/virtualMachines/{self.name}")

    def facts(self) -> Dict[str, str]:
        """Values reachable from templates through `{{ vm `key` }}`."""
        facts = self.model_dump()
        facts["resource_id"] = self.resource_id if self.subscription_id and self.resource_group and self.name else ""
        return facts


class StaticMetadataProvider:
    """Metadata provider returning facts known up front (CLI options, tests)."""

    def __init__(self, info: EnvironmentInfo):
        self.info = info

    def get_compute_info(self) -> EnvironmentInfo:
        return self.info


class StateBag:
    """
    Key/value store passed by reference to every step of a run.
    Keys are the contract between producer and consumer steps, see `constants.StateKey`.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def put(self, key: str, value: Any):
        logger.debug(f"[StateBag] put '{key}'")
        self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_ok(self, key: str) -> Tuple[Any, bool]:
        if key in self._data:
            return self._data[key], True
        return None, False

    def require(self, key: str) -> Any:
        """Fetch a value an earlier step must have produced."""
        if key not in self._data:
            raise KeyError(f"state bag has no value for '{key}'; the step producing it has not run")
        return self._data[key]

    def append(self, key: str, value: Any):
        self._data.setdefault(key, []).append(value)

    def remove(self, key: str):
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)
