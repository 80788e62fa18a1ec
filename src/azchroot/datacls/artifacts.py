from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .. import constants


class Artifact(BaseModel):
    """
        Class represents the result of a successful build: the cloud resources it created.
    """
    builder_id: str = constants.BUILDER_ID
    resources: List[str] = Field(default_factory=list)
    state_data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def id(self) -> str:
        return ",".join(self.resources)

    def __str__(self):
        if not self.resources:
            return "No resources were created."
        return "Created resources:\n" + "\n".join(f"  - {r}" for r in self.resources)
