"""
Template rendering for configuration values.

Supported actions inside `{{ ... }}`:

- `.Field`          run-time data such as `.Device`, `.MountPath`, `.Command`
- `vm `key``        facts about the build host (`name`, `subscription_id`,
                    `resource_group`, `location`, `resource_id`)
- `timestamp`       unix time fixed when the renderer was created

Anything that cannot be resolved raises TemplateError; nothing renders to an empty string silently.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, Mapping, Optional

from .exceptions import TemplateError
from .protocols import MetadataProvider

logger = logging.getLogger(__name__)

ACTION_REGEX = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
FIELD_REGEX = re.compile(r"^\.([A-Za-z_][A-Za-z0-9_]*)$")
VM_REGEX = re.compile(r"^vm\s+(?:`([^`]*)`|\"([^\"]*)\")$")


class TemplateRenderer:
    """
    Renders templates against host facts and per-call data.

    The metadata provider is queried lazily, the first time a `vm` action is
    rendered, and its answer is cached for the lifetime of the renderer.
    """

    def __init__(self, metadata: Optional[MetadataProvider] = None, timestamp: Optional[int] = None):
        self.metadata = metadata
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self._facts: Optional[Dict[str, str]] = None

    def render(self, template: str, data: Optional[Mapping[str, Any]] = None) -> str:
        data = data or {}
        # an opening brace pair without its closing pair is a syntax error
        stripped = ACTION_REGEX.sub("", template)
        if "{{" in stripped or "}}" in stripped:
            raise TemplateError(f"unbalanced braces in template '{template}'")

        def replace(match: re.Match) -> str:
            return self._evaluate(match.group(1).strip(), data, template)

        return ACTION_REGEX.sub(replace, template)

    def _evaluate(self, action: str, data: Mapping[str, Any], template: str) -> str:
        field = FIELD_REGEX.match(action)
        if field:
            name = field.group(1)
            if name not in data or data[name] is None:
                raise TemplateError(f"template '{template}' references '.{name}', which is not available here")
            return str(data[name])

        if action == "timestamp":
            return str(self.timestamp)

        vm = VM_REGEX.match(action)
        if vm:
            key = vm.group(1) if vm.group(1) is not None else vm.group(2)
            return self._vm(key)

        raise TemplateError(f"unknown action '{{{{{action}}}}}' in template '{template}'")

    def _vm(self, key: str) -> str:
        if self._facts is None:
            if self.metadata is None:
                raise TemplateError(f"vm `{key}`: no metadata about the build host is available")
            try:
                info = self.metadata.get_compute_info()
            except Exception as e:
                raise TemplateError(f"vm `{key}`: could not retrieve metadata about the build host: {e}") from e
            self._facts = info.facts()
            logger.debug(f"[Template] Fetched host facts for '{self._facts.get('name')}'")

        if key not in self._facts:
            raise TemplateError(f"vm `{key}`: unknown fact, expected one of {sorted(self._facts)}")
        value = self._facts[key]
        if not value:
            raise TemplateError(f"vm `{key}`: the build host metadata has no value for this fact")
        return value


def wrap_command(wrapper: str, command: str, renderer: Optional[TemplateRenderer] = None) -> str:
    """Substitute `command` into the `{{.Command}}` placeholder of `wrapper`."""
    renderer = renderer or TemplateRenderer()
    return renderer.render(wrapper, {"Command": command})


def command_wrapper(wrapper: str, renderer: Optional[TemplateRenderer] = None) -> Callable[[str], str]:
    """Bind a wrapper template into a `command -> wrapped command` function."""
    def wrapped(command: str) -> str:
        return wrap_command(wrapper, command, renderer)
    return wrapped
