from typing import List, Optional


class ChrootBuilderError(Exception):
    """Base exception for all application-specific errors."""

    pass


# --- 1. Errors related to loading, decoding and validating the configuration ---
class ConfigurationError(ChrootBuilderError):
    """Base class for errors encountered while finding, reading, or checking config files."""

    pass


class ConfigFileMissingError(ConfigurationError):
    """Raised when the configuration file cannot be found."""

    pass


class ConfigParsingError(ConfigurationError):
    """Raised when a YAML configuration file is syntactically incorrect."""

    pass


class ConfigDecodeError(ConfigurationError):
    """Raised when raw input cannot be decoded into typed fields (unknown keys, bad types)."""

    pass


class ConfigValidationError(ConfigurationError):
    """
    Raised once every validation rule has been checked.
    Carries all accumulated errors so they can be reported in one pass.
    """

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        lines = "\n".join(f"* {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} error(s) occurred:\n{lines}")


# --- 2. Errors in identifiers and templates ---
class DefinitionError(ChrootBuilderError):
    """Base class for errors in identifiers and templates referenced by the config."""

    pass


class ParseError(DefinitionError):
    """Raised when a platform image specifier or resource id does not have the expected shape."""

    pass


class TemplateError(DefinitionError):
    """Raised when a template cannot be rendered (missing data, missing facts, bad syntax)."""

    pass


# --- 3. Errors that occur while running the build ---
class BuildError(ChrootBuilderError):
    """
    Base class for errors that occur while running the build steps.
    `step` names the phase that failed, `retained_resources` lists cloud
    resources that were left behind and must be reconciled by hand.
    """

    def __init__(self, message: str, step: Optional[str] = None,
                 retained_resources: Optional[List[str]] = None):
        super().__init__(message)
        self.step = step
        self.retained_resources = list(retained_resources or [])

    def describe(self) -> str:
        text = str(self)
        if self.step:
            text = f"step '{self.step}' failed: {text}"
        if self.retained_resources:
            text += "\nResources left behind:\n" + "\n".join(f"  - {r}" for r in self.retained_resources)
        return text


class StepError(BuildError):
    """Raised by a step when its operation fails."""

    pass


class BuildCancelledError(BuildError):
    """Raised when the build is cancelled between two steps."""

    pass


class UnsupportedPlatformError(BuildError):
    """Raised when the build is started on a host that cannot mount or chroot."""

    pass


# --- 4. Errors that indicate a bug, not a user mistake ---
class InternalInvariantError(ChrootBuilderError):
    """Raised when a state the resolver should have rejected is reached."""

    pass
