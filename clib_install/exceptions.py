"""
Defines custom exceptions for the installer to allow for more specific error handling.
"""


class ClibInstallError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(ClibInstallError):
    """Raised for issues related to configuration loading or validation."""


class ManifestWriteFailed(ClibInstallError):
    """Raised when a dependency could not be saved to any manifest candidate."""


class InstallError(ClibInstallError):
    """Base for failures tied to a single package or target."""

    def __init__(self, identifier: object, message: str = ""):
        self.identifier = identifier
        super().__init__(message or str(identifier))


class PackageNotFoundError(InstallError):
    """Raised when no configured registry knows the package."""

    def __init__(self, identifier: object):
        super().__init__(identifier, f"Package '{identifier}' not found in any registry.")


class LocalPathInvalidError(InstallError):
    """Raised when a local target does not point at a readable manifest."""


class FetchFailedError(InstallError):
    """Raised when the transport fails to retrieve registry or package data."""


class ManifestParseError(InstallError):
    """Raised when a manifest exists but is not a valid JSON manifest."""


class InstallAbortedError(InstallError):
    """Raised for work that is refused because another branch already failed."""

    def __init__(self, identifier: object):
        super().__init__(identifier, f"Install of '{identifier}' aborted.")


class DependencyInstallFailed(InstallError):
    """
    Raised on a package whose dependency subtree failed. `failed` names the
    descendant that caused it.
    """

    def __init__(self, identifier: object, failed: object):
        self.failed = failed
        super().__init__(
            identifier, f"Dependency '{failed}' of '{identifier}' failed to install."
        )


class TargetInstallFailed(InstallError):
    """Raised for an explicit top-level target that could not be installed."""

    def __init__(self, target: str, cause: Exception):
        self.cause = cause
        super().__init__(target, f"Unable to install package {target}: {cause}")
