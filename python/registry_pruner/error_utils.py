"""
Error message utilities for providing actionable guidance to users.

Fatal failures of a pruning run (bad config, unreachable registry, a
repository whose tags cannot be listed, a malformed rule) are surfaced as
ActionableError instances carrying suggested fixes and context details.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    REGISTRY = "registry"
    PATTERN = "pattern"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class RegistryConnectivityError(ActionableError):
    """The registry failed its /v2/ liveness check"""


class TagListingError(ActionableError):
    """A repository's tag list could not be enumerated"""


def _status_of(error: Exception) -> Optional[int]:
    return getattr(error, "status_code", None)


def create_registry_connection_error(registry_url: str, error: Exception) -> RegistryConnectivityError:
    """Create actionable error for registry liveness check failures"""
    error_str = str(error).lower()
    status = _status_of(error)

    suggestions = [
        f"Verify the registry URL is correct: {registry_url}",
        "Check network connectivity to the registry",
        "Check if the registry service is running and serves the V2 API at /v2/",
    ]
    category = ErrorCategory.CONNECTION

    if status in (401, 403):
        category = ErrorCategory.AUTHENTICATION
        suggestions.insert(0, "Verify the auth.username and auth.password values in the config file")
        suggestions.insert(1, "Or set REGISTRY_USERNAME and REGISTRY_PASSWORD environment variables")

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Check if the registry is experiencing high load")

    if "name resolution" in error_str or "resolve" in error_str:
        suggestions.insert(1, "Verify DNS resolution for the registry hostname")

    if "ssl" in error_str or "certificate" in error_str:
        suggestions.insert(1, "Check the registry TLS certificate, or use an http:// URL for plain-text registries")

    return RegistryConnectivityError(
        message=f"Failed to connect to Docker registry at {registry_url}",
        category=category,
        suggestions=suggestions,
        details={
            "registry_url": registry_url,
            "status_code": status,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_tag_listing_error(registry_url: str, repository: str, error: Exception) -> TagListingError:
    """Create actionable error for a repository whose tags could not be listed"""
    status = _status_of(error)

    suggestions = [
        f"Verify the repository '{repository}' exists on {registry_url}",
        "Check the 'repos' list in the config file for typos",
        "Rerun once the registry is reachable; no repository after this one was processed",
    ]
    if status in (401, 403):
        suggestions.insert(0, f"Verify the configured credentials may read '{repository}'")

    return TagListingError(
        message=f"Failed to list tags for repository '{repository}'",
        category=ErrorCategory.REGISTRY,
        suggestions=suggestions,
        details={
            "registry_url": registry_url,
            "repository": repository,
            "status_code": status,
            "error_message": str(error),
        },
    )


def create_pattern_error(error: Exception) -> ActionableError:
    """Create actionable error for a malformed selection rule"""
    pattern = getattr(error, "pattern", None)
    return ActionableError(
        message=f"Invalid selection rule: {pattern!r}" if pattern is not None else "Invalid selection rule",
        category=ErrorCategory.PATTERN,
        suggestions=[
            "Rules must look like '<operator>:<argument>'",
            "Supported operators: regexp, date, equal",
            "Date rules take comparison operators then a day offset, e.g. 'date:<-30'",
            "Check the 'cleanup' and 'except' lists in the config file",
        ],
        details={"reason": getattr(error, "reason", str(error))},
    )


def create_config_error(config_file: str, reason: str) -> ActionableError:
    """Create actionable error for configuration loading or validation failures"""
    suggestions = [
        f"Check that {config_file} exists and is readable",
        "Verify the file is valid YAML with a mapping at the top level",
        "Required keys: registry_url, repos, cleanup (optional: except, auth)",
        "Use -c/--config or REGISTRY_CLEANUP_CONFIG to point at another file",
    ]
    if "url" in reason.lower():
        suggestions.insert(1, "registry_url should look like https://hostname[:port]")

    return ActionableError(
        message=f"Configuration error in {config_file}",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={"config_file": config_file, "reason": reason},
    )
