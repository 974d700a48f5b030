"""
Pi-Apps Exception Hierarchy

Provides clear, actionable error messages with structured information
for logging, user feedback, and programmatic error handling.
"""

from typing import Optional, Dict, Any, List


class PiAppsError(Exception):
    """
    Base exception for all Pi-Apps errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the error is recoverable
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# App-related errors
# =============================================================================

class AppError(PiAppsError):
    """Base for app-related errors."""
    pass


class AppNotFoundError(AppError):
    """App folder does not exist."""
    def __init__(self, app_name: str):
        super().__init__(
            f"App '{app_name}' not found",
            code="APP_NOT_FOUND",
            details={"app": app_name},
            recoverable=False,
        )


class InvalidAppError(AppError):
    """App folder exists but is neither a standard nor a package app."""
    def __init__(self, app_name: str):
        super().__init__(
            f"'{app_name}' is not a valid app type",
            code="INVALID_APP",
            details={"app": app_name},
            recoverable=False,
        )


class AppStateError(AppError):
    """App status does not allow the requested action."""
    def __init__(self, app_name: str, current_state: str, action: str):
        super().__init__(
            f"Cannot {action} '{app_name}': app is {current_state}",
            code="APP_INVALID_STATE",
            details={
                "app": app_name,
                "current_state": current_state,
                "action": action,
            },
        )


class AppExistsError(AppError):
    """An app with this name already exists."""
    def __init__(self, app_name: str):
        super().__init__(
            f"App '{app_name}' already exists",
            code="APP_EXISTS",
            details={"app": app_name},
        )


# =============================================================================
# Script / action errors
# =============================================================================

class ActionError(PiAppsError):
    """Base for install/uninstall/update failures."""
    pass


class ScriptNotFoundError(ActionError):
    """No runnable script for this app on this system."""
    def __init__(self, app_name: str, script: str):
        super().__init__(
            f"No {script} script found for '{app_name}'",
            code="SCRIPT_NOT_FOUND",
            details={"app": app_name, "script": script},
            recoverable=False,
        )


class AppActionError(ActionError):
    """An app script or package command exited non-zero."""
    def __init__(
        self,
        app_name: str,
        action: str,
        exit_code: int,
        log_path: Optional[str] = None,
        error_type: Optional[str] = None,
        captions: Optional[List[str]] = None,
    ):
        super().__init__(
            f"Failed to {action} {app_name} (exit code {exit_code})",
            code="ACTION_FAILED",
            details={
                "app": app_name,
                "action": action,
                "exit_code": exit_code,
                "log_path": log_path,
                "error_type": error_type,
            },
        )
        self.app_name = app_name
        self.action = action
        self.exit_code = exit_code
        self.log_path = log_path
        self.error_type = error_type
        self.captions = captions or []


class BatchActionError(ActionError):
    """One or more apps in a batch failed."""
    def __init__(self, action: str, failed_apps: List[str]):
        super().__init__(
            f"Failed to {action} the following apps: {', '.join(failed_apps)}",
            code="BATCH_FAILED",
            details={"action": action, "failed": failed_apps},
        )
        self.failed_apps = failed_apps


class RunonceError(ActionError):
    """A runonce snippet exited non-zero."""
    def __init__(self, exit_code: int):
        super().__init__(
            f"runonce(): script exited with code {exit_code}",
            code="RUNONCE_FAILED",
            details={"exit_code": exit_code},
        )


# =============================================================================
# Package manager errors
# =============================================================================

class PackageManagerError(PiAppsError):
    """Package manager unavailable or misbehaving."""
    def __init__(self, message: str, manager: Optional[str] = None):
        super().__init__(
            message,
            code="PACKAGE_MANAGER_ERROR",
            details={"manager": manager},
        )


# =============================================================================
# Network errors
# =============================================================================

class NetworkError(PiAppsError):
    """Base for network-related errors."""
    pass


class InternetError(NetworkError):
    """No internet connection."""
    def __init__(self, url: str):
        super().__init__(
            "No internet connection! Check your network and try again.",
            code="NO_INTERNET",
            details={"url": url},
        )


class DownloadError(NetworkError):
    """Download failed."""
    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Failed to download: {reason}",
            code="DOWNLOAD_FAILED",
            details={"url": url, "reason": reason},
        )


# =============================================================================
# Import errors
# =============================================================================

class AppImportError(PiAppsError):
    """Base for app import errors."""
    def __init__(self, message: str, source: Optional[str] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message,
            code="IMPORT_FAILED",
            details={"source": source} if source else None,
            cause=cause,
        )


class InvalidAppStructureError(AppImportError):
    """Imported folder is missing required files."""
    def __init__(self, path: str, missing: List[str]):
        super().__init__(
            f"missing required files: {', '.join(missing)}",
            source=path,
        )
        self.code = "INVALID_APP_STRUCTURE"
        self.missing = missing


# =============================================================================
# Update errors
# =============================================================================

class UpdateError(PiAppsError):
    """Updater failure."""
    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(
            message,
            code="UPDATE_FAILED",
            cause=cause,
        )


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(PiAppsError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )


class MissingConfigError(ConfigError):
    """Required configuration missing."""
    def __init__(self, field: str):
        super().__init__(
            f"Missing required configuration: {field}",
            code="MISSING_CONFIG",
            details={"field": field},
        )


# =============================================================================
# Template errors
# =============================================================================

class TemplateError(PiAppsError):
    """Template-related errors."""
    pass


class TemplateNotFoundError(TemplateError):
    """Template not found."""
    def __init__(self, template_name: str):
        super().__init__(
            f"Template not found: {template_name}",
            code="TEMPLATE_NOT_FOUND",
            details={"template": template_name},
        )


class TemplateRenderError(TemplateError):
    """Template rendering failed."""
    def __init__(self, template_name: str, reason: str):
        super().__init__(
            f"Failed to render template '{template_name}': {reason}",
            code="TEMPLATE_RENDER_FAILED",
            details={"template": template_name, "reason": reason},
        )
