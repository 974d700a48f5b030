"""
Pi-Apps Common Utilities

Exceptions, decorators and logging setup shared by the store and updater.
"""

from .exceptions import (
    PiAppsError, AppError, AppNotFoundError, InvalidAppError, AppStateError,
    AppExistsError, ActionError, ScriptNotFoundError, AppActionError,
    BatchActionError, RunonceError, PackageManagerError, NetworkError,
    InternetError, DownloadError, AppImportError, InvalidAppStructureError,
    UpdateError, ConfigError, InvalidConfigError, MissingConfigError,
    TemplateError, TemplateNotFoundError, TemplateRenderError,
)
from .decorators import handle_errors, retry, timed
from .logging_config import setup_logging, get_logger, LogContext

__all__ = [
    # Exceptions
    "PiAppsError", "AppError", "AppNotFoundError", "InvalidAppError",
    "AppStateError", "AppExistsError", "ActionError", "ScriptNotFoundError",
    "AppActionError", "BatchActionError", "RunonceError", "PackageManagerError",
    "NetworkError", "InternetError", "DownloadError", "AppImportError",
    "InvalidAppStructureError", "UpdateError", "ConfigError",
    "InvalidConfigError", "MissingConfigError", "TemplateError",
    "TemplateNotFoundError", "TemplateRenderError",
    # Decorators
    "handle_errors", "retry", "timed",
    # Logging
    "setup_logging", "get_logger", "LogContext",
]
