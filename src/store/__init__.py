"""
Pi-Apps Store

App catalog, installer and log diagnosis for a pi-apps directory.
"""

from .app_catalog import AppCatalog, AppInfo
from .app_status import AppStatus, AppType, get_app_status, set_app_status
from .config import StoreConfig, get_config
from .installer import Action, AppManager
from .log_diagnose import ErrorDiagnosis, ErrorType, diagnose_log, diagnose_text

__all__ = [
    "AppCatalog",
    "AppInfo",
    "AppStatus",
    "AppType",
    "get_app_status",
    "set_app_status",
    "StoreConfig",
    "get_config",
    "Action",
    "AppManager",
    "ErrorDiagnosis",
    "ErrorType",
    "diagnose_log",
    "diagnose_text",
]
