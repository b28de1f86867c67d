from connectors.apps_script import AppsScriptConnector
from connectors.base import BaseConnector
from connectors.google_drive import GoogleDriveConnector

BACKEND_APPS_SCRIPT = "apps_script"
BACKEND_GOOGLE_API = "google_api"


def create_connector(settings, backend: str | None = None) -> BaseConnector:
    """Build the Drive-side connector selected by DRIVE_BACKEND."""
    backend = backend or settings.drive_backend
    if backend == BACKEND_APPS_SCRIPT:
        return AppsScriptConnector(
            script_url=settings.app_script_url,
            timeout=settings.app_script_timeout_seconds,
        )
    if backend == BACKEND_GOOGLE_API:
        if not settings.google_drive_root_folder_id:
            raise ValueError("GOOGLE_DRIVE_ROOT_FOLDER_ID is required for the google_api backend")
        return GoogleDriveConnector(
            root_folder_id=settings.google_drive_root_folder_id,
            sheet_id=settings.clients_sheet_id,
            sheet_name=settings.clients_sheet_name,
            credentials_path=settings.google_credentials_path,
            fallback_to_parent=settings.subfolder_fallback_to_parent,
        )
    raise ValueError(f"Unknown DRIVE_BACKEND: {backend}")
