"""
Connectors module for the Drive side of the document dashboard.

Each connector implements the BaseConnector interface, so the sync service
and the routes see the same models whichever backend is configured.

Available connectors:
- AppsScriptConnector: remote Apps Script web app (default)
- GoogleDriveConnector: Drive v3 / Sheets v4 APIs in-process (requires service account)

Also here:
- UploadRelay: Zapier catch hook for small uploads
- matcher / aggregator: folder matching and per-client document aggregation
"""
from connectors.base import (
    BaseConnector,
    ClientDocuments,
    FileTooLargeError,
    FolderLookup,
    MalformedResponseError,
    ScriptClient,
    ScriptDocument,
    ScriptFile,
    UploadResult,
    UpstreamError,
)
from connectors.apps_script import AppsScriptConnector
from connectors.google_drive import GoogleDriveConnector
from connectors.relay import UploadRelay
from connectors.factory import create_connector

__all__ = [
    "BaseConnector",
    "ClientDocuments",
    "FolderLookup",
    "ScriptClient",
    "ScriptDocument",
    "ScriptFile",
    "UploadResult",
    "UpstreamError",
    "MalformedResponseError",
    "FileTooLargeError",
    "AppsScriptConnector",
    "GoogleDriveConnector",
    "UploadRelay",
    "create_connector",
]
