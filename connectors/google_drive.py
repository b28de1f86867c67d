"""
Google Drive connector.

Runs the Drive-side logic in-process against the Drive v3 and Sheets v4 APIs
with a service account: client folder matching, document aggregation, the
registry listing, direct uploads and folder creation.
"""
import io
from datetime import datetime

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from connectors.aggregator import aggregate_client_documents, lookup_document_folder, subfolder_items
from connectors.base import (
    DOCUMENT_TYPE_VALUES,
    FOLDER_MIME_TYPE,
    TOTAL_DOCUMENT_TYPES,
    BaseConnector,
    ClientDocuments,
    DocumentsStatus,
    DriveItem,
    FolderLookup,
    ScriptClient,
    UploadResult,
    UpstreamError,
    drive_file_view_url,
    drive_folder_url,
    progress_percentage,
)
from connectors.matcher import build_client_folder_name, match_client_folder
from app.logging_config import get_logger

logger = get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
]

_LIST_FIELDS = "nextPageToken, files(id, name, mimeType, size, trashed, modifiedTime, webViewLink)"

# Registry sheet columns (0-based): B fecha, C nombre, D cédula, F folder URL
_COL_FECHA = 1
_COL_NOMBRE = 2
_COL_CEDULA = 3
_COL_FOLDER_URL = 5


def _cell(row: list, index: int):
    return row[index] if index < len(row) else None


def _cell_text(row: list, index: int) -> str:
    """Cell as text; whole-number floats (cédulas) lose their trailing .0."""
    value = _cell(row, index)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class GoogleDriveConnector(BaseConnector):
    """
    Drive-side connector backed by the Google APIs.

    Requires:
    - google-api-python-client
    - google-auth

    Setup:
    1. Create a service account in Google Cloud Console
    2. Download the JSON key file
    3. Share the clients root folder and the registry sheet with the service account email
    """

    def __init__(
        self,
        root_folder_id: str,
        sheet_id: str | None = None,
        sheet_name: str = "Creditos",
        credentials_path: str | None = None,
        drive_service=None,
        sheets_service=None,
        fallback_to_parent: bool = False,
    ):
        """
        Initialize Google Drive connector.

        Args:
            root_folder_id: Drive folder holding one subfolder per client.
            sheet_id: Spreadsheet ID of the client registry.
            sheet_name: Registry tab name.
            credentials_path: Path to service account JSON key file.
            drive_service: Prebuilt Drive v3 resource (skips credential loading).
            sheets_service: Prebuilt Sheets v4 resource.
            fallback_to_parent: Resolve missing document subfolders to the client folder.
        """
        self.root_folder_id = root_folder_id
        self.sheet_id = sheet_id
        self.sheet_name = sheet_name
        self.fallback_to_parent = fallback_to_parent

        if drive_service is None or (sheet_id and sheets_service is None):
            if not credentials_path:
                raise ValueError("GOOGLE_CREDENTIALS_PATH is required for the google_api backend")
            credentials = service_account.Credentials.from_service_account_file(
                credentials_path,
                scopes=SCOPES,
            )
            drive_service = drive_service or build("drive", "v3", credentials=credentials, cache_discovery=False)
            if sheet_id:
                sheets_service = sheets_service or build(
                    "sheets", "v4", credentials=credentials, cache_discovery=False
                )

        self._drive = drive_service
        self._sheets = sheets_service

    @property
    def name(self) -> str:
        return "Google Drive API"

    # ---- Drive listing ----

    def _list(self, query: str) -> list[dict]:
        items = []
        page_token = None
        try:
            while True:
                response = self._drive.files().list(
                    q=query,
                    fields=_LIST_FIELDS,
                    pageSize=200,
                    pageToken=page_token,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                ).execute()
                items.extend(response.get("files", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as e:
            logger.error(f"Drive list failed | q={query} | err={e}")
            raise UpstreamError(f"Error de Google Drive: {e.resp.status}", status_code=502) from e
        return items

    def list_subfolders(self, folder_id: str) -> list[dict]:
        return self._list(
            f"'{folder_id}' in parents and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        )

    def list_files(self, folder_id: str) -> list[dict]:
        # Trashed files are listed on purpose; the aggregator filters them.
        return self._list(f"'{folder_id}' in parents and mimeType!='{FOLDER_MIME_TYPE}'")

    def _root_folders(self) -> list[DriveItem]:
        return subfolder_items(self, self.root_folder_id)

    def _find_client_folder(
        self,
        client_name: str | None,
        client_id: str | None,
        root_folders: list[DriveItem] | None = None,
    ) -> DriveItem | None:
        folders = root_folders if root_folders is not None else self._root_folders()
        match = match_client_folder(folders, client_name, client_id)
        if match is None:
            logger.info(f"No client folder | name={client_name!r} | id={client_id!r}")
            return None
        logger.info(f"Client folder found by {match.reason}: {match.folder.name}")
        return match.folder

    # ---- Protocol actions ----

    def find_client_documents(
        self,
        client_name: str | None,
        client_id: str | None,
    ) -> ClientDocuments | None:
        folder = self._find_client_folder(client_name, client_id)
        if folder is None:
            return None
        return ClientDocuments(
            client_name=folder.name,
            client_folder_url=folder.url,
            client_folder_id=folder.id,
            documents=aggregate_client_documents(self, folder),
        )

    def find_document_folder(
        self,
        client_name: str | None,
        client_id: str | None,
        document_type: str,
    ) -> FolderLookup | None:
        folder = self._find_client_folder(client_name, client_id)
        if folder is None:
            return None
        return lookup_document_folder(
            self,
            folder,
            document_type,
            fallback_to_parent=self.fallback_to_parent,
        )

    def _registry_rows(self) -> list[list]:
        if not self._sheets or not self.sheet_id:
            raise UpstreamError("CLIENTS_SHEET_ID not configured", status_code=500)
        try:
            result = self._sheets.spreadsheets().values().get(
                spreadsheetId=self.sheet_id,
                range=f"{self.sheet_name}!A2:F",
                valueRenderOption="UNFORMATTED_VALUE",
                dateTimeRenderOption="FORMATTED_STRING",
            ).execute()
        except HttpError as e:
            logger.error(f"Sheets read failed | sheet={self.sheet_id} | err={e}")
            raise UpstreamError(f"Error leyendo Google Sheets: {e.resp.status}", status_code=502) from e
        return result.get("values", [])

    def get_all_clients(self) -> list[ScriptClient]:
        """
        List every registry row with its folder and document details.

        Rows missing fecha, nombre or cédula are skipped. The root folder is
        listed once and reused for every row.
        """
        rows = self._registry_rows()
        root_folders = self._root_folders()

        clients = []
        for index, row in enumerate(rows):
            fecha = _cell_text(row, _COL_FECHA)
            nombre = _cell_text(row, _COL_NOMBRE)
            cedula = _cell_text(row, _COL_CEDULA)
            if not (fecha and nombre and cedula):
                continue

            folder = self._find_client_folder(nombre, cedula, root_folders=root_folders)
            documents = aggregate_client_documents(self, folder) if folder else []
            completed = sum(1 for doc in documents if doc.has_files)

            clients.append(ScriptClient(
                row_number=index + 2,
                fecha=fecha,
                nombre=nombre,
                cedula=cedula,
                folder_url=folder.url if folder else (_cell(row, _COL_FOLDER_URL) or ""),
                folder_id=folder.id if folder else None,
                has_folder=folder is not None,
                documents_status=DocumentsStatus(
                    completed=completed,
                    total=TOTAL_DOCUMENT_TYPES,
                    percentage=progress_percentage(completed, TOTAL_DOCUMENT_TYPES) if folder else 0,
                ),
                document_details=documents,
            ))

        logger.info(f"get_all_clients ok | rows={len(rows)} | clients={len(clients)}")
        return clients

    def upload_large_file(
        self,
        folder_id: str,
        file_name: str,
        content: bytes,
        content_type: str | None = None,
        fields: dict[str, str] | None = None,
    ) -> UploadResult:
        media = MediaIoBaseUpload(
            io.BytesIO(content),
            mimetype=content_type or "application/octet-stream",
            resumable=True,
        )
        try:
            created = self._drive.files().create(
                body={"name": file_name, "parents": [folder_id]},
                media_body=media,
                fields="id, name, webViewLink",
                supportsAllDrives=True,
            ).execute()
        except HttpError as e:
            logger.error(f"Drive upload failed | folder={folder_id} | file={file_name} | err={e}")
            raise UpstreamError(f"Error subiendo archivo: {e.resp.status}", status_code=502) from e

        file_id = created["id"]
        logger.info(f"upload ok | folder={folder_id} | file={file_name} | bytes={len(content)}")
        return UploadResult(
            file_id=file_id,
            file_name=file_name,
            file_url=created.get("webViewLink") or drive_file_view_url(file_id),
            download_url=drive_file_view_url(file_id),
            folder_id=folder_id,
            method="direct_drive_api_upload",
            message="Archivo subido exitosamente",
        )

    def _create_folder(self, name: str, parent_id: str) -> str:
        created = self._drive.files().create(
            body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
            fields="id",
            supportsAllDrives=True,
        ).execute()
        return created["id"]

    def create_client_folder(self) -> str:
        """
        Create the folder tree for the last registry row.

        The folder is named `yyyyMMdd_<name>_<cedula>`, gets the 8 document
        subfolders, and its URL is written back to column F of that row.
        """
        rows = self._registry_rows()
        if not rows:
            raise UpstreamError("La hoja de clientes está vacía", status_code=404)

        row_number = len(rows) + 1
        row = rows[-1]
        fecha = _format_folder_date(_cell(row, _COL_FECHA))
        folder_name = build_client_folder_name(fecha, _cell_text(row, _COL_NOMBRE), _cell_text(row, _COL_CEDULA))

        try:
            folder_id = self._create_folder(folder_name, self.root_folder_id)
            for doc_type in DOCUMENT_TYPE_VALUES:
                self._create_folder(doc_type, folder_id)

            folder_url = drive_folder_url(folder_id)
            self._sheets.spreadsheets().values().update(
                spreadsheetId=self.sheet_id,
                range=f"{self.sheet_name}!F{row_number}",
                valueInputOption="RAW",
                body={"values": [[folder_url]]},
            ).execute()
        except HttpError as e:
            logger.error(f"Folder creation failed | name={folder_name} | err={e}")
            raise UpstreamError(f"Error creando carpeta: {e.resp.status}", status_code=502) from e

        logger.info(f"create_folder ok | name={folder_name} | row={row_number}")
        return folder_url


def _format_folder_date(value) -> str:
    """Render a registry date as yyyyMMdd; today's date when unparseable."""
    if value:
        text = str(value).strip()
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y-%m-%dT%H:%M:%S.%fZ"):
            try:
                return datetime.strptime(text, fmt).strftime("%Y%m%d")
            except ValueError:
                continue
    return datetime.now().strftime("%Y%m%d")
