"""
Apps Script connector.

Talks to the deployed Drive-side script over its JSON protocol:
POST {"action": ...} to the web app URL. Apps Script answers web app calls
with a redirect to googleusercontent.com, so redirects are followed.
"""
import httpx
from pydantic import TypeAdapter, ValidationError

from connectors.base import (
    BaseConnector,
    ClientDocuments,
    FolderLookup,
    MalformedResponseError,
    ScriptClient,
    UploadResult,
    UpstreamError,
)
from app.logging_config import get_logger

logger = get_logger(__name__)

_clients_adapter = TypeAdapter(list[ScriptClient])

# How much of a bad payload goes into the log line
_RAW_LOG_CHARS = 500


class AppsScriptConnector(BaseConnector):
    """Drive-side connector for the remote Apps Script web app."""

    def __init__(
        self,
        script_url: str,
        timeout: float = 120.0,
        client: httpx.Client | None = None,
    ):
        if not script_url:
            raise ValueError("APP_SCRIPT_URL is required for the apps_script backend")
        self.script_url = script_url
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    @property
    def name(self) -> str:
        return "Apps Script"

    def close(self) -> None:
        self._client.close()

    # ---- transport ----

    def _send(self, **request_kwargs) -> dict:
        try:
            response = self._client.post(self.script_url, **request_kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Apps Script unreachable | err={type(e).__name__}: {e}")
            raise UpstreamError(
                "No se pudo conectar con el App Script. Verifica la URL.",
                status_code=502,
            ) from e
        return self._parse(response)

    def _parse(self, response: httpx.Response) -> dict:
        if response.status_code == 429:
            raise UpstreamError(
                "Google Apps Script temporalmente sobrecargado. Espera 2-3 minutos e intenta de nuevo.",
                status_code=429,
            )
        if not response.is_success:
            logger.error(
                f"Apps Script error | status={response.status_code} | "
                f"body={response.text[:_RAW_LOG_CHARS]}"
            )
            raise UpstreamError(
                f"Error del App Script: {response.status_code} {response.reason_phrase}",
                status_code=502,
            )

        try:
            body = response.json()
        except ValueError:
            logger.warning(f"Apps Script returned non-JSON | raw={response.text[:_RAW_LOG_CHARS]}")
            raise MalformedResponseError(raw=response.text)

        if not isinstance(body, dict):
            logger.warning(f"Apps Script returned unexpected JSON | raw={response.text[:_RAW_LOG_CHARS]}")
            raise MalformedResponseError(raw=response.text)
        return body

    def _validate(self, model, payload, raw_body: dict):
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Apps Script payload failed validation | err={e} | raw={str(raw_body)[:_RAW_LOG_CHARS]}")
            raise MalformedResponseError(raw=str(raw_body)) from e

    # ---- protocol actions ----

    def find_client_documents(
        self,
        client_name: str | None,
        client_id: str | None,
    ) -> ClientDocuments | None:
        body = self._send(json={
            "action": "findFolder",
            "clientName": (client_name or "").strip() or None,
            "clientId": (client_id or "").strip() or None,
        })
        if not body.get("ok"):
            logger.info(f"findFolder miss | name={client_name!r} | id={client_id!r} | error={body.get('error')}")
            return None
        return self._validate(ClientDocuments, body.get("data"), body)

    def find_document_folder(
        self,
        client_name: str | None,
        client_id: str | None,
        document_type: str,
    ) -> FolderLookup | None:
        body = self._send(json={
            "action": "findFolder",
            "clientName": (client_name or "").strip() or None,
            "clientId": (client_id or "").strip() or None,
            "documentType": document_type,
        })
        if not body.get("ok"):
            logger.info(f"findFolder miss | type={document_type} | error={body.get('error')}")
            return None
        return self._validate(FolderLookup, body, body)

    def get_all_clients(self) -> list[ScriptClient]:
        body = self._send(json={"action": "getAllClients"})
        if not body.get("ok"):
            raise UpstreamError(body.get("error") or "Error en Apps Script", status_code=502)

        # Older script deployments nest the list under data
        clients = body.get("clients")
        if clients is None and isinstance(body.get("data"), dict):
            clients = body["data"].get("clients")
        if clients is None and isinstance(body.get("data"), list):
            clients = body["data"]
        if not isinstance(clients, list):
            logger.warning(f"getAllClients without a client list | raw={str(body)[:_RAW_LOG_CHARS]}")
            raise MalformedResponseError("Estructura de datos del Apps Script no reconocida", raw=str(body))

        try:
            return _clients_adapter.validate_python(clients)
        except ValidationError as e:
            logger.warning(f"getAllClients failed validation | err={e}")
            raise MalformedResponseError(raw=str(body)) from e

    def upload_large_file(
        self,
        folder_id: str,
        file_name: str,
        content: bytes,
        content_type: str | None = None,
        fields: dict[str, str] | None = None,
    ) -> UploadResult:
        form = {
            **(fields or {}),
            "action": "uploadLargeFile",
            "folderId": folder_id,
            "fileName": file_name,
        }
        body = self._send(
            data=form,
            files={"file": (file_name, content, content_type or "application/octet-stream")},
        )
        if body.get("ok") is False:
            raise UpstreamError(body.get("error") or "Error subiendo archivo", status_code=502)
        return self._validate(UploadResult, body, body)

    def create_client_folder(self) -> str:
        body = self._send(json={})
        if not body.get("ok"):
            raise UpstreamError(body.get("error") or "Error desconocido del App Script", status_code=502)
        folder_url = body.get("folderUrl")
        if not folder_url:
            raise MalformedResponseError(raw=str(body))
        return folder_url
