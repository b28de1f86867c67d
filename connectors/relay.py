"""
Upload relay.

Small files are posted as multipart to a Zapier catch hook which writes them
into the target Drive folder. Larger files go straight to the Drive side.
"""
import httpx

from connectors.base import UpstreamError
from app.logging_config import get_logger

logger = get_logger(__name__)


class UploadRelay:
    def __init__(self, webhook_url: str, timeout: float = 120.0, client: httpx.Client | None = None):
        if not webhook_url:
            raise ValueError("RELAY_WEBHOOK_URL is required for relay uploads")
        self.webhook_url = webhook_url
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def send(
        self,
        file_name: str,
        content: bytes,
        content_type: str | None,
        folder_id: str,
        folder_name: str,
        document_type: str,
        client_name: str = "",
        client_id: str = "",
    ) -> str:
        """
        Relay one file. Returns the hook's response text.

        Raises:
            UpstreamError: transport failure or non-2xx from the hook.
        """
        size_mb = len(content) / 1024 / 1024
        try:
            response = self._client.post(
                self.webhook_url,
                data={
                    "folderId": folder_id,
                    "folderName": folder_name,
                    "documentType": document_type,
                    "clientName": client_name,
                    "clientId": client_id,
                    "fileName": file_name,
                },
                files={"file": (file_name, content, content_type or "application/octet-stream")},
            )
        except httpx.HTTPError as e:
            logger.error(f"relay unreachable | file={file_name} | err={type(e).__name__}: {e}")
            raise UpstreamError("No se pudo conectar con el servicio de carga", status_code=502) from e

        if response.status_code == 413:
            raise UpstreamError(
                f"Archivo demasiado grande para el servicio de carga ({size_mb:.2f}MB).",
                status_code=413,
            )
        if not response.is_success:
            logger.error(f"relay error | status={response.status_code} | body={response.text[:500]}")
            raise UpstreamError(
                f"Error en Zapier: {response.status_code} {response.reason_phrase}",
                status_code=502,
            )

        logger.info(f"relay ok | file={file_name} | mb={size_mb:.2f} | folder={folder_id}")
        return response.text
