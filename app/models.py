from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from connectors.base import DOCUMENT_TYPE_VALUES


class ApiModel(BaseModel):
    """Requests arrive camelCase from the dashboard UI."""
    model_config = ConfigDict(populate_by_name=True)


class ClientQuery(ApiModel):
    client_name: str | None = Field(default=None, alias="clientName")
    client_id: str | None = Field(default=None, alias="clientId")

    def is_empty(self) -> bool:
        return not (self.client_name or "").strip() and not (self.client_id or "").strip()


class FindFolderRequest(ClientQuery):
    document_type: str = Field(alias="documentType")

    def has_valid_type(self) -> bool:
        return self.document_type in DOCUMENT_TYPE_VALUES


class SyncRequest(ApiModel):
    action: Literal["sync", "status"] = "sync"


class Envelope(BaseModel):
    """Response body for every JSON route."""
    success: bool
    data: Any | None = None
    message: str | None = None
    error: str | None = None
    meta: dict | None = None
