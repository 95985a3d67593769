# schemas/fhir_models.py
"""
Minimal FHIR R4 Bundle models.

Only the fields the loader reads or writes are declared; everything else
in a resource or entry is kept as-is (``extra="allow"``) so the bundle is
sent to the server exactly as the converter produced it.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class BundleEntryRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    method: str
    url: str


class BundleEntryResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None
    location: Optional[str] = None
    outcome: Optional[Dict[str, Any]] = None


class BundleEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    fullUrl: Optional[str] = None
    resource: Optional[Dict[str, Any]] = None
    request: Optional[BundleEntryRequest] = None
    response: Optional[BundleEntryResponse] = None

    @property
    def status(self) -> Optional[str]:
        return self.response.status if self.response else None

    def is_success(self) -> bool:
        """2xx status; a missing response or status counts as a failure."""
        return bool(self.status and self.status.startswith("2"))


class Bundle(BaseModel):
    model_config = ConfigDict(extra="allow")

    resourceType: str = "Bundle"
    type: Optional[str] = None
    entry: List[BundleEntry] = []

    @field_validator("entry", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_fhir(self) -> Dict[str, Any]:
        """JSON-ready dict without the fields the loader left unset."""
        return self.model_dump(mode="json", exclude_none=True)
