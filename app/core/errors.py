"""Error taxonomy shared by the catalog services.

Every error is recoverable: the caller may retry the same operation. Nothing
here is retried automatically.
"""
from __future__ import annotations


class CatalogError(Exception):
    code = "catalog_error"

    def __init__(self, message: str, *, code: str | None = None, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field
        if code:
            self.code = code

    def to_dict(self) -> dict:
        out = {"code": self.code, "message": self.message}
        if self.field:
            out["field"] = self.field
        return out


class ValidationError(CatalogError):
    """Bad input, reported next to the offending field. Raised before any network call."""

    code = "validation_error"


class UploadError(CatalogError):
    """Object store failure while uploading. No record was created."""

    code = "upload_failed"


class PersistenceError(CatalogError):
    code = "persistence_error"


class StoreDivergenceError(PersistenceError):
    """The image object is gone but the record still exists."""

    code = "store_divergence"
