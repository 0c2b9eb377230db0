"""
Custom exceptions for the CloudSearch loader.

Only UnsplittableBatchError and an escalated TransportFault stop a run;
application-level rejections are reported and the run continues.
"""

from typing import List, Optional


class LoaderError(Exception):
    """Base error for the loader."""

    pass


class UnsplittableBatchError(LoaderError):
    """A batch cannot be brought under the byte ceiling by any split."""

    def __init__(self, size: int, ceiling: int, document_id: Optional[str] = None):
        self.size = size
        self.ceiling = ceiling
        self.document_id = document_id
        where = f" (document {document_id!r})" if document_id else ""
        super().__init__(f"Batch size {size} exceeds max allowed size {ceiling}{where}")


class ApplicationUploadError(LoaderError):
    """The endpoint accepted the request but reported status=error."""

    def __init__(self, http_status_code: int, warnings: List[str]):
        self.http_status_code = http_status_code
        self.warnings = list(warnings)
        super().__init__(
            f"Upload failed with HTTP {http_status_code} ({len(self.warnings)} warnings)"
        )


class TransportFault(LoaderError):
    """Network or protocol failure talking to the document endpoint."""

    def __init__(self, message: str, persisted_to: Optional[str] = None):
        self.persisted_to = persisted_to
        super().__init__(message)


class PersistenceFailure(LoaderError):
    """The failure sink could not write a payload. Logged, never raised to callers."""

    pass


def map_transport_error(e: Exception) -> TransportFault:
    """Wrap a botocore/socket level exception into a TransportFault."""
    from botocore.exceptions import BotoCoreError, ClientError

    if isinstance(e, TransportFault):
        return e
    if isinstance(e, ClientError):
        err = e.response.get("Error", {})
        code = err.get("Code", "Unknown")
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return TransportFault(f"{code} (HTTP {status}): {err.get('Message', str(e))}")
    if isinstance(e, (BotoCoreError, OSError)):
        return TransportFault(f"{type(e).__name__}: {e}")
    return TransportFault(str(e))
