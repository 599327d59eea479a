"""
Failure taxonomy for the drop pipeline.

Every failure an orchestrator reports is one of these. Each carries a
category (stable, machine-readable), an HTTP status the API layer can map
to, and a human-readable cause. Infrastructure exceptions never cross the
orchestrator boundary untranslated.
"""


class DropError(Exception):
    """Base class for all classified pipeline failures."""

    category = "internal_error"
    status_code = 500

    def __init__(self, detail: str = "") -> None:
        self.detail = detail or self.category
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class Unauthenticated(DropError):
    """Credential missing, malformed, invalid or expired."""
    category = "unauthenticated"
    status_code = 401


class MissingCredential(Unauthenticated):
    pass


class MalformedCredential(Unauthenticated):
    pass


class InvalidCredential(Unauthenticated):
    pass


class MissingIdentityClaim(Unauthenticated):
    pass


class CredentialExpired(Unauthenticated):
    pass


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------

class MalformedRequest(DropError):
    category = "malformed_request"
    status_code = 400


class PayloadTooLarge(DropError):
    category = "payload_too_large"
    status_code = 413


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------

class StagingFailed(DropError):
    """The upload could not be written to local disk."""
    category = "staging_failed"
    status_code = 500


class PreviewGenerationFailed(DropError):
    category = "preview_generation_failed"
    status_code = 422


class StorageUploadFailed(DropError):
    category = "storage_upload_failed"
    status_code = 502


class StorageDeleteFailed(DropError):
    category = "storage_delete_failed"
    status_code = 502


class PersistenceFailed(DropError):
    category = "persistence_failed"
    status_code = 500


class CleanupFailed(DropError):
    """A stale local file could not be removed before reuse."""
    category = "cleanup_failed"
    status_code = 500


class IngestTimeout(DropError):
    category = "ingest_timeout"
    status_code = 504


# ---------------------------------------------------------------------------
# Lookup / ownership
# ---------------------------------------------------------------------------

class NotFound(DropError):
    category = "not_found"
    status_code = 404


class Forbidden(DropError):
    category = "forbidden"
    status_code = 403
