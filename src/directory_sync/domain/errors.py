"""Error hierarchy shared by the reconciliation core and its adapters.

Two classes of failure drive the control flow of a run:

- ``OperationalError``: bad or incomplete upstream data, missing authority, a record
  that is gone, a rejected write. The affected unit (one organization or one source)
  is skipped with a warning and the run continues.
- ``InfrastructureError``: connectivity failures towards the Registry or the Query
  Directory, responses of an unexpected shape, violated invariants. These abort the
  whole run after the state accumulated so far has been persisted.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by directory-sync."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details

    def describe(self) -> str:
        message = str(self)
        return f"{message}\n{self.details}" if self.details else message


class OperationalError(SyncError):
    """Recoverable failure scoped to a single organization or source."""


class NotAuthoritativeError(OperationalError):
    """The Registry designates no admin directory for an organization."""


class ResourceNotFoundError(OperationalError):
    """A requested resource does not exist (anymore)."""


class ConflictError(OperationalError):
    """A write was refused because of concurrent modification."""


class RejectedRequestError(OperationalError):
    """A FHIR server refused a request as invalid."""

    def __init__(
        self, message: str, *, status_code: int | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class SourceUnavailableError(OperationalError):
    """An admin directory could not be reached or failed server-side."""


class OwnershipCycleError(OperationalError):
    """Ownership references of a batch do not form a forest."""


class IncompleteDataError(OperationalError):
    """A payload lacks data required to process it."""


class InfrastructureError(SyncError):
    """Failure that makes continuing the run unsafe."""


class UpstreamConnectionError(InfrastructureError):
    """A FHIR server could not be reached after the transport gave up retrying."""


class UpstreamServerError(InfrastructureError):
    """A FHIR server answered with a 5xx status."""

    def __init__(
        self, message: str, *, status_code: int | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class MalformedResponseError(InfrastructureError):
    """A FHIR server answered with an unexpected media type or payload shape."""


class InvariantViolationError(InfrastructureError):
    """The Query Directory holds data that breaks a synchronisation invariant."""


class MissingCursorError(SyncError):
    """An incremental run was requested without any cursor to start from."""


class OrchestratorBusyError(SyncError):
    """The orchestrator was asked to start a run while another one is active."""
