"""
Error taxonomy for the EDC consumer workflow.

Every failure that ends a workflow run is an ``EDCWorkflowError`` carrying an
``ErrorKind``; the orchestrator turns it into a single failure record.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    REMOTE_REJECTION = "remote_rejection"
    ASSET_NOT_FOUND = "asset_not_found"
    NEGOTIATION_FAILED = "negotiation_failed"
    TRANSFER_FAILED = "transfer_failed"
    POLLING_TIMEOUT = "polling_timeout"
    DATA_FETCH_FAILED = "data_fetch_failed"
    TRANSPORT = "transport"


class EDCWorkflowError(RuntimeError):
    """Base class for errors that abort a workflow run."""

    kind: ErrorKind = ErrorKind.TRANSPORT


class EDCRequestRejectedError(EDCWorkflowError):
    """Raised when the management API answers a create/query call with a non-success status."""

    kind = ErrorKind.REMOTE_REJECTION

    def __init__(self, message: str, status_code: int, body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AssetNotFoundError(EDCWorkflowError):
    """Raised when no catalog dataset matches the requested asset."""

    kind = ErrorKind.ASSET_NOT_FOUND

    def __init__(self, asset_id: str, available_ids: Sequence[str] = ()) -> None:
        message = f"Asset not found in catalog: {asset_id}"
        if available_ids:
            message += f". Available assets: {', '.join(available_ids)}"
        super().__init__(message)
        self.asset_id = asset_id
        self.available_ids = list(available_ids)


class ProcessFailedError(EDCWorkflowError):
    """Raised when a negotiation or transfer process cannot succeed."""

    def __init__(self, process: str, state: str | None, message: str | None = None) -> None:
        super().__init__(message or f"{process} failed with state: {state}")
        self.process = process
        self.state = state


class NegotiationFailedError(ProcessFailedError):
    kind = ErrorKind.NEGOTIATION_FAILED

    def __init__(self, state: str | None, message: str | None = None) -> None:
        super().__init__("Contract negotiation", state, message)


class TransferFailedError(ProcessFailedError):
    kind = ErrorKind.TRANSFER_FAILED

    def __init__(self, state: str | None, message: str | None = None) -> None:
        super().__init__("Transfer", state, message)


class MissingDataAddressError(TransferFailedError):
    """Raised when a transfer reports a ready state without a usable data address."""

    def __init__(self, transfer_id: str, state: str) -> None:
        super().__init__(
            state,
            f"Transfer {transfer_id} reached state {state} without a data address",
        )
        self.transfer_id = transfer_id


class PollingTimeoutError(EDCWorkflowError):
    """Raised when a process never reaches a terminal state within the attempt budget."""

    kind = ErrorKind.POLLING_TIMEOUT

    def __init__(self, process: str, attempts: int, last_state: str | None = None) -> None:
        message = f"{process} timeout after {attempts} attempts"
        if last_state:
            message += f" (last state: {last_state})"
        super().__init__(message)
        self.process = process
        self.attempts = attempts
        self.last_state = last_state


class DataFetchError(EDCWorkflowError):
    """Raised when the data-plane endpoint does not return the payload."""

    kind = ErrorKind.DATA_FETCH_FAILED

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(
            f"Failed to fetch data from endpoint. Status: {status_code}, Body: {body}"
        )
        self.status_code = status_code
        self.body = body
