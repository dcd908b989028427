from __future__ import annotations


class AppError(Exception):
    pass


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class StorageError(PersistenceError):
    pass


class StorageQuotaExceededError(StorageError):
    pass


class ExternalServiceError(InfraError):
    pass


class RemoteWriteError(ExternalServiceError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteRejectedError(RemoteWriteError):
    pass


class RemoteAuthError(RemoteWriteError):
    pass


class TransientExternalError(RemoteWriteError):
    pass


class RemoteUnavailableError(TransientExternalError):
    pass


class ReplayIncompleteError(AppError):
    """Some queued entries could not be delivered during a replay pass."""

    def __init__(self, failed: int, delivered: int) -> None:
        super().__init__(f"{failed} queued entries still pending after replay ({delivered} delivered)")
        self.failed = failed
        self.delivered = delivered
