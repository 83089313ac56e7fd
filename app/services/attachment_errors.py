from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_TYPE = "INVALID_TYPE"
    TOO_LARGE = "TOO_LARGE"
    EMPTY = "EMPTY"
    INVALID_PATH = "INVALID_PATH"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    # Only ever reported on aggregates, never raised.
    PARTIAL_BATCH_FAILURE = "PARTIAL_BATCH_FAILURE"


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TYPE: 415,
    ErrorKind.TOO_LARGE: 413,
    ErrorKind.EMPTY: 400,
    ErrorKind.INVALID_PATH: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.TRANSPORT_FAILURE: 502,
}


class AttachmentError(Exception):
    kind: ErrorKind = ErrorKind.TRANSPORT_FAILURE

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)


class FileNotFoundForUpload(AttachmentError):
    kind = ErrorKind.NOT_FOUND


class InvalidFileType(AttachmentError):
    kind = ErrorKind.INVALID_TYPE


class FileTooLarge(AttachmentError):
    kind = ErrorKind.TOO_LARGE


class EmptyFile(AttachmentError):
    kind = ErrorKind.EMPTY


class Unauthenticated(AttachmentError):
    kind = ErrorKind.UNAUTHENTICATED


class InvalidStoragePath(AttachmentError):
    kind = ErrorKind.INVALID_PATH


class TransportFailure(AttachmentError):
    kind = ErrorKind.TRANSPORT_FAILURE


_ERROR_BY_KIND = {
    ErrorKind.NOT_FOUND: FileNotFoundForUpload,
    ErrorKind.INVALID_TYPE: InvalidFileType,
    ErrorKind.TOO_LARGE: FileTooLarge,
    ErrorKind.EMPTY: EmptyFile,
    ErrorKind.INVALID_PATH: InvalidStoragePath,
    ErrorKind.UNAUTHENTICATED: Unauthenticated,
    ErrorKind.TRANSPORT_FAILURE: TransportFailure,
}


def error_for_kind(kind: ErrorKind, message: str) -> AttachmentError:
    error_cls = _ERROR_BY_KIND.get(kind, AttachmentError)
    return error_cls(message, kind=kind)
