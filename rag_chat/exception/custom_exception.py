import sys
import traceback
from typing import Optional


class RagChatException(Exception):
    """
    Base exception for the chat backend.

    Keeps the file/line where the wrapped cause was raised so a single log line
    is enough to locate a failure inside the ingestion or chat pipelines.
    """

    status_code: int = 500

    def __init__(self, error_message: object, error_details: Optional[object] = None):
        self.error_message = str(error_message)

        # error_details may be an exception instance or the `sys` module
        if isinstance(error_details, BaseException):
            exc_tb = error_details.__traceback__
        elif error_details is sys:
            _, _, exc_tb = sys.exc_info()
        else:
            exc_tb = None

        # walk to the innermost frame, that is where the error actually happened
        while exc_tb is not None and exc_tb.tb_next is not None:
            exc_tb = exc_tb.tb_next

        self.file_name = exc_tb.tb_frame.f_code.co_filename if exc_tb else None
        self.lineno = exc_tb.tb_lineno if exc_tb else None
        self.cause = error_details if isinstance(error_details, BaseException) else None
        self.traceback_str = (
            "".join(traceback.format_tb(error_details.__traceback__))
            if isinstance(error_details, BaseException)
            else ""
        )
        super().__init__(self.error_message)

    def __str__(self) -> str:
        return self.error_message

    def describe(self) -> str:
        if self.file_name:
            return f"{self.error_message} [file={self.file_name} line={self.lineno}]"
        return self.error_message


class Unauthorized(RagChatException):
    status_code = 401


class NotFound(RagChatException):
    status_code = 404


class InvalidInput(RagChatException):
    status_code = 400


class InvalidStatusTransition(RagChatException):
    status_code = 409


class UnsupportedFileType(RagChatException):
    status_code = 415


class UnsupportedOperation(RagChatException):
    status_code = 422


class FetchError(RagChatException):
    status_code = 502


class ExtractionError(RagChatException):
    status_code = 422


class GenerationError(RagChatException):
    status_code = 502


class MemoryStoreError(RagChatException):
    status_code = 502


class StorageError(RagChatException):
    status_code = 500


class VectorNotFoundError(StorageError):
    """Raised by a vector index when none of the requested ids exist."""

    status_code = 404
