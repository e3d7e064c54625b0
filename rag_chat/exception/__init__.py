from .custom_exception import (
    ExtractionError,
    FetchError,
    GenerationError,
    InvalidInput,
    InvalidStatusTransition,
    MemoryStoreError,
    NotFound,
    RagChatException,
    StorageError,
    Unauthorized,
    UnsupportedFileType,
    UnsupportedOperation,
    VectorNotFoundError,
)

__all__ = [
    "ExtractionError",
    "FetchError",
    "GenerationError",
    "InvalidInput",
    "InvalidStatusTransition",
    "MemoryStoreError",
    "NotFound",
    "RagChatException",
    "StorageError",
    "Unauthorized",
    "UnsupportedFileType",
    "UnsupportedOperation",
    "VectorNotFoundError",
]
