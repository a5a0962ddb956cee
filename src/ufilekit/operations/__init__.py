"""Typed UFile API operations."""

from ufilekit.operations.base import HttpCall, Operation
from ufilekit.operations.multipart import (
    AbortMultipartOperation,
    AbortMultipartRequest,
    FinishMultipartOperation,
    FinishMultipartRequest,
    InitMultipartOperation,
    InitMultipartRequest,
    UploadPartOperation,
    UploadPartRequest,
)
from ufilekit.operations.object import (
    HeadObjectOperation,
    HeadObjectRequest,
    RangeGetOperation,
    RangeGetRequest,
)

__all__ = [
    "AbortMultipartOperation",
    "AbortMultipartRequest",
    "FinishMultipartOperation",
    "FinishMultipartRequest",
    "HeadObjectOperation",
    "HeadObjectRequest",
    "HttpCall",
    "InitMultipartOperation",
    "InitMultipartRequest",
    "Operation",
    "RangeGetOperation",
    "RangeGetRequest",
    "UploadPartOperation",
    "UploadPartRequest",
]
