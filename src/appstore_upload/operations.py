"""
Upload operation descriptors for App Store Connect asset uploads.

When an asset (screenshot, achievement image, ...) is reserved, App Store
Connect answers with a list of upload operations. Each one names a byte
range of the local file and the pre-signed destination it must be sent to.
This module models those descriptors and turns them into HTTP requests.

See:
    https://developer.apple.com/documentation/appstoreconnectapi/uploadoperation
    https://developer.apple.com/documentation/appstoreconnectapi/uploading_assets_to_app_store_connect
"""

import io
import threading
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import requests
from requests.structures import CaseInsensitiveDict

from .exceptions import (
    ChunkReadError,
    InvalidUploadRequestError,
    MissingChunkBoundsError,
    MissingUploadDestinationError,
)


@dataclass(frozen=True)
class UploadOperationHeader:
    """One header App Store Connect wants attached to an upload request."""

    name: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class UploadOperation:
    """
    One part of a multi-part asset upload.

    Args:
        offset: Byte offset into the asset where this part begins
        length: Number of bytes in this part
        method: HTTP method to send the part with (usually PUT)
        url: Pre-signed destination URL
        headers: Ordered request headers for the part
    """

    offset: Optional[int] = None
    length: Optional[int] = None
    method: Optional[str] = None
    url: Optional[str] = None
    headers: Tuple[UploadOperationHeader, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadOperation":
        """Build an operation from an ``uploadOperations`` entry of a reservation."""
        headers = tuple(
            UploadOperationHeader(name=h.get("name"), value=h.get("value"))
            for h in data.get("requestHeaders") or []
        )
        return cls(
            offset=data.get("offset"),
            length=data.get("length"),
            method=data.get("method"),
            url=data.get("url"),
            headers=headers,
        )

    def __str__(self) -> str:
        if self.offset is None or self.length is None:
            window = "[?]"
        else:
            window = f"[{self.offset}:{self.offset + self.length}]"
        return f"{self.method or '?'} {self.url or '?'} {window}"

    def chunk(self, source: BinaryIO, lock: Optional[threading.Lock] = None) -> bytes:
        """
        Read this operation's byte window from the source.

        Args:
            source: Seekable, readable binary stream holding the whole asset
            lock: Optional lock held around the seek and read when the
                source is shared between threads

        Returns:
            Exactly ``length`` bytes starting at ``offset``

        Raises:
            MissingChunkBoundsError: If offset or length is missing
            ChunkReadError: If the source cannot be read or holds fewer bytes
        """
        if self.offset is None or self.length is None:
            raise MissingChunkBoundsError()

        if self.offset < 0 or self.length < 0:
            raise ChunkReadError(
                f"Invalid chunk bounds: offset={self.offset}, length={self.length}"
            )

        if lock is None:
            return self._read_window(source)

        with lock:
            return self._read_window(source)

    def _read_window(self, source: BinaryIO) -> bytes:
        buffer = bytearray()
        try:
            source.seek(self.offset, io.SEEK_SET)
            # read() may legitimately return fewer bytes than asked for
            while len(buffer) < self.length:
                data = source.read(self.length - len(buffer))
                if not data:
                    break
                buffer.extend(data)
        except (OSError, ValueError) as e:
            raise ChunkReadError(
                f"Failed to read {self.length} bytes at offset {self.offset}: {e}"
            ) from e

        if len(buffer) < self.length:
            raise ChunkReadError(
                f"Expected {self.length} bytes at offset {self.offset}, "
                f"source only had {len(buffer)}"
            )

        return bytes(buffer)

    def request(self, data: bytes) -> requests.PreparedRequest:
        """
        Build the HTTP request that delivers ``data`` for this operation.

        No authorization header is attached, the destination URL is
        pre-signed.

        Raises:
            MissingUploadDestinationError: If method or url is missing
            InvalidUploadRequestError: If the url or a header is malformed
        """
        if self.method is None or self.url is None:
            raise MissingUploadDestinationError()

        headers: CaseInsensitiveDict = CaseInsensitiveDict()
        for header in self.headers:
            if header.name is None or header.value is None:
                continue
            if header.name in headers:
                headers[header.name] = f"{headers[header.name]}, {header.value}"
            else:
                headers[header.name] = header.value

        try:
            prepared = requests.Request(
                method=self.method, url=self.url, headers=headers, data=data
            ).prepare()
        except requests.exceptions.RequestException as e:
            raise InvalidUploadRequestError(
                f"Could not build request for {self}: {e}"
            ) from e

        # The CDN rejects chunked bodies, so the length is always explicit
        prepared.body = data
        prepared.headers["Content-Length"] = str(len(data))

        return prepared


def parse_upload_operations(resource: Dict[str, Any]) -> List[UploadOperation]:
    """
    Extract the upload operations from a reservation response.

    Accepts either the full response (``{"data": {...}}``) or the
    resource object itself.

    Args:
        resource: Reservation response or resource dictionary

    Returns:
        List of upload operations in the order the server sent them
    """
    if not resource:
        return []

    data = resource.get("data", resource)
    attributes = data.get("attributes") or {}
    return [
        UploadOperation.from_dict(op)
        for op in attributes.get("uploadOperations") or []
    ]
