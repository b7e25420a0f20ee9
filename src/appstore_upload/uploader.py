"""
Concurrent multi-part asset uploads.

This module sends every part of a reserved asset to its pre-signed
destination in parallel and collects the outcome of each part, so a caller
knows whether it is safe to commit the asset.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import BinaryIO, Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd
import requests
from ratelimit import limits, sleep_and_retry

from .exceptions import (
    UploadCancelledError,
    UploadError,
    UploadFailedError,
    UploadOperationError,
    UploadResponseError,
    UploadTransportError,
    ValidationError,
)
from .operations import UploadOperation

logger = logging.getLogger(__name__)


class UploadResult:
    """
    Outcome of uploading every part of one asset.

    Args:
        operations: The operations that were attempted
        errors: One entry per failed operation, in the order failures were seen
    """

    def __init__(
        self,
        operations: List[UploadOperation],
        errors: Optional[List[UploadOperationError]] = None,
    ):
        self.operations = operations
        self.errors = errors or []

    def __repr__(self) -> str:
        return (
            f"UploadResult(operations={len(self.operations)}, "
            f"errors={len(self.errors)})"
        )

    @property
    def succeeded(self) -> bool:
        """True when every part was accepted."""
        return not self.errors

    @property
    def first_error(self) -> Optional[UploadOperationError]:
        return self.errors[0] if self.errors else None

    @property
    def failed_operations(self) -> List[UploadOperation]:
        return [error.operation for error in self.errors]

    def raise_for_errors(self) -> None:
        """Raise UploadFailedError if any part failed."""
        if self.errors:
            raise UploadFailedError(self.errors)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Tabulate the outcome of each operation.

        Returns:
            DataFrame with one row per operation and the columns
            offset, length, method, url, succeeded and error
        """
        failures = {
            error.index: str(error) for error in self.errors if error.index is not None
        }
        rows = [
            {
                "offset": op.offset,
                "length": op.length,
                "method": op.method,
                "url": op.url,
                "succeeded": index not in failures,
                "error": failures.get(index),
            }
            for index, op in enumerate(self.operations)
        ]
        return pd.DataFrame(
            rows, columns=["offset", "length", "method", "url", "succeeded", "error"]
        )


class AssetUploader:
    """
    Uploads the parts of an asset concurrently over one plain HTTP session.

    The destination URLs are pre-signed, so the session never carries
    App Store Connect credentials.

    Args:
        session: Optional requests session to reuse (one is created otherwise)
        max_workers: Maximum number of parts in flight (defaults to one
            thread per part)
        max_calls_per_period: Optional cap on requests started per period
        period: Length of the rate limit window in seconds
        request_timeout: Timeout in seconds for each part's request
    """

    REQUEST_TIMEOUT = 60
    POLL_INTERVAL = 0.1

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        max_workers: Optional[int] = None,
        max_calls_per_period: Optional[int] = None,
        period: float = 1.0,
        request_timeout: Optional[float] = None,
    ):
        if max_workers is not None and max_workers <= 0:
            raise ValidationError("max_workers must be positive")
        if max_calls_per_period is not None and max_calls_per_period <= 0:
            raise ValidationError("max_calls_per_period must be positive")
        if period <= 0:
            raise ValidationError("period must be positive")

        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        self.max_workers = max_workers
        self.request_timeout = request_timeout or self.REQUEST_TIMEOUT

        # Each part takes a slot right before it is sent
        if max_calls_per_period:
            self._throttle = sleep_and_retry(
                limits(calls=max_calls_per_period, period=period)(lambda: None)
            )
        else:
            self._throttle = lambda: None

    def __enter__(self) -> "AssetUploader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP session if this uploader created it."""
        if self._owns_session:
            self.session.close()

    def upload(
        self,
        operations: Iterable[UploadOperation],
        source: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> UploadResult:
        """
        Upload every part of an asset.

        Each operation's bytes are read from ``source`` up front, one after
        the other, then all requests are sent concurrently. A failing part
        never stops the others.

        Args:
            operations: Upload operations from the asset reservation
            source: Open, seekable binary stream of the whole asset. It is
                borrowed, never closed.
            cancel_event: Optional event that aborts the upload when set
            timeout: Optional deadline in seconds for the whole upload

        Returns:
            UploadResult listing every failed part
        """
        operations = list(operations)
        errors: List[UploadOperationError] = []
        deadline = time.monotonic() + timeout if timeout is not None else None
        aborted = threading.Event()

        def is_cancelled() -> bool:
            if aborted.is_set():
                return True
            if cancel_event is not None and cancel_event.is_set():
                return True
            return deadline is not None and time.monotonic() >= deadline

        logger.info(f"upload: Uploading {len(operations)} parts")

        reason = self._cancellation_reason(cancel_event, deadline)
        if reason:
            logger.warning(f"upload: {reason}, no parts were read")
            errors = [
                UploadOperationError(operation, UploadCancelledError(reason), index)
                for index, operation in enumerate(operations)
            ]
            return UploadResult(operations, errors)

        chunks = []
        for index, operation in enumerate(operations):
            try:
                chunks.append((index, operation, operation.chunk(source)))
            except UploadError as e:
                logger.warning(f"upload: Could not read part {operation}: {e}")
                errors.append(UploadOperationError(operation, e, index))

        if not chunks:
            return UploadResult(operations, errors)

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers or len(chunks),
            thread_name_prefix="asset-upload",
        )
        futures: Dict[Future, Tuple[int, UploadOperation]] = {
            executor.submit(self._upload_chunk, operation, data, is_cancelled): (
                index,
                operation,
            )
            for index, operation, data in chunks
        }
        abandoned = False

        try:
            pending = set(futures)
            while pending:
                reason = self._cancellation_reason(cancel_event, deadline)
                if reason:
                    aborted.set()
                    abandoned = True
                    logger.warning(
                        f"upload: {reason}, abandoning {len(pending)} parts"
                    )
                    for future in pending:
                        future.cancel()
                        index, operation = futures[future]
                        errors.append(
                            UploadOperationError(
                                operation, UploadCancelledError(reason), index
                            )
                        )
                    break

                done, pending = wait(
                    pending,
                    timeout=self._wait_interval(cancel_event, deadline),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    index, operation = futures[future]
                    try:
                        future.result()
                    except UploadError as e:
                        logger.warning(f"upload: Part {operation} failed: {e}")
                        errors.append(UploadOperationError(operation, e, index))
                    except Exception as e:
                        logger.exception(f"upload: Part {operation} raised: {e}")
                        errors.append(UploadOperationError(operation, e, index))
        finally:
            executor.shutdown(wait=not abandoned, cancel_futures=True)

        if errors:
            logger.warning(
                f"upload: {len(errors)} of {len(operations)} parts failed"
            )
        else:
            logger.info(f"upload: All {len(operations)} parts uploaded")

        return UploadResult(operations, errors)

    def _cancellation_reason(
        self, cancel_event: Optional[threading.Event], deadline: Optional[float]
    ) -> Optional[str]:
        if cancel_event is not None and cancel_event.is_set():
            return "upload cancelled"
        if deadline is not None and time.monotonic() >= deadline:
            return "upload deadline exceeded"
        return None

    def _wait_interval(
        self, cancel_event: Optional[threading.Event], deadline: Optional[float]
    ) -> Optional[float]:
        """How long to block for the next completion before re-checking."""
        interval = self.POLL_INTERVAL if cancel_event is not None else None
        if deadline is not None:
            remaining = max(deadline - time.monotonic(), 0)
            interval = remaining if interval is None else min(interval, remaining)
        return interval

    def _upload_chunk(
        self,
        operation: UploadOperation,
        data: bytes,
        is_cancelled: Callable[[], bool],
    ) -> None:
        """Send one part and check the destination accepted it."""
        if is_cancelled():
            raise UploadCancelledError("upload cancelled before the part was sent")

        request = operation.request(data)
        self._throttle()
        if is_cancelled():
            raise UploadCancelledError(
                "upload cancelled while waiting for a rate limit slot"
            )
        response = self._send(request)

        if not 200 <= response.status_code < 300:
            raise UploadResponseError(
                response.status_code, response.reason or "", response.text
            )

        logger.info(
            f"_upload_chunk: Part {operation} accepted - "
            f"status={response.status_code}"
        )

    def _send(self, request: requests.PreparedRequest) -> requests.Response:
        try:
            return self.session.send(request, timeout=self.request_timeout)
        except requests.exceptions.RequestException as e:
            raise UploadTransportError(f"Request failed: {e}") from e
