"""
Time Source - Reference Timestamp Retrieval

Queries the reference node's timestamp endpoint once per supervisor cycle.
The call is bounded by a total deadline and always resolves to a single
outcome: either a reference time or an error description. Connectivity
loss is never silently treated as "in sync".
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from .constants import NetworkConstants, Timeouts
from .timestamps import format_timestamp, parse_timestamp
from .utils.error_handling import ErrorKind, SampleError, get_error_aggregator, log_network_error

logger = logging.getLogger(__name__)

SAMPLE_OPERATION = "time_source.sample"

# Reads return as soon as one byte arrives, so the deadline is checked
# between bytes of a slow body. Payloads are tens of bytes.
_READ_CHUNK_BYTES = 1


@dataclass(frozen=True)
class TimeSample:
    """One observation of local vs reference time. Ephemeral."""
    local_time: float
    reference_time: Optional[float] = None
    error: Optional[str] = None
    latency: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.reference_time is not None

    def to_dict(self) -> Dict:
        return {
            'local_time': self.local_time,
            'local_time_iso': format_timestamp(self.local_time),
            'reference_time': self.reference_time,
            'reference_time_iso': (
                format_timestamp(self.reference_time) if self.reference_time is not None else None
            ),
            'error': self.error,
            'latency': round(self.latency, 3),
        }


class TimeSource:
    """
    Fetches the reference time over HTTP.

    Example:
        source = TimeSource("http://localhost:51823/api/timestamp")
        sample = source.sample()
        if sample.ok:
            print(sample.reference_time)
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = Timeouts.HTTP_REQUEST,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._clock = clock

    def fetch_reference_time(self) -> float:
        """
        Perform one request and return the reference time in epoch seconds.

        `timeout` applies to connecting and to each read, and is also a
        deadline for the response as a whole. The body is read in small
        chunks so a peer that trickles bytes cannot hold the cycle past it.

        Raises:
            SampleError: on transport failure, timeout, non-2xx status,
                oversized body or malformed payload
        """
        deadline = time.monotonic() + self.timeout
        try:
            response = self._session.get(
                self.api_url,
                timeout=self.timeout,
                headers={'Accept': 'application/json'},
                stream=True,
            )
        except requests.Timeout as e:
            raise SampleError(f"request timed out after {self.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise SampleError(f"request failed: {e}") from e

        try:
            if not 200 <= response.status_code < 300:
                raise SampleError(f"unexpected status {response.status_code} from {self.api_url}")
            body = self._read_body(response, deadline)
        finally:
            response.close()

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise SampleError(f"response is not JSON: {e}") from e

        if not isinstance(payload, dict) or 'timestamp' not in payload:
            raise SampleError("response has no 'timestamp' field")

        try:
            return parse_timestamp(payload['timestamp'])
        except ValueError as e:
            raise SampleError(f"malformed timestamp {payload['timestamp']!r}: {e}") from e

    def _read_body(self, response, deadline: float) -> bytes:
        body = bytearray()
        try:
            for chunk in response.iter_content(chunk_size=_READ_CHUNK_BYTES):
                body.extend(chunk)
                if len(body) > NetworkConstants.MAX_RESPONSE_BYTES:
                    raise SampleError(
                        f"response exceeds {NetworkConstants.MAX_RESPONSE_BYTES} bytes"
                    )
                if time.monotonic() > deadline:
                    raise SampleError(f"request timed out after {self.timeout}s: body incomplete")
        except requests.Timeout as e:
            raise SampleError(f"request timed out after {self.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise SampleError(f"request failed: {e}") from e
        return bytes(body)

    def sample(self) -> TimeSample:
        """Take one sample. Never raises; failures are carried in the sample."""
        started = time.monotonic()
        try:
            reference_time = self.fetch_reference_time()
        except SampleError as e:
            latency = time.monotonic() - started
            log_network_error(e, SAMPLE_OPERATION, url=self.api_url)
            return TimeSample(local_time=self._clock(), error=str(e), latency=latency)

        latency = time.monotonic() - started
        failed = get_error_aggregator().resolve(ErrorKind.SAMPLE, SAMPLE_OPERATION)
        if failed:
            logger.info(f"Reference reachable again after {failed} failed sample(s)")
        logger.debug(f"Reference time {format_timestamp(reference_time)} ({latency * 1000:.0f} ms round trip)")
        return TimeSample(
            local_time=self._clock(),
            reference_time=reference_time,
            latency=latency,
        )

    def close(self) -> None:
        self._session.close()
