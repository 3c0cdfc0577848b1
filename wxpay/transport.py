# ============================================================================
# WxPay Gateway Client v1.0.0
# Gateway Transport - HTTPS POST with Optional Mutual TLS
# ============================================================================
#
# Purpose: Sends one XML envelope and returns the raw response body
#
# Behaviour:
#   - One requests.Session per call, closed afterwards
#   - Client certificate attached when a TlsIdentity is supplied
#   - Deadline covers connect, send and receive: the exchange runs on a
#     worker thread and the caller waits at most the remaining time
#   - No retries; failures surface as TransportError
#
# Error Codes:
#   - WXPAY-NET-001: DNS, connect, TLS, timeout, deadline or non-2xx failure
#
# ============================================================================

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Dict, Optional

import requests
from requests.exceptions import (
    ConnectionError as RequestsConnectionError,
    RequestException,
    SSLError,
    Timeout,
)

from wxpay.config import TlsIdentity
from wxpay.errors import TransportError, WxPayErrorCode

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/xml; charset=utf-8"

# Bytes read per iteration while watching the deadline
CHUNK_SIZE = 8192


class GatewayTransport:
    """
    Single-shot HTTPS transport for XML envelopes.

    Holds no state, so one instance may be shared across threads.

    Example Usage:
        transport = GatewayTransport()
        raw = transport.post(url, body, credential.tls_identity, credential.timeout)
    """

    def post(
        self,
        url: str,
        xml_body: bytes,
        tls_identity: Optional[TlsIdentity] = None,
        timeout: float = 6.0,
        correlation_id: Optional[str] = None,
    ) -> bytes:
        """
        POST ``xml_body`` to ``url`` and return the response body.

        Args:
            url: Gateway endpoint
            xml_body: Serialized envelope
            tls_identity: Client certificate for mutual TLS (optional)
            timeout: Whole-call deadline in seconds
            correlation_id: Audit trail identifier

        Returns:
            Raw response bytes for any 2xx status

        Raises:
            TransportError: On any transport-level failure
        """
        deadline = time.monotonic() + timeout

        request_kwargs = {
            'data': xml_body,
            'headers': {'Content-Type': CONTENT_TYPE},
            'timeout': timeout,
            'stream': True,
        }
        if tls_identity is not None:
            request_kwargs['cert'] = tls_identity.cert
            request_kwargs['verify'] = tls_identity.verify

        logger.debug(
            f"[WXPAY-NET] POST {url} | "
            f"bytes={len(xml_body)} | mutual_tls={tls_identity is not None} | "
            f"timeout={timeout} | correlation_id={correlation_id}"
        )

        # Live session/response, so an expired call can be torn down
        in_flight: Dict[str, Any] = {}
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wxpay_post")
        try:
            future = executor.submit(
                self._exchange, url, request_kwargs, deadline, in_flight, correlation_id
            )
            done, _ = wait([future], timeout=max(deadline - time.monotonic(), 0.0))
            if not done:
                self._abort(in_flight)
                logger.error(
                    f"[{WxPayErrorCode.TRANSPORT_FAILED}] Deadline exceeded | "
                    f"url={url} | timeout={timeout} | correlation_id={correlation_id}"
                )
                raise TransportError(
                    f"Deadline exceeded after {timeout}s calling {url}", url=url
                )
            body = future.result()
        except Timeout as e:
            logger.error(
                f"[{WxPayErrorCode.TRANSPORT_FAILED}] Timeout | "
                f"url={url} | timeout={timeout} | correlation_id={correlation_id}"
            )
            raise TransportError(f"Timeout after {timeout}s calling {url}: {e}", url=url) from e
        except SSLError as e:
            logger.error(
                f"[{WxPayErrorCode.TRANSPORT_FAILED}] TLS handshake failed | "
                f"url={url} | error={e} | correlation_id={correlation_id}"
            )
            raise TransportError(f"TLS failure calling {url}: {e}", url=url) from e
        except RequestsConnectionError as e:
            logger.error(
                f"[{WxPayErrorCode.TRANSPORT_FAILED}] Connection error | "
                f"url={url} | error={e} | correlation_id={correlation_id}"
            )
            raise TransportError(f"Connection failure calling {url}: {e}", url=url) from e
        except RequestException as e:
            logger.error(
                f"[{WxPayErrorCode.TRANSPORT_FAILED}] Request failed | "
                f"url={url} | error={e} | correlation_id={correlation_id}"
            )
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e
        finally:
            # Never block on a worker stuck past the deadline
            executor.shutdown(wait=False)

        logger.debug(
            f"[WXPAY-NET] Response received | "
            f"url={url} | bytes={len(body)} | correlation_id={correlation_id}"
        )
        return body

    def _exchange(
        self,
        url: str,
        request_kwargs: Dict[str, Any],
        deadline: float,
        in_flight: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> bytes:
        """Worker side: send, check status, read the body."""
        with requests.Session() as session:
            in_flight['session'] = session
            response = session.post(url, **request_kwargs)
            in_flight['response'] = response
            try:
                if not 200 <= response.status_code < 300:
                    logger.error(
                        f"[{WxPayErrorCode.TRANSPORT_FAILED}] HTTP error | "
                        f"url={url} | status={response.status_code} | "
                        f"correlation_id={correlation_id}"
                    )
                    raise TransportError(
                        f"HTTP {response.status_code} from {url}",
                        url=url,
                        status_code=response.status_code,
                    )
                return self._read_within_deadline(response, deadline, url)
            finally:
                response.close()

    @staticmethod
    def _abort(in_flight: Dict[str, Any]) -> None:
        """Close whatever the worker has opened so its next read fails."""
        for name in ('response', 'session'):
            resource = in_flight.get(name)
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as e:
                logger.debug(f"[WXPAY-NET] Close after deadline failed | {name}={e}")

    def _read_within_deadline(
        self,
        response: requests.Response,
        deadline: float,
        url: str
    ) -> bytes:
        """Stream the body, stopping once the monotonic deadline passes."""
        chunks = []
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise TransportError(f"Deadline exceeded reading response from {url}", url=url)
            if chunk:
                chunks.append(chunk)
        if time.monotonic() > deadline:
            raise TransportError(f"Deadline exceeded reading response from {url}", url=url)
        return b''.join(chunks)


__all__ = [
    "CONTENT_TYPE",
    "GatewayTransport",
]
