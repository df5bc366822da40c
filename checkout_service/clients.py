"""
This module provides the communication client for the external payment processor
used by the checkout flow (REST API over HTTPS).
The client encapsulates protocol logic, response normalization and error handling;
interpreting the result (redirect vs. direct confirmation) is left to the gateway.
"""

import logging
import os
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .errors import GENERIC_PAYMENT_FAILURE, ProcessorError
from .models import CheckoutPayload, CheckoutResponse

# Service addresses (normally from env vars)
PAYMENT_PROCESSOR_URL = os.environ.get("PAYMENT_PROCESSOR_URL", "http://payment_processor:8002")
PAYMENT_PROCESSOR_PATH = os.environ.get("PAYMENT_PROCESSOR_PATH", "/api/v1/checkout/zenoPayCheckOut")
PAYMENT_PROCESSOR_TIMEOUT = float(os.environ.get("PAYMENT_PROCESSOR_TIMEOUT", "10"))
PAYMENT_PROCESSOR_READ_TIMEOUT = float(os.environ.get("PAYMENT_PROCESSOR_READ_TIMEOUT", "15"))

log = logging.getLogger(__name__)


def _unwrap(body: Any) -> Any:
    # The processor returns the result either directly or inside a "data" envelope.
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body


def _error_message(response: httpx.Response) -> Optional[str]:
    """Extracts a human-readable message from an error response, if it carries one."""
    try:
        body = _unwrap(response.json())
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail")
    if isinstance(detail, dict):
        body = detail
    elif isinstance(detail, str) and detail:
        return detail
    return body.get("error") or body.get("message")


def parse_checkout_response(body: Any) -> CheckoutResponse:
    """
    Normalizes a processor response body into a CheckoutResponse.

    Raises:
        ProcessorError: If the body is not a JSON object of the expected shape.
    """
    body = _unwrap(body)
    if not isinstance(body, dict):
        raise ProcessorError(f"Unexpected processor response: {body!r}", user_message=GENERIC_PAYMENT_FAILURE)
    try:
        return CheckoutResponse.model_validate(body)
    except ValidationError as e:
        raise ProcessorError(f"Malformed processor response: {e}", user_message=GENERIC_PAYMENT_FAILURE) from e


class PaymentProcessorClient:
    """
    Client for the payment processor (REST API).
    Submits checkout payloads and normalizes success and error responses.
    """

    def __init__(self, base_url: str = PAYMENT_PROCESSOR_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Processor base URL.
            transport (httpx.AsyncBaseTransport): Optional transport, e.g. an ASGI
                transport in front of the mock processor.
        """
        timeout_config = httpx.Timeout(PAYMENT_PROCESSOR_TIMEOUT, read=PAYMENT_PROCESSOR_READ_TIMEOUT)
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout_config, transport=transport)

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def create_checkout(self, payload: CheckoutPayload, token: str = "",
                              idempotency_key: str = "") -> CheckoutResponse:
        """
        Submits a checkout to the payment processor.

        Args:
            payload (CheckoutPayload): Normalized order request.
            token (str): Bearer token of the signed-in user.
            idempotency_key (str): One key per submission attempt.
        Returns:
            CheckoutResponse: The normalized response. `success` may be False; the
                caller decides how to treat it.
        Raises:
            ProcessorError: On timeouts, transport failures, 4xx/5xx responses or
                unparseable bodies. The processor's message is kept when available.
        """
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        if token:
            headers["Authorization"] = f"Bearer {token}"

        log.debug(
            f"Submitting checkout: email={payload.emailAddress}, amount={payload.totalAmount}, "
            f"currency={payload.currency}, method={payload.paymentMethod}"
        )
        try:
            response = await self.client.post(PAYMENT_PROCESSOR_PATH, json=payload.model_dump(), headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            # Outcome unknown on the processor side; the idempotency key makes a retry safe.
            log.error(f"Payment processor timeout ({type(e).__name__}). Status unknown.")
            raise ProcessorError(str(e) or "timeout", user_message=GENERIC_PAYMENT_FAILURE) from e
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            if e.response.status_code == 402:
                log.warning(f"Payment declined by processor: {message}")
            else:
                log.error(f"HTTP error from payment processor: {e}")
            raise ProcessorError(str(e), user_message=message or GENERIC_PAYMENT_FAILURE) from e
        except httpx.HTTPError as e:
            log.error(f"Payment processor unreachable: {e}")
            raise ProcessorError(str(e), user_message=GENERIC_PAYMENT_FAILURE) from e
        except ValueError as e:
            log.error(f"Payment processor returned invalid JSON: {e}")
            raise ProcessorError(str(e), user_message=GENERIC_PAYMENT_FAILURE) from e

        result = parse_checkout_response(body)
        log.debug(
            f"Processor response: success={result.success}, "
            f"hasTransactionId={bool(result.transactionId)}, hasPaymentUrl={bool(result.paymentUrl)}"
        )
        return result
