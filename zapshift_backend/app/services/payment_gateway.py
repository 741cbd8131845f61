"""
Payment gateway collaborator.

Reads confirmed checkout sessions from Stripe's REST API. Session
creation happens elsewhere; this side only retrieves.
"""

import logging
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from zapshift_backend.app.core.config import settings
from zapshift_backend.app.core.exceptions import NotFoundError, UpstreamUnavailableError, ValidationError
from zapshift_backend.app.core.reliability import CircuitBreaker, CircuitOpenError, build_gateway_circuit_breaker
from zapshift_backend.app.schemas.payment import GatewaySession, SessionMetadata

logger = logging.getLogger("zapshift.gateway")


class PaymentGateway(Protocol):
    async def retrieve_session(self, session_ref: str) -> GatewaySession:
        ...


class _GatewayServerError(Exception):
    """5xx from the gateway. Counts against the circuit breaker."""


gateway_circuit_breaker = build_gateway_circuit_breaker(
    trip_on=(httpx.TransportError, _GatewayServerError)
)


class StripeCheckoutGateway:
    """
    Retrieves Stripe Checkout sessions.

    The session's payment_intent is the transaction id; amount_total is
    reported in minor units. Metadata keys (parcelId, trackingId,
    parcelName) are the ones written when the session was created.
    """

    def __init__(
        self,
        api_base: str = None,
        secret_key: str = None,
        timeout: float = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self.secret_key = secret_key or settings.stripe_secret_key
        self.timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
        self.circuit_breaker = circuit_breaker or gateway_circuit_breaker
        self.transport = transport

    async def retrieve_session(self, session_ref: str) -> GatewaySession:
        """
        Fetch a checkout session.

        Raises:
            NotFoundError: Unknown session
            ValidationError: Session lacks parcel metadata or the gateway rejected the request
            UpstreamUnavailableError: Timeout, transport failure, 5xx or open circuit (retryable)
        """
        try:
            payload = await self.circuit_breaker.call(self._fetch, session_ref)
        except CircuitOpenError:
            raise UpstreamUnavailableError("Payment gateway temporarily disabled after repeated failures")
        except httpx.TimeoutException:
            logger.warning("Gateway timeout retrieving session %s", session_ref)
            raise UpstreamUnavailableError("Payment gateway timed out", details={"session_id": session_ref})
        except httpx.TransportError as e:
            logger.warning("Gateway transport error for session %s: %s", session_ref, e)
            raise UpstreamUnavailableError(details={"session_id": session_ref})
        except _GatewayServerError as e:
            logger.warning("Gateway server error for session %s: %s", session_ref, e)
            raise UpstreamUnavailableError(details={"session_id": session_ref})

        return self._to_session(session_ref, payload)

    async def _fetch(self, session_ref: str) -> dict:
        async with httpx.AsyncClient(
            base_url=self.api_base,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.secret_key}"},
        ) as client:
            resp = await client.get(f"/v1/checkout/sessions/{session_ref}")

        if resp.status_code >= 500:
            raise _GatewayServerError(f"HTTP {resp.status_code}")
        if resp.status_code == 404:
            raise NotFoundError("Payment session", session_ref)
        if resp.status_code >= 400:
            raise ValidationError(
                "Payment gateway rejected the session lookup",
                details={"session_id": session_ref, "gateway_status": resp.status_code},
            )
        return resp.json()

    @staticmethod
    def _to_session(session_ref: str, payload: dict) -> GatewaySession:
        metadata = payload.get("metadata") or {}
        customer_email = payload.get("customer_email") or (payload.get("customer_details") or {}).get("email")

        try:
            return GatewaySession(
                session_id=payload.get("id", session_ref),
                transaction_id=payload.get("payment_intent"),
                payment_status=payload.get("payment_status", "unpaid"),
                amount=(payload.get("amount_total") or 0) / 100,
                currency=payload.get("currency") or "usd",
                customer_email=customer_email,
                metadata=SessionMetadata(
                    parcel_id=metadata.get("parcelId"),
                    tracking_id=metadata.get("trackingId"),
                    parcel_name=metadata.get("parcelName"),
                ),
            )
        except PydanticValidationError:
            raise ValidationError(
                "Payment session is missing parcel metadata",
                details={"session_id": session_ref},
            )
