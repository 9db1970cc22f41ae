"""
Ramp API client — OneRamp integration for quotes and fiat-leg transfers.

Wraps the provider's bearer-authenticated JSON API. Every failure leaves
this module as one of four classified errors:

  ConfigurationError        missing API URL or key (raised before any I/O)
  RequestConstructionError  request could not be built locally
  ConnectivityError         no response reached us (connect error, timeout, empty body)
  ProviderError             provider returned an error body
                            (AlreadyProcessingError for duplicate hash submissions)

Mutating calls carry an ``Idempotency-Key`` that is generated once per call
and reused across transport-level retries of that call, so a lost response
cannot create a second provider-side transfer.
"""

import logging
import uuid

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from app.config import settings
from app.core.errors import (
    AlreadyProcessingError,
    ConfigurationError,
    ConnectivityError,
    ProviderError,
    RequestConstructionError,
)
from app.schemas.ramp import (
    BillQuotePayload,
    BillTransferPayload,
    QuotePayload,
    QuoteResponse,
    TransactionHashPayload,
    Transfer,
    TransferDirection,
    TransferPayload,
    TransferStatusResponse,
)

logger = logging.getLogger(__name__)

QUOTE_ENDPOINTS = {
    TransferDirection.IN: "/quote-in",
    TransferDirection.OUT: "/quote-out",
}
TRANSFER_ENDPOINTS = {
    TransferDirection.IN: "/kesc/transfer-in",
    TransferDirection.OUT: "/kesc/transfer-out",
}
BILL_QUOTE_ENDPOINT = "/bill/quote"
BILL_TRANSFER_ENDPOINT = "/bill"
TX_HASH_ENDPOINT = "/kesc/tx"
TRANSFER_STATUS_ENDPOINT = "/transfer/{transfer_id}"

ALREADY_PROCESSING_MARKER = "already being processed"
NO_RESPONSE_MESSAGE = "No response from OneRamp API"
UNREACHABLE_MESSAGE = "Could not reach OneRamp API. Please check your connection."
DEFAULT_PROVIDER_MESSAGE = "An error occurred with the API"


class RampClient:
    """OneRamp API integration for the fiat leg of buy/sell/pay-bill flows."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (settings.ONERAMP_API_URL if base_url is None else base_url).rstrip("/")
        self.api_key = settings.ONERAMP_API_KEY if api_key is None else api_key
        self.timeout = settings.ONERAMP_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = settings.ONERAMP_MAX_RETRIES if max_retries is None else max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # --- Request plumbing ---

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("OneRamp API key is not configured")
        if not self.base_url:
            raise ConfigurationError("OneRamp API URL is not configured")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _send(self, method: str, endpoint: str, body: dict | None, headers: dict) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            return await self.client.request(method, url, json=body, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            raise RequestConstructionError(f"Error setting up request: {exc}") from exc
        except httpx.TransportError as exc:
            raise ConnectivityError(UNREACHABLE_MESSAGE) from exc
        except (TypeError, ValueError) as exc:
            # json encoding of the body
            raise RequestConstructionError(f"Error setting up request: {exc}") from exc

    @staticmethod
    def _provider_error(resp: httpx.Response) -> ProviderError:
        try:
            data = resp.json()
        except ValueError:
            data = None

        message = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
        if not message:
            message = resp.text.strip() or DEFAULT_PROVIDER_MESSAGE
        message = str(message)

        if ALREADY_PROCESSING_MARKER in message.lower():
            return AlreadyProcessingError(message, status_code=resp.status_code)
        return ProviderError(message, status_code=resp.status_code)

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: dict | None = None,
        idempotent: bool = False,
    ) -> dict:
        """
        Issue one logical API call and return its decoded JSON body.

        With ``idempotent=True`` a single Idempotency-Key is minted and the
        call is retried on ConnectivityError up to ``max_retries`` times.
        """
        idempotency_key = str(uuid.uuid4()) if idempotent else None
        headers = self._headers(idempotency_key)
        attempts = 1 + (self.max_retries if idempotent else 0)

        for attempt in range(1, attempts + 1):
            try:
                resp = await self._send(method, endpoint, body, headers)
                break
            except ConnectivityError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "OneRamp %s %s unreachable (attempt %d/%d), retrying with key %s",
                    method, endpoint, attempt, attempts, idempotency_key,
                )

        if resp.is_error:
            raise self._provider_error(resp)

        if not resp.content:
            raise ConnectivityError(NO_RESPONSE_MESSAGE)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("Unexpected response from OneRamp API") from exc
        if not data:
            raise ConnectivityError(NO_RESPONSE_MESSAGE)
        return data

    @staticmethod
    def _parse(model: type[BaseModel], data: dict):
        try:
            return model.model_validate(data)
        except SchemaError as exc:
            logger.error("Unexpected OneRamp response for %s: %s", model.__name__, exc)
            raise ProviderError("Unexpected response from OneRamp API") from exc

    @staticmethod
    def _check_quote_payload(payload: QuotePayload) -> None:
        try:
            amount_ok = float(payload.fiat_amount) > 0
        except ValueError:
            amount_ok = False
        if not amount_ok:
            raise RequestConstructionError("Invalid amount specified")
        if not payload.address:
            raise RequestConstructionError("Wallet address is required")
        if not payload.network:
            raise RequestConstructionError("Network is required")
        if not payload.country:
            raise RequestConstructionError("Country is required")

    # --- Quotes ---

    async def request_quote(
        self, direction: TransferDirection, payload: QuotePayload,
    ) -> QuoteResponse:
        """Request a buy (``in``) or sell (``out``) quote."""
        self._check_quote_payload(payload)
        data = await self._request("POST", QUOTE_ENDPOINTS[direction], payload.to_wire())
        return self._parse(QuoteResponse, data)

    async def request_bill_quote(self, payload: BillQuotePayload) -> QuoteResponse:
        """Request a pay-bill quote."""
        self._check_quote_payload(payload)
        data = await self._request("POST", BILL_QUOTE_ENDPOINT, payload.to_wire())
        return self._parse(QuoteResponse, data)

    # --- Transfers ---

    async def create_transfer(
        self, direction: TransferDirection, payload: TransferPayload,
    ) -> Transfer:
        """Create a mobile-money transfer tied to a quote."""
        data = await self._request(
            "POST", TRANSFER_ENDPOINTS[direction], payload.to_wire(), idempotent=True,
        )
        return self._parse(Transfer, data)

    async def create_bill_transfer(self, payload: BillTransferPayload) -> Transfer:
        """Create a pay-bill transfer tied to a bill quote."""
        data = await self._request(
            "POST", BILL_TRANSFER_ENDPOINT, payload.to_wire(), idempotent=True,
        )
        return self._parse(Transfer, data)

    async def get_transfer_status(self, transfer_id: str) -> TransferStatusResponse:
        """Fetch the provider's current status for a transfer."""
        if not transfer_id:
            raise RequestConstructionError("Transfer ID is required")
        data = await self._request(
            "GET", TRANSFER_STATUS_ENDPOINT.format(transfer_id=transfer_id),
        )
        return self._parse(TransferStatusResponse, data)

    async def submit_transaction_hash(self, transfer_id: str, tx_hash: str) -> dict:
        """Hand the confirmed on-chain transaction hash to the provider."""
        payload = TransactionHashPayload(tx_hash=tx_hash, transfer_id=transfer_id)
        return await self._request("POST", TX_HASH_ENDPOINT, payload.to_wire())
