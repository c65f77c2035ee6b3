"""
EDC Management API v3 client (consumer side).

Persistent ``httpx.Client``, dataclass config object, structured logging and
explicit ``close()`` lifecycle. The client builds the JSON-LD request bodies
and attaches authentication; it never retries. Callers decide what a status
code means for their phase.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast

import httpx

from edc_connector.core.logging import get_logger
from edc_connector.edc.auth import ApiKeyAuth, BasicAuth, auth_headers
from edc_connector.edc.errors import DataFetchError, EDCRequestRejectedError
from edc_connector.edc.models import (
    EDC_NAMESPACE,
    DataAddress,
    NegotiationState,
    TransferProcess,
)

logger = get_logger(__name__)

EDC_CONTEXT = {"@vocab": EDC_NAMESPACE}
DEFAULT_PROTOCOL = "dataspace-protocol-http"


@dataclass
class EDCConfig:
    """Configuration for talking to the consumer's EDC management API."""

    management_url: str  # e.g. http://consumer-controlplane:9193/management
    authentication: ApiKeyAuth | BasicAuth | None = None
    timeout: float = 30.0
    protocol: str = DEFAULT_PROTOCOL


class EDCManagementClient:
    """
    Client for the EDC Management API v3 consumer endpoints.

    Targets the ``/v3`` paths below the configured management URL, which is
    expected to already include the ``/management`` prefix.
    """

    def __init__(
        self,
        config: EDCConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._http_client: httpx.Client | None = None

    def _validate_config(self) -> None:
        base = (self._config.management_url or "").strip()
        if not base:
            raise ValueError("EDC management URL is required")
        self._config.management_url = base.rstrip("/")

    def _get_client(self) -> httpx.Client:
        """Return (or lazily create) the authenticated HTTP client."""
        if self._http_client is None:
            self._validate_config()
            headers: dict[str, str] = {
                "Content-Type": "application/json",
                **auth_headers(self._config.authentication),
            }
            self._http_client = httpx.Client(
                base_url=self._config.management_url,
                headers=headers,
                timeout=self._config.timeout,
                transport=self._transport,
            )
        return self._http_client

    def __enter__(self) -> EDCManagementClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def query_catalog(
        self,
        counter_party_address: str,
        counter_party_id: str,
        query_spec: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Request the provider's catalog through the consumer connector."""
        client = self._get_client()

        body: dict[str, Any] = {
            "@context": EDC_CONTEXT,
            "counterPartyAddress": counter_party_address,
            "counterPartyId": counter_party_id,
            "protocol": self._config.protocol,
        }
        if query_spec:
            body["querySpec"] = query_spec

        logger.info(
            "edc_querying_catalog",
            management_url=self._config.management_url,
            counter_party_address=counter_party_address,
        )

        response = client.post("/v3/catalog/request", json=body)
        if response.status_code != 200:
            catalog_endpoint = f"{self._config.management_url}/v3/catalog/request"
            raise EDCRequestRejectedError(
                (
                    f"Failed to query catalog. Status: {response.status_code}, "
                    f"Body: {response.text}\n"
                    "Configuration used:\n"
                    f"  - EDC Management URL: {self._config.management_url}\n"
                    f"  - Catalog Endpoint: {catalog_endpoint}\n"
                    f"  - Provider DSP Address: {counter_party_address}"
                ),
                status_code=response.status_code,
                body=response.text,
            )

        return _json_object(response, "Catalog request")

    # ------------------------------------------------------------------
    # Contract Negotiations
    # ------------------------------------------------------------------

    def initiate_negotiation(
        self,
        counter_party_address: str,
        offer_id: str,
        asset_id: str,
        policy: dict[str, Any],
    ) -> NegotiationState:
        """Start a contract negotiation with a counter-party EDC."""
        client = self._get_client()

        body: dict[str, Any] = {
            "@context": EDC_CONTEXT,
            "counterPartyAddress": counter_party_address,
            "protocol": self._config.protocol,
            "offer": {
                "offerId": offer_id,
                "assetId": asset_id,
                "policy": policy,
            },
        }

        response = client.post("/v3/contractnegotiations", json=body)
        if not response.is_success:
            raise EDCRequestRejectedError(
                "Failed to initiate contract negotiation. "
                f"Status: {response.status_code}, Body: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json_object(response, "Contract negotiation request")
        state = NegotiationState.from_edc_payload(data)
        if not state.state:
            state = state.model_copy(update={"state": "INITIAL"})
        return state

    def get_negotiation(self, negotiation_id: str) -> NegotiationState | None:
        """Poll the state of a contract negotiation. ``None`` if the poll yielded no state."""
        data = self._get_state(f"/v3/contractnegotiations/{negotiation_id}")
        if data is None:
            return None
        return NegotiationState.from_edc_payload(data)

    # ------------------------------------------------------------------
    # Transfer Processes
    # ------------------------------------------------------------------

    def initiate_transfer(
        self,
        counter_party_address: str,
        contract_agreement_id: str,
        asset_id: str,
        data_destination: dict[str, Any],
    ) -> TransferProcess:
        """Start a data transfer process."""
        client = self._get_client()

        body: dict[str, Any] = {
            "@context": EDC_CONTEXT,
            "counterPartyAddress": counter_party_address,
            "contractId": contract_agreement_id,
            "assetId": asset_id,
            "protocol": self._config.protocol,
            "dataDestination": data_destination,
        }

        response = client.post("/v3/transferprocesses", json=body)
        if not response.is_success:
            raise EDCRequestRejectedError(
                f"Failed to initiate transfer. Status: {response.status_code}, "
                f"Body: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json_object(response, "Transfer request")
        process = TransferProcess.from_edc_payload(data)
        if not process.state:
            process = process.model_copy(update={"state": "INITIAL"})
        return process

    def get_transfer(self, transfer_id: str) -> TransferProcess | None:
        """Poll the state of a transfer process. ``None`` if the poll yielded no state."""
        data = self._get_state(f"/v3/transferprocesses/{transfer_id}")
        if data is None:
            return None
        return TransferProcess.from_edc_payload(data)

    def _get_state(self, path: str) -> dict[str, Any] | None:
        client = self._get_client()
        response = client.get(path)
        if response.status_code != 200:
            logger.debug("edc_state_poll_not_ok", path=path, status_code=response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.debug("edc_state_poll_unparsable", path=path)
            return None
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Data plane
    # ------------------------------------------------------------------

    def fetch_data(self, data_address: DataAddress) -> Any:
        """
        Read the payload from a data-plane endpoint.

        Uses a one-off client: the data plane is authorized by the token from
        the data address, never by the management API credentials. JSON bodies
        are decoded; anything else is returned as text.
        """
        if not data_address.endpoint:
            raise ValueError("Data address has no endpoint")

        headers = {"Content-Type": "application/json"}
        if data_address.authorization:
            headers["Authorization"] = data_address.authorization

        logger.info("edc_fetching_data", endpoint=data_address.endpoint)

        with httpx.Client(timeout=self._config.timeout, transport=self._transport) as client:
            response = client.get(data_address.endpoint, headers=headers)

        if response.status_code != 200:
            raise DataFetchError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError:
            return response.text
        # A literal JSON null is still a delivered payload
        return response.text if payload is None else payload

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client:
            self._http_client.close()
            self._http_client = None


def _json_object(response: httpx.Response, action: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise EDCRequestRejectedError(
            f"{action} returned a body that is not a JSON object. "
            f"Status: {response.status_code}, Body: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    return cast(dict[str, Any], data)
