"""Contract negotiation phase: offer selection, negotiation start and polling."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from edc_connector.core.logging import get_logger
from edc_connector.edc.catalog import POLICY_KEY, as_list
from edc_connector.edc.client import EDCManagementClient
from edc_connector.edc.errors import NegotiationFailedError
from edc_connector.edc.models import ConnectorRequest, NegotiationState
from edc_connector.edc.polling import max_poll_attempts, poll_until

logger = get_logger(__name__)

NEGOTIATION_SUCCESS_STATES = frozenset({"FINALIZED"})
NEGOTIATION_FAILURE_STATES = frozenset({"TERMINATED", "ERROR"})


def select_offer(dataset: dict[str, Any], asset_id: str) -> dict[str, Any]:
    """
    Pick the offer to negotiate.

    The first attached policy is used as-is; providers exposing several
    incompatible offers per asset are not ranked.
    """
    offers = [offer for offer in as_list(dataset.get(POLICY_KEY)) if isinstance(offer, dict)]
    if not offers:
        raise NegotiationFailedError(None, f"No offers found for asset: {asset_id}")

    offer = offers[0]
    if not offer.get("@id"):
        raise NegotiationFailedError(None, f"Offer for asset {asset_id} has no @id")
    return offer


def await_agreement(
    client: EDCManagementClient,
    negotiation_id: str,
    *,
    max_attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Poll a negotiation until FINALIZED and return its contract agreement id."""
    negotiation: NegotiationState = poll_until(
        lambda: client.get_negotiation(negotiation_id),
        state_of=lambda snapshot: snapshot.state,
        is_success=NEGOTIATION_SUCCESS_STATES.__contains__,
        is_failure=NEGOTIATION_FAILURE_STATES.__contains__,
        on_failure=NegotiationFailedError,
        max_attempts=max_attempts,
        interval=interval,
        process="Contract negotiation",
        sleep=sleep,
    )
    if not negotiation.contract_agreement_id:
        raise NegotiationFailedError(
            negotiation.state,
            f"Contract negotiation {negotiation_id} finalized without a contract agreement id",
        )
    return negotiation.contract_agreement_id


def negotiate(
    client: EDCManagementClient,
    request: ConnectorRequest,
    dataset: dict[str, Any],
    *,
    dsp_path: str = "/api/dsp",
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Negotiate a contract for the matched dataset; returns the agreement id."""
    offer = select_offer(dataset, request.asset_id)

    started = client.initiate_negotiation(
        counter_party_address=request.dsp_address(dsp_path),
        offer_id=str(offer["@id"]),
        asset_id=request.asset_id,
        policy=offer,
    )
    if not started.negotiation_id:
        raise NegotiationFailedError(
            started.state, "Contract negotiation response did not include an @id"
        )

    logger.info(
        "edc_negotiation_initiated",
        negotiation_id=started.negotiation_id,
        asset_id=request.asset_id,
    )

    agreement_id = await_agreement(
        client,
        started.negotiation_id,
        max_attempts=max_poll_attempts(request.timeout_seconds, interval),
        interval=interval,
        sleep=sleep,
    )

    logger.info(
        "edc_negotiation_finalized",
        negotiation_id=started.negotiation_id,
        contract_agreement_id=agreement_id,
    )
    return agreement_id
