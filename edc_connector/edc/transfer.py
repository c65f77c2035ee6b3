"""
Transfer phase: start a pull transfer, wait for its data address and read
the payload from the data plane.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from edc_connector.core.logging import get_logger
from edc_connector.edc.client import EDCManagementClient
from edc_connector.edc.errors import MissingDataAddressError, TransferFailedError
from edc_connector.edc.models import ConnectorRequest, DataAddress, TransferProcess
from edc_connector.edc.polling import max_poll_attempts, poll_until

logger = get_logger(__name__)

# Either state means the data plane has provisioned an endpoint
TRANSFER_READY_STATES = frozenset({"STARTED", "COMPLETED"})
TRANSFER_FAILURE_STATES = frozenset({"TERMINATED", "ERROR"})

PULL_DESTINATION: dict[str, Any] = {"type": "HttpProxy"}


@dataclass(frozen=True)
class TransferOutcome:
    transfer_id: str
    data: Any


def start_transfer(
    client: EDCManagementClient,
    request: ConnectorRequest,
    contract_agreement_id: str,
    *,
    dsp_path: str = "/api/dsp",
) -> str:
    process = client.initiate_transfer(
        counter_party_address=request.dsp_address(dsp_path),
        contract_agreement_id=contract_agreement_id,
        asset_id=request.asset_id,
        data_destination=dict(PULL_DESTINATION),
    )
    if not process.transfer_id:
        raise TransferFailedError(process.state, "Transfer response did not include an @id")

    logger.info(
        "edc_transfer_initiated",
        transfer_id=process.transfer_id,
        contract_agreement_id=contract_agreement_id,
    )
    return process.transfer_id


def await_data_address(
    client: EDCManagementClient,
    transfer_id: str,
    *,
    max_attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> DataAddress:
    """Poll a transfer until it is ready and return its data address."""
    process: TransferProcess = poll_until(
        lambda: client.get_transfer(transfer_id),
        state_of=lambda snapshot: snapshot.state,
        is_success=TRANSFER_READY_STATES.__contains__,
        is_failure=TRANSFER_FAILURE_STATES.__contains__,
        on_failure=TransferFailedError,
        max_attempts=max_attempts,
        interval=interval,
        process="Transfer",
        sleep=sleep,
    )

    address = process.data_address
    if address is None or not address.endpoint:
        raise MissingDataAddressError(transfer_id, process.state)

    logger.info("edc_transfer_ready", transfer_id=transfer_id, state=process.state)
    return address


def transfer(
    client: EDCManagementClient,
    request: ConnectorRequest,
    contract_agreement_id: str,
    *,
    dsp_path: str = "/api/dsp",
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> TransferOutcome:
    """Run the transfer to completion and fetch the payload."""
    transfer_id = start_transfer(client, request, contract_agreement_id, dsp_path=dsp_path)

    address = await_data_address(
        client,
        transfer_id,
        max_attempts=max_poll_attempts(request.timeout_seconds, interval),
        interval=interval,
        sleep=sleep,
    )

    data = client.fetch_data(address)
    logger.info("edc_data_retrieved", transfer_id=transfer_id)
    return TransferOutcome(transfer_id=transfer_id, data=data)
