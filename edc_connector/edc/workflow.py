"""
EDC consumer workflow orchestration.

Runs the four phases strictly in order against one management client:
  1. Query the provider catalog and locate the asset's dataset
  2. Negotiate a contract for the first offer
  3. Start a pull transfer and wait for its data address
  4. Fetch the payload from the data plane

Any failure aborts the remaining phases and becomes the run's single
failure record; partial results are never returned.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from edc_connector.core.config import Settings, get_settings
from edc_connector.core.logging import get_logger
from edc_connector.edc.catalog import query_catalog
from edc_connector.edc.client import EDCConfig, EDCManagementClient
from edc_connector.edc.errors import EDCWorkflowError, ErrorKind
from edc_connector.edc.models import ConnectorRequest, WorkflowResult
from edc_connector.edc.negotiation import negotiate
from edc_connector.edc.transfer import transfer

logger = get_logger(__name__)


class EDCWorkflow:
    """
    Orchestrates one data exchange with a provider through the consumer EDC.

    Holds no state between runs; ``transport`` and ``sleep`` exist so the
    HTTP layer and the poll delay can be replaced.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep

    def run(self, request: ConnectorRequest) -> WorkflowResult:
        """
        Execute the workflow for a validated request.

        Returns:
            A ``WorkflowResult`` holding either the payload and process ids or
            the error message and its classification.
        """
        with structlog.contextvars.bound_contextvars(
            asset_id=request.asset_id,
            provider_id=request.provider_id,
        ):
            return self._run(request)

    def _run(self, request: ConnectorRequest) -> WorkflowResult:
        logger.info(
            "edc_workflow_started",
            management_url=request.management_url,
            provider_url=request.provider_url,
        )

        client = EDCManagementClient(
            EDCConfig(
                management_url=request.management_url,
                authentication=request.authentication,
                timeout=self._settings.edc_http_timeout_seconds,
                protocol=self._settings.edc_protocol,
            ),
            transport=self._transport,
        )

        try:
            return self._execute(client, request)
        except EDCWorkflowError as exc:
            logger.error(
                "edc_workflow_failed",
                error_kind=exc.kind.value,
                error=str(exc),
            )
            return WorkflowResult.from_error(exc)
        except ValidationError as exc:
            # A management response that cannot be mapped onto the state models
            logger.error(
                "edc_workflow_unexpected_response",
                error=str(exc),
            )
            return WorkflowResult.failure(
                f"Unexpected response from EDC: {validation_message(exc)}",
                ErrorKind.REMOTE_REJECTION,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "edc_workflow_transport_error",
                error=str(exc),
            )
            return WorkflowResult.failure(
                f"HTTP error talking to EDC ({type(exc).__name__}): {exc}",
                ErrorKind.TRANSPORT,
            )
        finally:
            client.close()

    def _execute(self, client: EDCManagementClient, request: ConnectorRequest) -> WorkflowResult:
        dsp_path = self._settings.edc_dsp_path
        interval = self._settings.edc_poll_interval_seconds

        # 1. Catalog
        dataset = query_catalog(client, request, dsp_path=dsp_path)

        # 2. Contract negotiation
        agreement_id = negotiate(
            client,
            request,
            dataset,
            dsp_path=dsp_path,
            interval=interval,
            sleep=self._sleep,
        )

        # 3. + 4. Transfer and data retrieval
        outcome = transfer(
            client,
            request,
            agreement_id,
            dsp_path=dsp_path,
            interval=interval,
            sleep=self._sleep,
        )

        logger.info(
            "edc_workflow_success",
            contract_agreement_id=agreement_id,
            transfer_id=outcome.transfer_id,
        )

        return WorkflowResult.success(
            asset_id=request.asset_id,
            contract_agreement_id=agreement_id,
            transfer_id=outcome.transfer_id,
            data=outcome.data,
        )


def validation_message(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        message = str(error["msg"]).removeprefix("Value error, ")
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


def run_workflow(
    variables: Mapping[str, Any],
    workflow: EDCWorkflow | None = None,
) -> WorkflowResult:
    """
    Entry point for the hosting workflow engine.

    Binds raw workflow variables to a ``ConnectorRequest``; invalid variables
    produce a validation failure without any network call.
    """
    try:
        request = ConnectorRequest.model_validate(dict(variables))
    except ValidationError as exc:
        message = validation_message(exc)
        logger.warning("edc_workflow_invalid_request", error=message)
        return WorkflowResult.failure(message, ErrorKind.VALIDATION)

    return (workflow or EDCWorkflow()).run(request)
