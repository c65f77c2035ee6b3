"""End-to-end workflow tests against an in-memory management API and data plane."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from conftest import MANAGEMENT_URL, PROVIDER_URL, FakeEDC
from edc_connector.core.config import Settings
from edc_connector.edc import workflow as workflow_module
from edc_connector.edc.errors import ErrorKind
from edc_connector.edc.models import NegotiationState
from edc_connector.edc.workflow import EDCWorkflow, run_workflow

CATALOG_URL = f"{MANAGEMENT_URL}/v3/catalog/request"
NEGOTIATIONS_URL = f"{MANAGEMENT_URL}/v3/contractnegotiations"
TRANSFERS_URL = f"{MANAGEMENT_URL}/v3/transferprocesses"
DATA_URL = "http://dp/public"

VARIABLES: dict[str, Any] = {
    "managementUrl": MANAGEMENT_URL,
    "providerUrl": PROVIDER_URL,
    "providerId": "did:web:provider",
    "assetId": "asset-1",
    "authentication": {"type": "api-key", "apiKey": "k1"},
    "timeoutSeconds": 5,
}

CATALOG = {
    "@id": "catalog",
    "dcat:dataset": [
        {"@id": "asset-1", "odrl:hasPolicy": [{"@id": "offer-1", "@type": "odrl:Offer"}]},
    ],
}


@pytest.fixture
def workflow(
    fake_edc: FakeEDC,
    settings: Settings,
    record_sleep: Callable[[float], None],
) -> EDCWorkflow:
    return EDCWorkflow(settings, transport=fake_edc.transport, sleep=record_sleep)


def _happy_path(fake_edc: FakeEDC, agreement_id: Any = "agr-1") -> FakeEDC:
    fake_edc.add("POST", CATALOG_URL, json_body=CATALOG)
    fake_edc.add("POST", NEGOTIATIONS_URL, json_body={"@id": "neg-1", "state": "REQUESTED"})
    fake_edc.add(
        "GET",
        f"{NEGOTIATIONS_URL}/neg-1",
        json_body={"state": "FINALIZED", "contractAgreementId": agreement_id},
    )
    fake_edc.add("POST", TRANSFERS_URL, json_body={"@id": "tp-1", "state": "INITIAL"})
    fake_edc.add(
        "GET",
        f"{TRANSFERS_URL}/tp-1",
        json_body={
            "state": "STARTED",
            "dataAddress": {"endpoint": DATA_URL, "authorization": "tok"},
        },
    )
    fake_edc.add("GET", DATA_URL, json_body={"value": 42})
    return fake_edc


class TestEDCWorkflow:
    def test_success(self, workflow: EDCWorkflow, fake_edc: FakeEDC, sleeps: list[float]) -> None:
        _happy_path(fake_edc)

        result = run_workflow(VARIABLES, workflow)

        assert result.ok
        assert result.to_response() == {
            "status": "SUCCESS",
            "assetId": "asset-1",
            "contractAgreementId": "agr-1",
            "transferId": "tp-1",
            "data": {"value": 42},
        }
        # one poll per process
        assert sleeps == [1.0, 1.0]

    def test_phase_order(self, workflow: EDCWorkflow, fake_edc: FakeEDC) -> None:
        _happy_path(fake_edc)

        run_workflow(VARIABLES, workflow)

        assert [(r.method, str(r.url)) for r in fake_edc.requests] == [
            ("POST", CATALOG_URL),
            ("POST", NEGOTIATIONS_URL),
            ("GET", f"{NEGOTIATIONS_URL}/neg-1"),
            ("POST", TRANSFERS_URL),
            ("GET", f"{TRANSFERS_URL}/tp-1"),
            ("GET", DATA_URL),
        ]
        management_calls = [r for r in fake_edc.requests if str(r.url).startswith(MANAGEMENT_URL)]
        assert all(r.headers["X-Api-Key"] == "k1" for r in management_calls)

    def test_asset_not_found(self, workflow: EDCWorkflow, fake_edc: FakeEDC) -> None:
        fake_edc.add(
            "POST",
            CATALOG_URL,
            json_body={"dcat:dataset": [{"@id": "asset-2"}, {"@id": "asset-3"}]},
        )

        result = run_workflow(VARIABLES, workflow)

        assert not result.ok
        assert result.error_kind is ErrorKind.ASSET_NOT_FOUND
        assert "asset-2, asset-3" in (result.error_message or "")
        assert fake_edc.requests_to("POST", NEGOTIATIONS_URL) == []

    def test_negotiation_terminated(self, workflow: EDCWorkflow, fake_edc: FakeEDC) -> None:
        fake_edc.add("POST", CATALOG_URL, json_body=CATALOG)
        fake_edc.add("POST", NEGOTIATIONS_URL, json_body={"@id": "neg-1"})
        fake_edc.add("GET", f"{NEGOTIATIONS_URL}/neg-1", json_body={"state": "REQUESTED"})
        fake_edc.add("GET", f"{NEGOTIATIONS_URL}/neg-1", json_body={"state": "TERMINATED"})

        result = run_workflow(VARIABLES, workflow)

        assert result.error_kind is ErrorKind.NEGOTIATION_FAILED
        assert result.to_response() == {
            "status": "ERROR",
            "message": "Contract negotiation failed with state: TERMINATED",
            "errorKind": "negotiation_failed",
        }
        assert fake_edc.requests_to("POST", TRANSFERS_URL) == []

    def test_negotiation_timeout_differs_from_failure(
        self, workflow: EDCWorkflow, fake_edc: FakeEDC, sleeps: list[float]
    ) -> None:
        fake_edc.add("POST", CATALOG_URL, json_body=CATALOG)
        fake_edc.add("POST", NEGOTIATIONS_URL, json_body={"@id": "neg-1"})
        fake_edc.add("GET", f"{NEGOTIATIONS_URL}/neg-1", json_body={"state": "REQUESTED"})

        result = run_workflow(VARIABLES, workflow)

        assert result.error_kind is ErrorKind.POLLING_TIMEOUT
        assert result.error_message == (
            "Contract negotiation timeout after 5 attempts (last state: REQUESTED)"
        )
        assert len(sleeps) == 5

    def test_numeric_agreement_id(self, workflow: EDCWorkflow, fake_edc: FakeEDC) -> None:
        _happy_path(fake_edc, agreement_id=123)

        result = run_workflow(VARIABLES, workflow)

        assert result.ok
        assert result.contract_agreement_id == "123"
        transfer_body = FakeEDC.body(fake_edc.requests_to("POST", TRANSFERS_URL)[0])
        assert transfer_body["contractId"] == "123"

    def test_null_negotiation_id(self, workflow: EDCWorkflow, fake_edc: FakeEDC) -> None:
        fake_edc.add("POST", CATALOG_URL, json_body=CATALOG)
        fake_edc.add("POST", NEGOTIATIONS_URL, json_body={"@id": None, "state": "REQUESTED"})

        result = run_workflow(VARIABLES, workflow)

        assert result.error_kind is ErrorKind.NEGOTIATION_FAILED
        assert result.error_message == "Contract negotiation response did not include an @id"
        assert fake_edc.requests_to("GET", f"{NEGOTIATIONS_URL}/None") == []

    def test_unmappable_response_is_failure_record(
        self, workflow: EDCWorkflow, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken_catalog(*args: Any, **kwargs: Any) -> dict[str, Any]:
            NegotiationState.model_validate({"state": "FINALIZED"})
            return {}

        monkeypatch.setattr(workflow_module, "query_catalog", broken_catalog)

        result = run_workflow(VARIABLES, workflow)

        assert result.error_kind is ErrorKind.REMOTE_REJECTION
        assert result.error_message is not None
        assert result.error_message.startswith("Unexpected response from EDC: negotiation_id")

    def test_catalog_rejected(self, workflow: EDCWorkflow, fake_edc: FakeEDC) -> None:
        fake_edc.add("POST", CATALOG_URL, 401, text="unauthorized")

        result = run_workflow(VARIABLES, workflow)

        assert result.error_kind is ErrorKind.REMOTE_REJECTION
        assert "Failed to query catalog. Status: 401" in (result.error_message or "")

    def test_invalid_variables_make_no_calls(
        self, workflow: EDCWorkflow, fake_edc: FakeEDC
    ) -> None:
        result = run_workflow(
            {**VARIABLES, "providerUrl": f"{PROVIDER_URL}/api/dsp"},
            workflow,
        )

        assert result.error_kind is ErrorKind.VALIDATION
        assert result.error_message is not None
        assert "without /api/dsp" in result.error_message
        assert not result.error_message.startswith("Value error")
        assert fake_edc.requests == []

    def test_transport_error(self, settings: Settings, record_sleep: Callable[[float], None]) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        workflow = EDCWorkflow(settings, transport=httpx.MockTransport(refuse), sleep=record_sleep)

        result = run_workflow(VARIABLES, workflow)

        assert result.error_kind is ErrorKind.TRANSPORT
        assert result.error_message == "HTTP error talking to EDC (ConnectError): connection refused"

    def test_custom_poll_interval(self, fake_edc: FakeEDC, sleeps: list[float]) -> None:
        _happy_path(fake_edc)
        settings = Settings(_env_file=None, edc_poll_interval_seconds=0.25)
        workflow = EDCWorkflow(settings, transport=fake_edc.transport, sleep=sleeps.append)

        result = run_workflow(VARIABLES, workflow)

        assert result.ok
        assert sleeps == [0.25, 0.25]
