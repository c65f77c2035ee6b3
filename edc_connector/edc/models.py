"""
Pydantic models for the consumer workflow.

The request model binds the workflow variables handed over by the hosting
engine; the state models map the JSON-LD structures returned by the EDC
management endpoints. Field names use snake_case locally and are read from /
serialized to the camelCase format the caller and EDC expect.
"""

from __future__ import annotations

from typing import Any, Literal, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from edc_connector.edc.auth import Authentication
from edc_connector.edc.errors import EDCWorkflowError, ErrorKind

EDC_NAMESPACE = "https://w3id.org/edc/v0.0.1/ns/"

# ---------------------------------------------------------------------------
# Workflow request
# ---------------------------------------------------------------------------


def _is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


class ConnectorRequest(BaseModel):
    """Validated input of one workflow run. Immutable once bound."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    management_url: str = Field(
        default="",
        validation_alias=AliasChoices("managementUrl", "edcManagementUrl", "management_url"),
    )
    provider_url: str = Field(
        default="",
        validation_alias=AliasChoices("providerUrl", "provider_url"),
    )
    provider_id: str = Field(
        default="",
        validation_alias=AliasChoices("providerId", "providerDid", "provider_id"),
    )
    asset_id: str = Field(
        default="",
        validation_alias=AliasChoices("assetId", "asset_id"),
    )
    authentication: Authentication | None = None
    timeout_seconds: int = Field(
        default=60,
        ge=1,
        validation_alias=AliasChoices("timeoutSeconds", "timeout", "timeout_seconds"),
    )
    counter_party_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("counterPartyAddress", "counter_party_address"),
    )

    @field_validator("authentication", mode="before")
    @classmethod
    def _default_auth_type(cls, value: Any) -> Any:
        # Workflow variables may omit the type; api-key is the default variant
        if isinstance(value, dict) and "type" not in value:
            return {**value, "type": "api-key"}
        return value

    @model_validator(mode="after")
    def _validate_urls_and_ids(self) -> Self:
        management_url = self.management_url.strip()
        if not management_url:
            raise ValueError("EDC Management URL is required")
        if not _is_http_url(management_url):
            raise ValueError(
                f"EDC Management URL must start with http:// or https://. Got: {management_url}"
            )
        if "/management" not in management_url:
            raise ValueError(
                "EDC Management URL should include /management path. "
                f"Example: http://localhost:9193/management. Got: {management_url}"
            )
        if not self.asset_id.strip():
            raise ValueError("Asset ID is required")

        provider_url = self.provider_url.strip()
        if not provider_url:
            raise ValueError("Provider URL is required")
        if not _is_http_url(provider_url):
            raise ValueError(f"Provider URL must start with http:// or https://. Got: {provider_url}")
        if "/api/dsp" in provider_url:
            raise ValueError(
                "Provider URL should be the base URL only, without /api/dsp. "
                f"The connector appends the DSP path itself. Got: {provider_url}"
            )
        if not self.provider_id.strip():
            raise ValueError("Provider ID is required")
        return self

    def dsp_address(self, dsp_path: str = "/api/dsp") -> str:
        """Counter-party address: the explicit override, else provider URL + DSP path."""
        if self.counter_party_address:
            return self.counter_party_address
        return f"{self.provider_url.rstrip('/')}{dsp_path}"


# ---------------------------------------------------------------------------
# Negotiation & Transfer state
# ---------------------------------------------------------------------------


class NegotiationState(BaseModel):
    """Contract negotiation state returned by EDC."""

    negotiation_id: str
    state: str
    contract_agreement_id: str | None = None

    @classmethod
    def from_edc_payload(cls, data: dict[str, Any]) -> NegotiationState:
        return cls(
            negotiation_id=ld_text(data.get("@id")) or "",
            state=ld_text(_edc_field(data, "state")) or "",
            contract_agreement_id=ld_text(_edc_field(data, "contractAgreementId")) or None,
        )


class DataAddress(BaseModel):
    """Data-plane endpoint plus the token that authorizes reading from it."""

    endpoint: str | None = None
    authorization: str | None = Field(default=None, repr=False)

    @classmethod
    def from_edc_payload(cls, data: dict[str, Any]) -> DataAddress:
        return cls(
            endpoint=ld_text(_edc_field(data, "endpoint")),
            authorization=ld_text(_edc_field(data, "authorization")),
        )


class TransferProcess(BaseModel):
    """Data transfer process state returned by EDC."""

    transfer_id: str
    state: str
    data_address: DataAddress | None = None

    @classmethod
    def from_edc_payload(cls, data: dict[str, Any]) -> TransferProcess:
        raw_address = _edc_field(data, "dataAddress")
        return cls(
            transfer_id=ld_text(data.get("@id")) or "",
            state=ld_text(_edc_field(data, "state")) or "",
            data_address=(
                DataAddress.from_edc_payload(raw_address) if isinstance(raw_address, dict) else None
            ),
        )


def _edc_field(data: dict[str, Any], name: str) -> Any:
    """Read a property under its compacted name or its expanded EDC IRI."""
    if name in data:
        return data[name]
    return data.get(f"{EDC_NAMESPACE}{name}")


def ld_text(value: Any) -> str | None:
    """Text of a JSON-LD scalar, ``@value`` or ``@id`` node; ``None`` for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, dict):
        return ld_text(value.get("@value", value.get("@id")))
    return None


# ---------------------------------------------------------------------------
# Workflow result (returned to the hosting engine)
# ---------------------------------------------------------------------------


class WorkflowResult(BaseModel):
    """Outcome of a workflow run: either the success fields or the error fields are set."""

    status: Literal["success", "error"]
    asset_id: str | None = None
    contract_agreement_id: str | None = None
    transfer_id: str | None = None
    data: Any = None
    error_message: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def success(
        cls,
        *,
        asset_id: str,
        contract_agreement_id: str,
        transfer_id: str,
        data: Any,
    ) -> WorkflowResult:
        return cls(
            status="success",
            asset_id=asset_id,
            contract_agreement_id=contract_agreement_id,
            transfer_id=transfer_id,
            data=data,
        )

    @classmethod
    def failure(cls, message: str, kind: ErrorKind) -> WorkflowResult:
        return cls(status="error", error_message=message, error_kind=kind)

    @classmethod
    def from_error(cls, exc: EDCWorkflowError) -> WorkflowResult:
        return cls.failure(str(exc), exc.kind)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_response(self) -> dict[str, Any]:
        """Serialize to the camelCase record handed back to the workflow engine."""
        if self.ok:
            return {
                "status": "SUCCESS",
                "assetId": self.asset_id,
                "contractAgreementId": self.contract_agreement_id,
                "transferId": self.transfer_id,
                "data": self.data,
            }
        return {
            "status": "ERROR",
            "message": self.error_message,
            "errorKind": self.error_kind.value if self.error_kind else None,
        }
