"""
Catalog discovery and dataset matching.

Catalog documents are JSON-LD and their shape differs between provider
implementations: identifiers may sit under compacted or expanded keys, be
plain strings, numbers, ``{"@id": ...}`` nodes or lists of either, and the
asset may only be referenced from a policy target or constraint. Matching is
therefore a pure recursive predicate over the generic JSON tree.
"""

from __future__ import annotations

from typing import Any

from edc_connector.core.logging import get_logger
from edc_connector.edc.client import EDCManagementClient
from edc_connector.edc.errors import AssetNotFoundError
from edc_connector.edc.models import EDC_NAMESPACE, ConnectorRequest, ld_text

logger = get_logger(__name__)

DATASET_KEY = "dcat:dataset"
POLICY_KEY = "odrl:hasPolicy"
CONSTRAINT_KEY = "odrl:constraint"

EDC_ID = f"{EDC_NAMESPACE}id"
EDC_ASSET_ID = f"{EDC_NAMESPACE}assetId"

DATASET_ID_KEYS = ("@id", EDC_ID)
POLICY_TARGET_KEYS = ("odrl:target", f"{EDC_NAMESPACE}target")
CONSTRAINT_LEFT_OPERANDS = (EDC_ID, EDC_ASSET_ID)
CONSTRAINT_RIGHT_KEYS = ("odrl:rightOperand", f"{EDC_NAMESPACE}rightOperand")


def as_list(node: Any) -> list[Any]:
    """JSON-LD compaction collapses one-element arrays; undo that."""
    if node is None:
        return []
    if isinstance(node, list):
        return node
    return [node]


def matches_value(node: Any, expected: str) -> bool:
    """Structural equality between a JSON-LD value and an identifier."""
    if node is None:
        return False
    # bool is an int subclass, but JSON booleans are never identifiers
    if isinstance(node, bool):
        return False
    if isinstance(node, str):
        return node == expected
    if isinstance(node, int | float):
        return str(node) == expected
    if isinstance(node, dict):
        if matches_value(node.get("@id"), expected):
            return True
        return any(matches_value(value, expected) for value in node.values())
    if isinstance(node, list):
        return any(matches_value(value, expected) for value in node)
    return False


def _constraint_matches(constraint: Any, asset_id: str) -> bool:
    if not isinstance(constraint, dict):
        return False
    left = constraint.get("odrl:leftOperand")
    if not any(matches_value(left, operand) for operand in CONSTRAINT_LEFT_OPERANDS):
        return False
    return any(matches_value(constraint.get(key), asset_id) for key in CONSTRAINT_RIGHT_KEYS)


def _policy_matches(policy: Any, asset_id: str) -> bool:
    if not isinstance(policy, dict):
        return False
    if any(matches_value(policy.get(key), asset_id) for key in POLICY_TARGET_KEYS):
        return True
    return any(
        _constraint_matches(constraint, asset_id)
        for constraint in as_list(policy.get(CONSTRAINT_KEY))
    )


def matches_asset(dataset: Any, asset_id: str) -> bool:
    """
    Decide whether a catalog dataset describes ``asset_id``.

    Checked in order, first hit wins: the dataset id (``@id`` or the expanded
    EDC id), the EDC ``assetId`` property, ``dct:identifier``, any policy
    target, and any policy constraint whose left operand is the EDC id or
    assetId IRI.
    """
    if not isinstance(dataset, dict) or not asset_id:
        return False

    for key in (*DATASET_ID_KEYS, EDC_ASSET_ID, "dct:identifier"):
        if matches_value(dataset.get(key), asset_id):
            return True

    return any(_policy_matches(policy, asset_id) for policy in as_list(dataset.get(POLICY_KEY)))


def extract_datasets(catalog: dict[str, Any]) -> list[Any]:
    return as_list(catalog.get(DATASET_KEY))


def available_asset_ids(datasets: list[Any]) -> list[str]:
    """Identifiers present in the catalog, for not-found diagnostics."""
    ids: list[str] = []
    for dataset in datasets:
        if not isinstance(dataset, dict):
            continue
        for key in DATASET_ID_KEYS:
            text = ld_text(dataset.get(key))
            if text is not None and text not in ids:
                ids.append(text)
    return ids


def find_dataset(catalog: dict[str, Any], asset_id: str) -> dict[str, Any]:
    """Return the first dataset matching ``asset_id`` or raise ``AssetNotFoundError``."""
    datasets = extract_datasets(catalog)
    if not datasets:
        raise AssetNotFoundError(asset_id)

    for dataset in datasets:
        if matches_asset(dataset, asset_id):
            return dataset

    raise AssetNotFoundError(asset_id, available_asset_ids(datasets) or ["<none>"])


def build_query_spec(asset_id: str) -> dict[str, Any]:
    """
    Filter the catalog by asset id.

    Provider-side filter support is inconsistent, so the result is always
    re-checked with ``matches_asset``.
    """
    return {
        "filterExpression": [
            {
                "operandLeft": EDC_ID,
                "operator": "=",
                "operandRight": asset_id,
            }
        ]
    }


def query_catalog(
    client: EDCManagementClient,
    request: ConnectorRequest,
    *,
    dsp_path: str = "/api/dsp",
) -> dict[str, Any]:
    """Fetch the provider catalog and locate the dataset for the requested asset."""
    catalog = client.query_catalog(
        counter_party_address=request.dsp_address(dsp_path),
        counter_party_id=request.provider_id,
        query_spec=build_query_spec(request.asset_id),
    )
    dataset = find_dataset(catalog, request.asset_id)
    logger.info("edc_asset_found_in_catalog", asset_id=request.asset_id)
    return dataset
