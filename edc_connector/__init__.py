"""Consumer-side EDC workflow connector: catalog, negotiation, transfer and data retrieval."""

from edc_connector.edc.models import ConnectorRequest, WorkflowResult
from edc_connector.edc.workflow import EDCWorkflow, run_workflow

__all__ = ["ConnectorRequest", "EDCWorkflow", "WorkflowResult", "run_workflow"]
