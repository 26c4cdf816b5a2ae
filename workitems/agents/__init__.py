"""AI Agents package."""

from workitems.agents.extraction_agent import (
    EXTRACTION_PROMPT,
    FLOW_NAME,
    EmptyDocumentError,
    ExtractionError,
    ExtractionFailedError,
    UnsupportedDocumentError,
    WorkItemExtractionAgent,
)

__all__ = [
    "EXTRACTION_PROMPT",
    "FLOW_NAME",
    "EmptyDocumentError",
    "ExtractionError",
    "ExtractionFailedError",
    "UnsupportedDocumentError",
    "WorkItemExtractionAgent",
]
