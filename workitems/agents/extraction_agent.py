"""
Work-Item Extraction Agent

DESIGN DECISION: Gemini reads the uploaded quote / contract / estimate
directly (PDF or image, sent inline) and returns the cost breakdown as
JSON. There is no separate OCR step.

CRITICAL BOUNDARIES:

- CAN: Propose rows for the work-item table
- CANNOT: Persist anything; the rows only seed the editable table
- CANNOT: Invent prices; a missing unit price is derived from the row's
  price and quantity, never guessed

The LLM is a TRANSLATOR, not an ORACLE. Whatever it returns is
reviewed and corrected by a human before promotion.
"""

import json
from typing import Any, Optional
from uuid import UUID

import google.generativeai as genai
import structlog

from workitems.audit import AuditLogger
from workitems.config import get_settings
from workitems.models.work_item import (
    ExtractedWorkItems,
    LineItem,
    round_currency,
    try_parse_numeric,
)


logger = structlog.get_logger(__name__)


FLOW_NAME = "extract_work_items"

EXTRACTION_PROMPT = """You are an expert assistant for a construction company.
Extract every work item from the attached document (a quote, contract or
estimate) into a structured list.

For each work item return:
- item: the description of the work
- quantity: the quantity; use 1 if the document does not state one
- unitPrice: the price of one unit; if missing, use price / quantity
- price: the total price of the row

Respond with ONLY a JSON object in this exact format:
{"workItems": [{"item": "description", "quantity": 1, "unitPrice": 0, "price": 0}]}

Use plain numbers without currency symbols or thousands separators.
If the document contains no work items, return {"workItems": []}."""


class ExtractionError(Exception):
    """Base exception for work-item extraction."""
    pass


class EmptyDocumentError(ExtractionError):
    """The uploaded document has no content."""
    pass


class UnsupportedDocumentError(ExtractionError):
    """The uploaded document type cannot be read by the model."""
    pass


class ExtractionFailedError(ExtractionError):
    """The model call failed or returned nothing usable."""
    pass


class WorkItemExtractionAgent:
    """
    AI agent that turns an uploaded document into proposed work items.

    RESPONSIBILITIES:
    - Reject empty and unsupported uploads before any network call
    - Send the document to Gemini with the extraction prompt
    - Coerce the returned records into LineItems
    - Report token usage to the audit trail, success or failure

    BOUNDARIES:
    - NEVER persists data
    - NEVER retries (a failed extraction is reported to the user)
    """

    def __init__(
        self,
        audit_logger: Optional[AuditLogger] = None,
        model: Optional[Any] = None,
    ):
        """
        Initialize the agent.

        Args:
            audit_logger: Receives token usage and extraction events.
            model: Pre-built model exposing generate_content_async.
                   If None, a Gemini model is configured from settings.
        """
        self._app_settings = get_settings().app
        self._audit_logger = audit_logger or AuditLogger()
        self._model = model if model is not None else self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    def _check_document(
        self,
        document_bytes: bytes,
        mime_type: str,
        file_name: str,
    ) -> None:
        if not document_bytes:
            raise EmptyDocumentError(f"Document is empty: {file_name}")

        if mime_type not in self._app_settings.supported_types_list:
            raise UnsupportedDocumentError(
                f"Unsupported document type: {mime_type}. "
                f"Supported: {', '.join(self._app_settings.supported_types_list)}"
            )

        if len(document_bytes) > self._app_settings.max_upload_size_bytes:
            raise UnsupportedDocumentError(
                f"Document too large: {len(document_bytes) / (1024 * 1024):.1f} MB. "
                f"Maximum: {self._app_settings.max_upload_size_mb} MB"
            )

    async def extract(
        self,
        document_bytes: bytes,
        mime_type: str,
        file_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> ExtractedWorkItems:
        """
        Extract work items from a document.

        Args:
            document_bytes: Raw file content
            mime_type: MIME type of the upload (e.g. application/pdf)
            file_name: Original file name, kept on the result
            correlation_id: Ties the audit events to one upload session

        Returns:
            ExtractedWorkItems with the proposed rows and token count

        Raises:
            EmptyDocumentError: Nothing was uploaded
            UnsupportedDocumentError: Type or size not accepted
            ExtractionFailedError: The model call failed or its output
                could not be parsed
        """
        self._check_document(document_bytes, mime_type, file_name)

        total_tokens = 0
        try:
            response = await self._model.generate_content_async([
                EXTRACTION_PROMPT,
                {"mime_type": mime_type, "data": document_bytes},
            ])
            total_tokens = self._token_count(response)
            work_items = self._parse_response(response)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.warning(
                "work_item_extraction_failed",
                file_name=file_name,
                error=error_message,
            )
            await self._audit_logger.log_token_usage(
                flow_name=FLOW_NAME,
                total_tokens=total_tokens,
                status="failed",
                error_message=error_message,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_extraction_failed(
                file_name=file_name,
                error_message=error_message,
                correlation_id=correlation_id,
            )
            if isinstance(e, ExtractionError):
                raise
            raise ExtractionFailedError(f"Work-item extraction failed: {error_message}")

        result = ExtractedWorkItems(
            file_name=file_name,
            work_items=work_items,
            total_tokens=total_tokens,
        )

        await self._audit_logger.log_token_usage(
            flow_name=FLOW_NAME,
            total_tokens=total_tokens,
            status="succeeded",
            correlation_id=correlation_id,
        )
        await self._audit_logger.log_extraction_completed(
            extraction_id=result.extraction_id,
            item_count=len(work_items),
            total_tokens=total_tokens,
            correlation_id=correlation_id,
        )
        return result

    @staticmethod
    def _token_count(response: Any) -> int:
        usage = getattr(response, "usage_metadata", None)
        count = getattr(usage, "total_token_count", None) if usage else None
        return int(count) if count else 0

    def _parse_response(self, response: Any) -> list[LineItem]:
        """Pull the workItems array out of the model's reply."""
        try:
            text = response.text.strip()
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or empty
            raise ExtractionFailedError(f"Model returned no text: {e}")

        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise ExtractionFailedError("Model returned no JSON object")

        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            raise ExtractionFailedError(f"Model returned invalid JSON: {e}")

        records = data.get("workItems") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise ExtractionFailedError("Model output has no workItems list")

        work_items = []
        for record in records:
            if not isinstance(record, dict):
                logger.warning("skipping_non_object_work_item", record=repr(record))
                continue
            work_items.append(self._to_line_item(record))
        return work_items

    @staticmethod
    def _to_line_item(record: dict) -> LineItem:
        item = LineItem.model_validate(record)

        # Derive a missing unit price from the row total
        has_unit_price = any(
            try_parse_numeric(record.get(key)) is not None
            for key in ("unitPrice", "unit_price")
        )
        if not has_unit_price and item.quantity > 0:
            item = item.model_copy(update={
                "unit_price": round_currency(item.total_price / item.quantity),
            })
        return item
