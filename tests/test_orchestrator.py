"""
Tests for the extraction agent and the end-to-end work-item flow.

Gemini and Google Sheets are never called: the agent gets a fake model
and the flow runs on in-memory storage.
"""

import asyncio
import json
from datetime import timedelta
from types import SimpleNamespace

import pytest

from workitems.agents import (
    EmptyDocumentError,
    ExtractionFailedError,
    UnsupportedDocumentError,
    WorkItemExtractionAgent,
)
from workitems.audit import AuditLogger, create_correlation_id
from workitems.models.audit import AuditEventType
from workitems.models.work_item import DocumentDetails, LineItem
from workitems.orchestrator import (
    PromotionRejectedError,
    WorkItemsFlow,
    create_app_components,
)
from workitems.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    StorageError,
)
from workitems.table import LineItemTable


PDF_BYTES = b"%PDF-1.4 fake quote"


class FakeResponse:
    """Stands in for a Gemini GenerateContentResponse."""

    def __init__(self, text, total_tokens=None):
        self._text = text
        self.usage_metadata = (
            SimpleNamespace(total_token_count=total_tokens)
            if total_tokens is not None else None
        )

    @property
    def text(self):
        if isinstance(self._text, Exception):
            raise self._text
        return self._text


class FakeModel:
    """Records calls and replies with a canned response."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error:
            raise self.error
        return self.response


def work_items_reply(*records, total_tokens=120):
    return FakeResponse(json.dumps({"workItems": list(records)}), total_tokens)


def event_types(audit_storage, correlation_id):
    events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
    return [event.event_type for event in events]


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


class TestExtractionAgent:
    """Tests for WorkItemExtractionAgent with a fake model."""

    def test_extracts_work_items(self, audit_logger):
        """Test records are coerced into LineItems."""
        model = FakeModel(work_items_reply(
            {"item": "Paint", "quantity": 2, "unitPrice": 150, "price": 300},
            {"item": "Tile", "quantity": "7", "unitPrice": "100", "price": "700"},
        ))
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        result = asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

        assert result.file_name == "quote.pdf"
        assert result.total_tokens == 120
        assert [item.description for item in result.work_items] == ["Paint", "Tile"]
        assert result.work_items[1].quantity == 7.0
        assert result.work_items[1].total_price == 700.0

    def test_sends_document_inline(self, audit_logger):
        """Test the prompt and the document bytes go to the model."""
        model = FakeModel(work_items_reply())
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

        prompt, document = model.calls[0]
        assert "workItems" in prompt
        assert document == {"mime_type": "application/pdf", "data": PDF_BYTES}

    def test_missing_unit_price_derived_from_price(self, audit_logger):
        """Test unit price = price / quantity when the model omits it."""
        model = FakeModel(work_items_reply({"item": "Wall", "quantity": 4, "price": 90}))
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        result = asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

        assert result.work_items[0].unit_price == 22.5

    def test_missing_quantity_defaults_to_one(self, audit_logger):
        """Test the seeding default for quantity."""
        model = FakeModel(work_items_reply({"item": "Survey", "price": 80}))
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        result = asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

        assert result.work_items[0].quantity == 1.0
        assert result.work_items[0].unit_price == 80.0

    def test_json_wrapped_in_text(self, audit_logger):
        """Test the JSON object is found inside surrounding prose."""
        reply = FakeResponse(
            'Here you go:\n```json\n{"workItems": [{"item": "Paint", "price": 10}]}\n```'
        )
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=FakeModel(reply))

        result = asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

        assert len(result.work_items) == 1
        assert result.total_tokens == 0

    def test_non_object_records_skipped(self, audit_logger):
        """Test stray values in the list are ignored."""
        model = FakeModel(work_items_reply("Paint", {"item": "Tile", "price": 5}))
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        result = asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

        assert [item.description for item in result.work_items] == ["Tile"]

    def test_empty_document_rejected_before_call(self, audit_logger):
        """Test empty uploads never reach the model."""
        model = FakeModel(work_items_reply())
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        with pytest.raises(EmptyDocumentError):
            asyncio.run(agent.extract(b"", "application/pdf", "empty.pdf"))
        assert model.calls == []

    def test_unsupported_type_rejected_before_call(self, audit_logger):
        """Test unsupported MIME types never reach the model."""
        model = FakeModel(work_items_reply())
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=model)

        with pytest.raises(UnsupportedDocumentError):
            asyncio.run(agent.extract(b"hello", "text/plain", "notes.txt"))
        assert model.calls == []

    def test_unparsable_output_fails(self, audit_logger):
        """Test prose without JSON is an extraction failure."""
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(FakeResponse("I could not read this document.")),
        )
        with pytest.raises(ExtractionFailedError):
            asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

    def test_missing_work_items_key_fails(self, audit_logger):
        """Test a JSON object without workItems is an extraction failure."""
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(FakeResponse('{"items": []}')),
        )
        with pytest.raises(ExtractionFailedError):
            asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

    def test_blocked_response_fails(self, audit_logger):
        """Test a response whose text accessor raises is a failure."""
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(FakeResponse(ValueError("blocked"), total_tokens=15)),
        )
        with pytest.raises(ExtractionFailedError):
            asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

    def test_model_error_wrapped(self, audit_logger):
        """Test network errors surface as ExtractionFailedError."""
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(error=RuntimeError("deadline exceeded")),
        )
        with pytest.raises(ExtractionFailedError, match="deadline exceeded"):
            asyncio.run(agent.extract(PDF_BYTES, "application/pdf", "quote.pdf"))

    def test_token_usage_audited_on_success(self, audit_logger, audit_storage):
        """Test a succeeded token usage event is recorded."""
        correlation_id = create_correlation_id()
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(work_items_reply({"item": "Paint", "price": 1}, total_tokens=321)),
        )

        asyncio.run(agent.extract(
            PDF_BYTES, "application/pdf", "quote.pdf", correlation_id=correlation_id,
        ))

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        usage = [e for e in events if e.event_type == AuditEventType.AI_TOKEN_USAGE]
        assert len(usage) == 1
        assert usage[0].details["status"] == "succeeded"
        assert usage[0].details["total_tokens"] == 321
        assert AuditEventType.EXTRACTION_COMPLETED in [e.event_type for e in events]

    def test_token_usage_audited_on_failure(self, audit_logger, audit_storage):
        """Test a failed token usage event carries the reported tokens."""
        correlation_id = create_correlation_id()
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(FakeResponse("no json here", total_tokens=42)),
        )

        with pytest.raises(ExtractionFailedError):
            asyncio.run(agent.extract(
                PDF_BYTES, "application/pdf", "quote.pdf", correlation_id=correlation_id,
            ))

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        usage = [e for e in events if e.event_type == AuditEventType.AI_TOKEN_USAGE]
        assert usage[0].details["status"] == "failed"
        assert usage[0].details["total_tokens"] == 42
        assert AuditEventType.EXTRACTION_FAILED in [e.event_type for e in events]


class TestWorkItemsFlowExtraction:
    """Tests for extraction through the orchestrator."""

    def test_extract_from_document(self, audit_logger, audit_storage):
        """Test the upload is audited and rows come back."""
        correlation_id = create_correlation_id()
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(work_items_reply({"item": "Paint", "quantity": 2, "price": 300})),
        )
        flow = WorkItemsFlow(extraction_agent=agent, audit_logger=audit_logger)

        extracted = asyncio.run(flow.extract_from_document(
            PDF_BYTES, "quote.pdf", "application/pdf", correlation_id,
        ))

        assert extracted.work_items[0].unit_price == 150.0
        types = event_types(audit_storage, correlation_id)
        assert types[0] == AuditEventType.DOCUMENT_UPLOADED
        assert AuditEventType.EXTRACTION_COMPLETED in types

    def test_rejected_document_audited(self, audit_logger, audit_storage):
        """Test empty uploads are recorded as rejected."""
        correlation_id = create_correlation_id()
        agent = WorkItemExtractionAgent(audit_logger=audit_logger, model=FakeModel())
        flow = WorkItemsFlow(extraction_agent=agent, audit_logger=audit_logger)

        with pytest.raises(EmptyDocumentError):
            asyncio.run(flow.extract_from_document(
                b"", "empty.pdf", "application/pdf", correlation_id,
            ))

        assert AuditEventType.DOCUMENT_REJECTED in event_types(audit_storage, correlation_id)

    def test_new_table_seeded_from_extraction(self, audit_logger):
        """Test the table starts with the extracted rows."""
        agent = WorkItemExtractionAgent(
            audit_logger=audit_logger,
            model=FakeModel(work_items_reply(
                {"item": "Paint", "quantity": 2, "unitPrice": 150, "price": 300},
            )),
        )
        flow = WorkItemsFlow(extraction_agent=agent, audit_logger=audit_logger)
        extracted = asyncio.run(flow.extract_from_document(
            PDF_BYTES, "quote.pdf", "application/pdf",
        ))

        table = flow.new_table(extracted)

        assert len(table) == 1
        assert table.grand_total == 300.0

    def test_new_table_empty(self):
        """Test an empty table uses the configured new-row label."""
        table = WorkItemsFlow().new_table()
        assert table.is_empty
        assert table.add_row().description == "new item"


class TestWorkItemsFlowExport:
    """Tests for exports through the orchestrator."""

    def test_export_csv_audited(self, audit_logger, audit_storage):
        """Test a CSV export returns the file and is audited."""
        correlation_id = create_correlation_id()
        flow = WorkItemsFlow(audit_logger=audit_logger)
        table = LineItemTable([LineItem(description="Paint", quantity=1, total_price=5)])

        export_file = asyncio.run(flow.export(table, "CSV", correlation_id))

        assert export_file.file_name == "work-items.csv"
        assert event_types(audit_storage, correlation_id) == [AuditEventType.TABLE_EXPORTED]

    def test_export_json(self, audit_logger):
        """Test a JSON export."""
        flow = WorkItemsFlow(audit_logger=audit_logger)
        export_file = asyncio.run(flow.export(LineItemTable(), "json"))
        assert export_file.content == b"[]"

    def test_unknown_export_format(self, audit_logger):
        """Test unknown formats are refused."""
        flow = WorkItemsFlow(audit_logger=audit_logger)
        with pytest.raises(ValueError, match="Unknown export format"):
            asyncio.run(flow.export(LineItemTable(), "xlsx"))


class FailingRecordStorage(InMemoryRecordStorage):
    """Record storage whose contract writes always fail."""

    async def save_contract(self, contract):
        raise StorageError("Sheets quota exceeded")


class TestWorkItemsFlowPromotion:
    """Tests for promoting a table into a project and contract."""

    def details(self):
        return DocumentDetails(
            custom_id="DOC-42",
            name="Villa Renovation",
            client="ACME",
            client_representative="J. Chen",
        )

    def table(self):
        return LineItemTable([
            LineItem(description="Paint", quantity=2, unit_price=150, total_price=300),
            LineItem(description="Tile", quantity=7, unit_price=100, total_price=700),
        ])

    def test_promote_persists_project_and_contract(self, audit_logger, audit_storage):
        """Test both records are saved with the table's totals."""
        correlation_id = create_correlation_id()
        storage = InMemoryRecordStorage()
        flow = WorkItemsFlow(record_storage=storage, audit_logger=audit_logger)

        result = asyncio.run(flow.promote(self.details(), self.table(), correlation_id))

        project = asyncio.run(storage.get_project_by_id(result.project_id))
        contract = asyncio.run(storage.get_contract_by_id(result.contract_id))

        assert result.total_value == 1000.0
        assert project.custom_id == "DOC-42"
        assert project.title == "Villa Renovation"
        assert project.description == 'Project created from document "Villa Renovation"'
        assert [task.title for task in project.tasks] == ["Paint", "Tile"]
        assert project.tasks[1].value == 700.0
        assert project.end_date - project.start_date == timedelta(days=30)

        assert contract.name == "Villa Renovation"
        assert contract.contractor == "Our Company"
        assert contract.client_representative == "J. Chen"
        assert contract.scope == 'Work items based on document "Villa Renovation"'
        assert contract.total_value == 1000.0
        assert contract.status.value == "active"

        types = event_types(audit_storage, correlation_id)
        assert AuditEventType.PROJECT_CREATED in types
        assert AuditEventType.CONTRACT_CREATED in types

    def test_promote_rejected_on_errors(self, audit_logger, audit_storage):
        """Test missing client blocks promotion and nothing is saved."""
        correlation_id = create_correlation_id()
        storage = InMemoryRecordStorage()
        flow = WorkItemsFlow(record_storage=storage, audit_logger=audit_logger)
        details = DocumentDetails(name="Villa Renovation")

        with pytest.raises(PromotionRejectedError) as exc_info:
            asyncio.run(flow.promote(details, self.table(), correlation_id))

        assert exc_info.value.result.has_errors
        assert asyncio.run(storage.list_projects()) == []
        assert event_types(audit_storage, correlation_id) == [
            AuditEventType.PROMOTION_VALIDATION_FAILED,
        ]

    def test_promote_empty_table_rejected(self, audit_logger):
        """Test a table without rows cannot be promoted."""
        flow = WorkItemsFlow(audit_logger=audit_logger)
        with pytest.raises(PromotionRejectedError, match="At least one work item"):
            asyncio.run(flow.promote(self.details(), LineItemTable()))

    def test_promote_with_warnings_succeeds(self, audit_logger):
        """Test warnings do not block promotion."""
        flow = WorkItemsFlow(audit_logger=audit_logger)
        table = self.table()
        table.update_field(0, "quantity", "0")

        result = asyncio.run(flow.promote(self.details(), table))

        assert result.total_value == 700.0

    def test_storage_failure_audited_and_raised(self, audit_logger, audit_storage):
        """Test storage errors propagate after being audited."""
        correlation_id = create_correlation_id()
        flow = WorkItemsFlow(
            record_storage=FailingRecordStorage(),
            audit_logger=audit_logger,
        )

        with pytest.raises(StorageError):
            asyncio.run(flow.promote(self.details(), self.table(), correlation_id))

        types = event_types(audit_storage, correlation_id)
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in types
        assert AuditEventType.PROMOTION_FAILED in types

    def test_validate_promotion_message(self, audit_logger):
        """Test the validation message comes with the result."""
        flow = WorkItemsFlow(audit_logger=audit_logger)
        result, message = asyncio.run(flow.validate_promotion(self.details(), self.table()))
        assert result.can_promote
        assert message.startswith("✅")


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_without_storage(self):
        """Test the in-memory fallback."""
        flow, sheets_client = create_app_components(use_storage=False)
        assert sheets_client is None
        assert isinstance(flow.record_storage, InMemoryRecordStorage)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
