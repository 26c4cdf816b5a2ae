"""
Streamlit Frontend for Work Items

The review screen office staff use to turn a quote or contract into
a project.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every number the AI proposes can be edited
3. Clear error messages in simple language
4. Totals update as soon as a cell changes
5. No hidden actions

The UI enforces the human-in-the-loop principle:
- User sees what was extracted
- User edits, adds or removes rows
- Nothing is saved without the explicit "Create Project" action
"""

import asyncio

import streamlit as st

from workitems.agents import ExtractionError
from workitems.audit import create_correlation_id
from workitems.config import get_settings, validate_all_settings
from workitems.models import DocumentDetails, LineItemField
from workitems.orchestrator import (
    PromotionRejectedError,
    WorkItemsFlow,
    create_app_components,
)
from workitems.table import LineItemTable, csv_file, format_number, json_file


# Page configuration
st.set_page_config(
    page_title="Work Items",
    page_icon="📑",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


EDITABLE_COLUMNS = [
    (LineItemField.DESCRIPTION, "Item", 4),
    (LineItemField.QUANTITY, "Quantity", 1),
    (LineItemField.UNIT_PRICE, "Unit price", 2),
    (LineItemField.TOTAL_PRICE, "Total", 2),
]

# Editable columns, then share and remove button
COLUMN_WIDTHS = [width for _, _, width in EDITABLE_COLUMNS] + [1, 1]


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    flow, sheets_client = get_components()

    st.sidebar.title("📑 Work Items")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📤 Upload Document", "📁 Projects", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Upload a quote, contract or estimate
        2. Check and correct the work items
        3. Download the table or create a project
        """
    )
    if sheets_client is None:
        st.sidebar.info("Google Sheets not configured. Projects are kept in memory.")

    if page == "📤 Upload Document":
        render_upload_page(flow)
    elif page == "📁 Projects":
        render_projects_page(flow)
    elif page == "⚙️ Settings":
        render_settings_page()


# =============================================================================
# SESSION STATE
# =============================================================================

def init_session_state():
    defaults = {
        "upload_state": "idle",  # idle, processing, reviewing, promoted
        "correlation_id": None,
        "table": None,
        "table_version": 0,
        "details": None,
        "promotion": None,
        "promotion_warnings": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def start_review(flow: WorkItemsFlow, extracted=None, file_name=None):
    """Put a fresh table (seeded or empty) into the session."""
    st.session_state.table = flow.new_table(extracted)
    st.session_state.table_version += 1
    st.session_state.details = DocumentDetails.from_file_name(file_name)
    st.session_state.upload_state = "reviewing"


def reset_session():
    st.session_state.upload_state = "idle"
    st.session_state.table = None
    st.session_state.details = None
    st.session_state.promotion = None
    st.session_state.promotion_warnings = None
    st.session_state.table_version += 1


# =============================================================================
# TABLE WIDGETS
# =============================================================================

def cell_key(index: int, field: LineItemField) -> str:
    # Keys change with the version so add/remove never leaves stale widgets
    return f"cell-{st.session_state.table_version}-{index}-{field.value}"


def cell_text(table: LineItemTable, index: int, field: LineItemField) -> str:
    value = table.row(index).get(field)
    if field is LineItemField.DESCRIPTION:
        return value
    return format_number(value)


def on_cell_change(index: int, field: LineItemField):
    """Widget callback: reconcile the row and refresh its other cells."""
    table: LineItemTable = st.session_state.table
    raw_value = st.session_state[cell_key(index, field)]
    if not table.update_field(index, field, raw_value):
        return

    for other, _, _ in EDITABLE_COLUMNS:
        if other is not field:
            st.session_state[cell_key(index, other)] = cell_text(table, index, other)


def on_add_row():
    st.session_state.table.add_row()
    st.session_state.table_version += 1


def on_remove_row(index: int):
    st.session_state.table.remove_row(index)
    st.session_state.table_version += 1


def render_table(table: LineItemTable, currency: str):
    """Editable grid: one row of inputs per work item."""
    header = st.columns(COLUMN_WIDTHS)
    for column, (_, label, _) in zip(header, EDITABLE_COLUMNS):
        column.markdown(f"**{label}**")
    header[4].markdown("**Share**")

    for index in range(len(table)):
        columns = st.columns(COLUMN_WIDTHS)
        for column, (field, label, _) in zip(columns, EDITABLE_COLUMNS):
            key = cell_key(index, field)
            if key not in st.session_state:
                st.session_state[key] = cell_text(table, index, field)
            column.text_input(
                label,
                key=key,
                label_visibility="collapsed",
                on_change=on_cell_change,
                args=(index, field),
            )
        columns[4].markdown(f"{table.row_share(index):.1%}")
        columns[5].button(
            "🗑️",
            key=f"remove-{st.session_state.table_version}-{index}",
            on_click=on_remove_row,
            args=(index,),
            help="Remove this row",
        )

    if table.is_empty:
        st.info("No work items yet. Add a row to get started.")

    st.button("➕ Add Row", on_click=on_add_row)

    st.markdown(
        f'Grand total: <span class="big-number">{currency}{table.grand_total:,.2f}</span>',
        unsafe_allow_html=True,
    )


def on_download(flow: WorkItemsFlow, export_format: str):
    run_async(flow.export(
        st.session_state.table,
        export_format,
        st.session_state.correlation_id,
    ))


def render_downloads(flow: WorkItemsFlow, table: LineItemTable):
    """CSV / JSON download buttons. Downloads are audited on click."""
    col1, col2 = st.columns(2)

    for column, export_file, export_format in (
        (col1, csv_file(table.rows), "csv"),
        (col2, json_file(table.rows), "json"),
    ):
        with column:
            st.download_button(
                f"⬇️ Download {export_format.upper()}",
                data=export_file.content,
                file_name=export_file.file_name,
                mime=export_file.mime_type,
                disabled=table.is_empty,
                on_click=on_download,
                args=(flow, export_format),
            )


# =============================================================================
# PAGES
# =============================================================================

def render_upload_page(flow: WorkItemsFlow):
    """Render the document upload and review page."""
    st.title("📤 Upload Document")
    st.markdown("Upload a quote, contract or estimate to extract its work items.")

    init_session_state()
    settings = get_settings().app

    # Step 1: Upload
    if st.session_state.upload_state == "idle":
        uploaded_file = st.file_uploader(
            "Choose a document",
            type=["pdf", "jpg", "jpeg", "png", "webp"],
            help="PDF or a clear photo of the document",
        )

        col1, col2 = st.columns(2)
        with col1:
            if uploaded_file and st.button("🔍 Extract Work Items", type="primary"):
                st.session_state.correlation_id = create_correlation_id()
                st.session_state.upload_state = "processing"
                st.session_state.uploaded_file = uploaded_file
                st.rerun()
        with col2:
            if st.button("✏️ Start With an Empty Table"):
                st.session_state.correlation_id = create_correlation_id()
                start_review(flow)
                st.rerun()

    # Step 2: Extraction
    if st.session_state.upload_state == "processing":
        uploaded_file = st.session_state.get("uploaded_file")
        with st.spinner("Reading the document... Please wait."):
            try:
                extracted = run_async(
                    flow.extract_from_document(
                        document_bytes=uploaded_file.getvalue(),
                        file_name=uploaded_file.name,
                        mime_type=uploaded_file.type,
                        correlation_id=st.session_state.correlation_id,
                    )
                )
            except ExtractionError as e:
                st.session_state.upload_state = "idle"
                st.error(f"Could not extract work items: {e}")
                st.stop()
            except Exception as e:
                st.session_state.upload_state = "idle"
                st.error(f"Error processing document: {e}")
                st.stop()

        start_review(flow, extracted, uploaded_file.name)
        if not extracted.work_items:
            st.session_state.extraction_notice = (
                "No work items were found in this document. You can add them by hand."
            )
        st.rerun()

    # Step 3: Review, edit, export, promote
    if st.session_state.upload_state == "reviewing":
        table: LineItemTable = st.session_state.table

        notice = st.session_state.pop("extraction_notice", None)
        if notice:
            st.warning(notice)

        st.markdown("---")
        st.subheader("📋 Work Items")
        st.markdown("*Edit any cell. Totals and unit prices are recalculated for you.*")

        render_table(table, settings.currency_symbol)

        st.markdown("---")
        render_downloads(flow, table)

        st.markdown("---")
        render_promotion_form(flow, table)

        if st.button("❌ Discard / Start Over"):
            reset_session()
            st.rerun()

    # Step 4: Success
    if st.session_state.upload_state == "promoted":
        result = st.session_state.promotion
        details = st.session_state.details

        st.markdown(f"""
        <div class="success-box">
            <h3>✅ Project and Contract Created</h3>
            <p><strong>Name:</strong> {details.name}</p>
            <p><strong>Client:</strong> {details.client}</p>
            <p><strong>Total:</strong> {settings.currency_symbol}{result.total_value:,.2f}</p>
            <p><strong>Project ID:</strong> {result.project_id}</p>
            <p><strong>Contract ID:</strong> {result.contract_id}</p>
        </div>
        """, unsafe_allow_html=True)

        if st.session_state.promotion_warnings:
            st.warning(st.session_state.promotion_warnings)

        if st.button("📤 Upload Another Document"):
            reset_session()
            st.rerun()


def render_promotion_form(flow: WorkItemsFlow, table: LineItemTable):
    """Header fields and the explicit promotion action."""
    st.subheader("🏗️ Create Project and Contract")
    details: DocumentDetails = st.session_state.details

    with st.form("promotion_form"):
        col1, col2 = st.columns(2)
        with col1:
            custom_id = st.text_input("Document ID", value=details.custom_id)
            name = st.text_input("Project name *", value=details.name)
        with col2:
            client = st.text_input("Client *", value=details.client)
            client_representative = st.text_input(
                "Client representative",
                value=details.client_representative,
            )

        submitted = st.form_submit_button("✅ Create Project", type="primary")

    if not submitted:
        return

    details = DocumentDetails(
        custom_id=custom_id,
        name=name,
        client=client,
        client_representative=client_representative,
    )
    st.session_state.details = details
    correlation_id = st.session_state.correlation_id

    try:
        validation, message = run_async(
            flow.validate_promotion(details, table, correlation_id)
        )
        if not validation.can_promote:
            st.error(message)
            return

        result = run_async(flow.promote(details, table, correlation_id))
    except PromotionRejectedError as e:
        st.error(str(e))
        return
    except Exception as e:
        st.error(f"Failed to save: {e}")
        return

    st.session_state.promotion = result
    st.session_state.promotion_warnings = message if validation.warnings else None
    st.session_state.upload_state = "promoted"
    st.rerun()


def render_projects_page(flow: WorkItemsFlow):
    """Render the list of promoted projects."""
    st.title("📁 Projects")
    settings = get_settings().app

    client_filter = st.text_input("Filter by client", placeholder="Client name")

    try:
        projects = run_async(
            flow.record_storage.list_projects(client=client_filter or None)
        )
    except Exception as e:
        st.error(f"Could not load projects: {e}")
        return

    if not projects:
        st.info(
            "📋 Projects will appear here once you create them. "
            "Use the 'Upload Document' page to add your first one."
        )
        return

    for project in projects:
        with st.expander(
            f"{project.custom_id} · {project.title} · "
            f"{settings.currency_symbol}{project.total_value:,.2f}"
        ):
            st.markdown(f"**Client:** {project.client}")
            if project.client_representative:
                st.markdown(f"**Representative:** {project.client_representative}")
            st.markdown(f"**Period:** {project.start_date} → {project.end_date}")
            st.table([
                {
                    "Task": task.title,
                    "Quantity": format_number(task.quantity),
                    "Unit price": f"{task.unit_price:,.2f}",
                    "Value": f"{task.value:,.2f}",
                    "Status": task.status.value,
                }
                for task in project.tasks
            ])


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Gemini (Work-Item Extraction)", "gemini"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
