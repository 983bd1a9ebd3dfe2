"""Reporting utilities for backend-generated documents."""

from backend.reporting.transactions_export import (
    TransactionsReportData,
    render_transactions_csv,
    render_transactions_pdf,
)

__all__ = ["TransactionsReportData", "render_transactions_csv", "render_transactions_pdf"]
