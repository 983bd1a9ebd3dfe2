"""Transaction exports: render, store under exports/ and keep an audit log."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from backend.reporting import TransactionsReportData, render_transactions_csv, render_transactions_pdf
from backend.repositories.export_logs_repository import ExportLogsRepository
from backend.repositories.users_repository import UsersRepository
from backend.services.finance_service import FinanceService
from backend.services.storage_service import StorageService, generate_file_path
from shared import config
from shared.models import (
    ExportLogCreate,
    ExportLogsListResult,
    ExportResult,
    ExportType,
    ServiceError,
    ServiceErrorCode,
    TransactionFilters,
)


logger = logging.getLogger(__name__)


EXPORT_CONTENT_TYPES = {
    ExportType.CSV: "text/csv",
    ExportType.PDF: "application/pdf",
}

EXPORT_LIMIT_MESSAGE = "Export limit reached for your plan."


@dataclass(slots=True)
class ExportService:
    finance_service: FinanceService
    storage_service: StorageService
    export_logs_repository: ExportLogsRepository
    users_repository: UsersRepository | None = None

    def _check_quota(self, user_id: str) -> ServiceError | None:
        if self.users_repository is None:
            return None
        try:
            user_document = self.users_repository.get_user_document(user_id)
            if user_document is None or user_document.subscription.plan != "free":
                return None
            used = self.export_logs_repository.count_user_exports(user_id)
        except Exception as exc:
            logger.exception("export_quota_check_failed user_id=%s", user_id)
            return ServiceError(code=ServiceErrorCode.BACKEND_ERROR, message=str(exc))

        if used >= user_document.subscription.features.max_exports:
            return ServiceError(
                code=ServiceErrorCode.VALIDATION_ERROR,
                message=EXPORT_LIMIT_MESSAGE,
                details={"used": used, "max_exports": user_document.subscription.features.max_exports},
            )
        return None

    def _currency_for(self, user_id: str) -> str:
        if self.users_repository is None:
            return config.default_currency()
        try:
            user_document = self.users_repository.get_user_document(user_id)
        except Exception:
            logger.exception("export_currency_lookup_failed user_id=%s", user_id)
            return config.default_currency()
        return user_document.settings.currency if user_document else config.default_currency()

    def export_transactions(
        self,
        user_id: str,
        export_type: ExportType,
        filters: TransactionFilters | None = None,
    ) -> ExportResult | ServiceError:
        filters = filters or TransactionFilters()
        quota_error = self._check_quota(user_id)
        if quota_error is not None:
            return quota_error

        transactions = self.finance_service.get_user_transactions(user_id, filters)
        if isinstance(transactions, ServiceError):
            return transactions

        if export_type == ExportType.PDF:
            filters_label = f"Category: {filters.category}" if filters.category else ""
            content = render_transactions_pdf(
                TransactionsReportData(
                    title="Transactions export",
                    currency=self._currency_for(user_id),
                    transactions=transactions.items,
                    filters_label=filters_label,
                )
            )
        else:
            content = render_transactions_csv(transactions.items)

        path = generate_file_path(user_id, "export", f"transactions.{export_type.value}")
        upload = self.storage_service.upload_file(
            content,
            path,
            file_name=path.rsplit("/", maxsplit=1)[-1],
            content_type=EXPORT_CONTENT_TYPES[export_type],
            skip_validation=True,
        )
        if isinstance(upload, ServiceError):
            return upload

        try:
            log = self.export_logs_repository.log_export(
                user_id,
                ExportLogCreate(
                    export_type=export_type,
                    format=EXPORT_CONTENT_TYPES[export_type],
                    filters=filters.model_dump(mode="json", exclude_none=True),
                    record_count=len(transactions.items),
                    file_size=len(content),
                    download_url=upload.url,
                ),
            )
        except Exception as exc:
            logger.exception("export_log_failed user_id=%s path=%s", user_id, path)
            return ServiceError(code=ServiceErrorCode.BACKEND_ERROR, message=str(exc))

        logger.info(
            "transactions_exported user_id=%s export_type=%s records=%s",
            user_id,
            export_type.value,
            len(transactions.items),
        )
        return ExportResult(log=log, url=upload.url, file_path=path)

    def list_exports(self, user_id: str, limit: int = 20) -> ExportLogsListResult | ServiceError:
        try:
            items = self.export_logs_repository.list_user_exports(user_id, limit=limit)
        except Exception as exc:
            logger.exception("exports_list_failed user_id=%s", user_id)
            return ServiceError(code=ServiceErrorCode.BACKEND_ERROR, message=str(exc))
        return ExportLogsListResult(items=items)
