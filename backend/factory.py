"""Composition root for backend services."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from backend.auth.supabase_auth import SupabaseAuthClient
from backend.db.supabase_client import SupabaseClient, SupabaseSettings
from backend.repositories.documents_repository import (
    DocumentsRepository,
    InMemoryDocumentsRepository,
    SupabaseDocumentsRepository,
)
from backend.repositories.export_logs_repository import ExportLogsRepository
from backend.repositories.statements_repository import StatementsRepository
from backend.repositories.transactions_repository import TransactionsRepository
from backend.repositories.users_repository import UsersRepository
from backend.services.auth_service import AuthService
from backend.services.export_service import ExportService
from backend.services.finance_service import FinanceService
from backend.services.storage_service import StorageService
from backend.storage.supabase_storage import InMemoryStorageClient, StorageClient, SupabaseStorageClient
from shared import config


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BackendServices:
    documents: DocumentsRepository
    users_repository: UsersRepository
    storage_service: StorageService
    finance_service: FinanceService
    export_service: ExportService
    auth_service: AuthService | None = None


def build_backend_services() -> BackendServices:
    """Build services over Supabase when configured, in-memory adapters otherwise."""

    supabase_url = config.supabase_url()
    supabase_key = config.supabase_service_role_key()
    anon_key = config.supabase_anon_key()

    documents: DocumentsRepository
    storage: StorageClient
    if supabase_url and supabase_key:
        client = SupabaseClient(
            settings=SupabaseSettings(
                url=supabase_url,
                service_role_key=supabase_key,
                anon_key=anon_key,
            )
        )
        documents = SupabaseDocumentsRepository(client=client)
        storage = SupabaseStorageClient(
            url=supabase_url,
            service_role_key=supabase_key,
            bucket=config.storage_bucket(),
        )
        logger.info("backend_services_mode=supabase bucket=%s", config.storage_bucket())
    else:
        documents = InMemoryDocumentsRepository()
        storage = InMemoryStorageClient(bucket=config.storage_bucket())
        logger.info("backend_services_mode=in_memory")

    users_repository = UsersRepository(documents)
    storage_service = StorageService(storage=storage)
    finance_service = FinanceService(
        statements_repository=StatementsRepository(documents),
        transactions_repository=TransactionsRepository(documents),
        storage_service=storage_service,
    )
    export_service = ExportService(
        finance_service=finance_service,
        storage_service=storage_service,
        export_logs_repository=ExportLogsRepository(documents),
        users_repository=users_repository,
    )

    auth_service: AuthService | None = None
    if supabase_url and anon_key:
        auth_service = AuthService(
            auth_client=SupabaseAuthClient(url=supabase_url, anon_key=anon_key),
            users_repository=users_repository,
        )

    return BackendServices(
        documents=documents,
        users_repository=users_repository,
        storage_service=storage_service,
        finance_service=finance_service,
        export_service=export_service,
        auth_service=auth_service,
    )
