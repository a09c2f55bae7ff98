"""Request-scoped access to the services built at startup."""

from fastapi import Request

from core.config import AppSettings
from kitchen_sales.importer import SalesImporter
from payments.updater import PaymentStateUpdater
from reconciliation.engine import ReconciliationService
from reconciliation.repository import SheetRepository


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_repository(request: Request) -> SheetRepository:
    return request.app.state.repository


def get_reconciliation_service(request: Request) -> ReconciliationService:
    settings = get_settings(request)
    return ReconciliationService(get_repository(request), settings.discrepancy_epsilon)


def get_payment_updater(request: Request) -> PaymentStateUpdater:
    return PaymentStateUpdater(get_repository(request))


def get_sales_importer(request: Request) -> SalesImporter:
    settings = get_settings(request)
    return SalesImporter(
        get_repository(request), settings.fuzzy_match_threshold, settings.sheet_dates_day_first
    )
