from __future__ import annotations

from functools import lru_cache

from pharmacy_core.config import settings
from pharmacy_core.services.http_returns_gateway import PURCHASES_PATH, SALES_PATH, HttpReturnsGateway
from pharmacy_core.services.server_return_service import SqlPurchaseReturnsGateway, SqlSaleReturnsGateway


@lru_cache(maxsize=1)
def get_returns_gateways():
    """Return ``(sale_gateway, purchase_gateway)`` for the configured server-side return collaborator."""
    provider = settings.returns_gateway.strip().lower()
    if provider == 'http':
        return HttpReturnsGateway(SALES_PATH), HttpReturnsGateway(PURCHASES_PATH)
    return SqlSaleReturnsGateway(), SqlPurchaseReturnsGateway()
