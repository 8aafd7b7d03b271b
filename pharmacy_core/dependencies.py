from __future__ import annotations

from functools import lru_cache

from pharmacy_core.config import settings
from pharmacy_core.services.invalidation_service import InvalidationBus
from pharmacy_core.services.inventory_snapshot_cache import InventorySnapshotCache
from pharmacy_core.services.provider_factory import get_returns_gateways
from pharmacy_core.services.reconciliation_common import ReturnCollaborators
from pharmacy_core.services.sql_return_adapters import SqlInventoryGateway, SqlReturnRecordStore, SqlTransactionLookup
from pharmacy_core.services.transaction_cache import InMemoryTransactionCache

invalidation_bus = InvalidationBus()
transaction_cache = InMemoryTransactionCache()


def get_invalidation_bus() -> InvalidationBus:
    return invalidation_bus


def get_transaction_cache() -> InMemoryTransactionCache:
    return transaction_cache


@lru_cache(maxsize=1)
def get_inventory_gateway() -> InventorySnapshotCache:
    gateway = InventorySnapshotCache(SqlInventoryGateway(), ttl_seconds=settings.inventory_cache_ttl_seconds)
    gateway.attach(invalidation_bus)
    return gateway


def get_transaction_lookup() -> SqlTransactionLookup:
    return SqlTransactionLookup()


def get_customer_return_collaborators() -> ReturnCollaborators:
    sale_gateway, _ = get_returns_gateways()
    return ReturnCollaborators(
        returns_gateway=sale_gateway,
        inventory=get_inventory_gateway(),
        record_store=SqlReturnRecordStore(),
        cache=transaction_cache,
        publisher=invalidation_bus,
    )


def get_supplier_return_collaborators() -> ReturnCollaborators:
    _, purchase_gateway = get_returns_gateways()
    return ReturnCollaborators(
        returns_gateway=purchase_gateway,
        inventory=get_inventory_gateway(),
        record_store=SqlReturnRecordStore(),
        cache=transaction_cache,
        publisher=invalidation_bus,
    )
