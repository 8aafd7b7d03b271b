from __future__ import annotations

import unittest
from unittest.mock import Mock

from pharmacy_core.services.invalidation_service import InvalidationBus, InvalidationTopic


class InvalidationBusTests(unittest.TestCase):
    def test_publish_reaches_only_matching_subscribers(self) -> None:
        bus = InvalidationBus()
        inventory_listener = Mock()
        ledger_listener = Mock()
        bus.subscribe(InvalidationTopic.INVENTORY_CHANGED, inventory_listener)
        bus.subscribe('ledger-changed', ledger_listener)

        bus.publish('inventory-changed')

        inventory_listener.assert_called_once_with('inventory-changed')
        ledger_listener.assert_not_called()

    def test_unsubscribe_stops_delivery(self) -> None:
        bus = InvalidationBus()
        listener = Mock()
        unsubscribe = bus.subscribe(InvalidationTopic.RETURNS_CHANGED, listener)

        unsubscribe()
        unsubscribe()
        bus.publish(InvalidationTopic.RETURNS_CHANGED)

        listener.assert_not_called()

    def test_failing_subscriber_is_logged_and_others_still_run(self) -> None:
        bus = InvalidationBus()
        broken = Mock(side_effect=RuntimeError('boom'))
        healthy = Mock()
        bus.subscribe(InvalidationTopic.LEDGER_CHANGED, broken)
        bus.subscribe(InvalidationTopic.LEDGER_CHANGED, healthy)

        with self.assertLogs('pharmacy_core.services.invalidation_service', level='ERROR'):
            bus.publish(InvalidationTopic.LEDGER_CHANGED)

        healthy.assert_called_once_with('ledger-changed')

    def test_publish_without_subscribers_is_a_no_op(self) -> None:
        InvalidationBus().publish('nobody-listens')


if __name__ == '__main__':
    unittest.main()
