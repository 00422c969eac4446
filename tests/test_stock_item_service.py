from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rep_stock.errors import InvalidArgumentError, NotFoundError
from rep_stock.models import StockAllocation, StockItem, StockMovement, UserRole
from rep_stock.services import stock_item_service
from rep_stock.services.stock_ledger_service import move_stock
from support import add_category, add_item, add_user, memory_session_factory


class PriceConversionTests(unittest.TestCase):
    def test_price_to_cents(self) -> None:
        self.assertEqual(stock_item_service.price_to_cents('10.99'), 1099)
        self.assertEqual(stock_item_service.price_to_cents('0.005'), 1)
        self.assertEqual(stock_item_service.price_to_cents(3), 300)
        self.assertEqual(stock_item_service.price_to_cents(''), 0)
        self.assertEqual(stock_item_service.price_to_cents(None), 0)

    def test_price_to_cents_rejects_garbage_and_negatives(self) -> None:
        for raw in ('abc', '-1.00', 'NaN'):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidArgumentError):
                    stock_item_service.price_to_cents(raw)

    def test_cents_to_price(self) -> None:
        self.assertEqual(str(stock_item_service.cents_to_price(1099)), '10.99')
        self.assertEqual(str(stock_item_service.cents_to_price(None)), '0.00')


class ParseExpiryTests(unittest.TestCase):
    def test_blank_is_none(self) -> None:
        self.assertIsNone(stock_item_service.parse_expiry(''))
        self.assertIsNone(stock_item_service.parse_expiry(None))

    def test_date_only_is_midnight_utc(self) -> None:
        self.assertEqual(
            stock_item_service.parse_expiry('2027-01-31'),
            datetime(2027, 1, 31, tzinfo=timezone.utc),
        )

    def test_offsets_are_normalised_to_utc(self) -> None:
        self.assertEqual(
            stock_item_service.parse_expiry('2027-01-31T02:00:00+02:00'),
            datetime(2027, 1, 31, tzinfo=timezone.utc),
        )
        self.assertEqual(
            stock_item_service.parse_expiry('2027-01-31T00:00:00Z'),
            datetime(2027, 1, 31, tzinfo=timezone.utc),
        )

    def test_invalid_date_is_rejected(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            stock_item_service.parse_expiry('not a date')


class StockItemServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = memory_session_factory()()
        self.manager = add_user(self.db, 'manager', UserRole.SALES_MANAGER)
        self.rep = add_user(self.db, 'rep')
        self.category = add_category(self.db)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _create(self, **overrides):
        values = {
            'name': 'Cardio Pack',
            'category_id': self.category.id,
            'quantity': 50,
            'created_by': self.manager.id,
        }
        values.update(overrides)
        return stock_item_service.create_stock_item(self.db, **values)

    def test_create_defaults_optional_fields(self) -> None:
        item = self._create()
        self.assertEqual(item.price, 0)
        self.assertIsNone(item.specialty_id)
        self.assertIsNone(item.expiry)
        self.assertIsNone(item.unique_number)
        self.assertIsNone(item.image_url)
        self.assertIsNone(item.notes)
        self.assertEqual(stock_item_service.get_stock_item(self.db, item.id).name, 'Cardio Pack')

    def test_create_validates_fields(self) -> None:
        cases = [
            {'name': 'X'},
            {'quantity': -1},
            {'price': -5},
            {'category_id': None},
            {'category_id': 999},
            {'specialty_id': 999},
            {'quantity': 2**31},
            {'price': 2**31},
        ]
        for overrides in cases:
            with self.subTest(overrides=overrides):
                with self.assertRaises(InvalidArgumentError):
                    self._create(**overrides)

    def test_update_applies_partial_changes(self) -> None:
        item = self._create()
        updated = stock_item_service.update_stock_item(self.db, item.id, {'notes': 'shelf B', 'price': 250})
        self.assertEqual(updated.notes, 'shelf B')
        self.assertEqual(updated.price, 250)
        self.assertEqual(updated.quantity, 50)

    def test_update_rejects_unknown_fields(self) -> None:
        item = self._create()
        with self.assertRaises(InvalidArgumentError):
            stock_item_service.update_stock_item(self.db, item.id, {'created_by': 1})

    def test_quantity_cannot_drop_below_allocated(self) -> None:
        item = self._create(quantity=50)
        move_stock(self.db, stock_item_id=item.id, quantity=30, to_user_id=self.rep.id, moved_by=self.manager.id)
        self.db.commit()

        with self.assertRaises(InvalidArgumentError):
            stock_item_service.update_stock_item(self.db, item.id, {'quantity': 29})
        updated = stock_item_service.update_stock_item(self.db, item.id, {'quantity': 30})
        self.assertEqual(updated.quantity, 30)

    def test_update_locks_the_item_and_reads_fresh_state(self) -> None:
        item = self._create(quantity=50)
        self.db.commit()

        other = Session(self.db.get_bind())
        other.get(StockItem, item.id).quantity = 80
        other.commit()
        other.close()

        with patch.object(stock_item_service, 'lock_stock_item', wraps=stock_item_service.lock_stock_item) as lock:
            updated = stock_item_service.update_stock_item(self.db, item.id, {'notes': 'recounted'})
        lock.assert_called_once_with(self.db, item.id)
        self.assertEqual(updated.quantity, 80)

    def test_update_rejects_out_of_range_integers(self) -> None:
        item = self._create()
        for changes in ({'quantity': 10**12}, {'price': 10**12}):
            with self.subTest(changes=changes):
                with self.assertRaises(InvalidArgumentError):
                    stock_item_service.update_stock_item(self.db, item.id, changes)

    def test_delete_removes_allocations_and_keeps_movements(self) -> None:
        item = self._create(image_url='/uploads/image-1.png')
        move_stock(self.db, stock_item_id=item.id, quantity=5, to_user_id=self.rep.id, moved_by=self.manager.id)
        self.db.commit()

        deleted = stock_item_service.delete_stock_item(self.db, item.id)
        self.db.commit()

        self.assertEqual(deleted.image_url, '/uploads/image-1.png')
        with self.assertRaises(NotFoundError):
            stock_item_service.get_stock_item(self.db, item.id)
        allocations = self.db.execute(select(func.count(StockAllocation.id))).scalar_one()
        movements = self.db.execute(select(func.count(StockMovement.id))).scalar_one()
        self.assertEqual(allocations, 0)
        self.assertEqual(movements, 1)

    def test_delete_unknown_item_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            stock_item_service.delete_stock_item(self.db, 12345)

    def test_list_by_category(self) -> None:
        other = add_category(self.db, name='Brochures')
        first = self._create()
        self._create(name='Leaflet', category_id=other.id)
        self.assertEqual([i.id for i in stock_item_service.list_stock_items_by_category(self.db, self.category.id)], [first.id])
        self.assertEqual(len(stock_item_service.list_stock_items(self.db)), 2)


class ExpiringItemsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = memory_session_factory()()
        self.user = add_user(self.db, 'manager', UserRole.STOCK_MANAGER)
        self.category = add_category(self.db)
        self.now = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

    def tearDown(self) -> None:
        self.db.close()

    def _item(self, name: str, expiry):
        return add_item(self.db, category=self.category, created_by=self.user, name=name, expiry=expiry)

    def test_only_items_inside_the_window_are_returned(self) -> None:
        self._item('expired', self.now - timedelta(days=1))
        soon = self._item('soon', self.now + timedelta(days=5))
        edge = self._item('edge', self.now + timedelta(days=30))
        self._item('later', self.now + timedelta(days=31))
        self._item('no expiry', None)
        self.db.commit()

        result = stock_item_service.get_expiring_items(self.db, 30, now=self.now)
        self.assertEqual([i.id for i in result], [soon.id, edge.id])

    def test_large_windows_are_allowed(self) -> None:
        far = self._item('far', self.now + timedelta(days=3650))
        self.db.commit()
        result = stock_item_service.get_expiring_items(self.db, 10**6, now=self.now)
        self.assertEqual([i.id for i in result], [far.id])

    def test_days_must_be_positive_integer(self) -> None:
        for days in (0, -1, 2.5, True):
            with self.subTest(days=days):
                with self.assertRaises(InvalidArgumentError):
                    stock_item_service.get_expiring_items(self.db, days, now=self.now)


if __name__ == '__main__':
    unittest.main()
