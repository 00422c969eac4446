from __future__ import annotations

import unittest

from sqlalchemy import func, select

from rep_stock.errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from rep_stock.models import StockAllocation, StockMovement, UserRole
from rep_stock.services.stock_ledger_service import (
    CENTRAL_INVENTORY,
    allocated_total,
    central_available,
    list_allocations,
    list_movements,
    move_stock,
    resolve_source_balance,
)
from support import add_category, add_item, add_user, memory_session_factory


class StockLedgerServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = memory_session_factory()()
        self.manager = add_user(self.db, 'manager', UserRole.SALES_MANAGER)
        self.u1 = add_user(self.db, 'rep1')
        self.u2 = add_user(self.db, 'rep2')
        self.category = add_category(self.db)
        self.item = add_item(self.db, category=self.category, created_by=self.manager, quantity=100)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _allocation(self, user) -> int:
        row = self.db.execute(
            select(StockAllocation).where(
                StockAllocation.user_id == user.id,
                StockAllocation.stock_item_id == self.item.id,
            )
        ).scalar_one_or_none()
        return row.quantity if row else 0

    def _movement_count(self) -> int:
        return self.db.execute(select(func.count(StockMovement.id))).scalar_one()

    def _move(self, quantity, to_user, from_user=None, notes=None) -> StockMovement:
        movement = move_stock(
            self.db,
            stock_item_id=self.item.id,
            quantity=quantity,
            from_user_id=from_user.id if from_user else None,
            to_user_id=to_user.id if to_user else None,
            moved_by=self.manager.id,
            notes=notes,
        )
        self.db.commit()
        return movement

    def test_central_to_user_then_user_to_user_then_shortfall(self) -> None:
        self._move(30, self.u1)
        self.assertEqual(self._allocation(self.u1), 30)
        self.assertEqual(central_available(self.db, self.item), 70)

        self._move(10, self.u2, from_user=self.u1)
        self.assertEqual(self._allocation(self.u1), 20)
        self.assertEqual(self._allocation(self.u2), 10)

        with self.assertRaises(InsufficientStockError) as ctx:
            self._move(25, self.u2, from_user=self.u1)
        self.db.rollback()
        self.assertEqual(ctx.exception.holder, f'user {self.u1.id}')
        self.assertEqual(ctx.exception.available, 20)
        self.assertEqual(ctx.exception.shortfall, 5)
        self.assertIn('requested 25, available 20', str(ctx.exception))
        self.assertEqual(self._allocation(self.u1), 20)
        self.assertEqual(self._allocation(self.u2), 10)
        self.assertEqual(self._movement_count(), 2)

    def test_total_quantity_is_unchanged_by_movements(self) -> None:
        self._move(40, self.u1)
        self._move(15, self.u2, from_user=self.u1)
        self.db.refresh(self.item)
        self.assertEqual(self.item.quantity, 100)
        self.assertEqual(allocated_total(self.db, self.item.id), 40)
        self.assertEqual(central_available(self.db, self.item), 60)

    def test_moving_more_than_central_leaves_everything_unchanged(self) -> None:
        self._move(90, self.u1)
        with self.assertRaises(InsufficientStockError) as ctx:
            self._move(11, self.u2)
        self.db.rollback()
        self.assertEqual(ctx.exception.holder, CENTRAL_INVENTORY)
        self.assertIn('central inventory', str(ctx.exception))
        self.assertEqual(self._allocation(self.u2), 0)
        self.assertEqual(self._movement_count(), 1)

    def test_entire_central_pool_can_be_allocated(self) -> None:
        self._move(100, self.u1)
        self.assertEqual(central_available(self.db, self.item), 0)
        self.assertLessEqual(allocated_total(self.db, self.item.id), self.item.quantity)

    def test_source_without_allocation_has_nothing_available(self) -> None:
        balance = resolve_source_balance(self.db, self.item, self.u2.id)
        self.assertEqual(balance.available, 0)
        self.assertIsNone(balance.allocation)
        with self.assertRaises(InsufficientStockError):
            self._move(1, self.u1, from_user=self.u2)

    def test_movement_record_captures_the_transfer(self) -> None:
        self._move(5, self.u1)
        movement = self._move(3, self.u2, from_user=self.u1, notes='conference samples')
        self.assertIsNotNone(movement.id)
        self.assertEqual(movement.stock_item_id, self.item.id)
        self.assertEqual(movement.from_user_id, self.u1.id)
        self.assertEqual(movement.to_user_id, self.u2.id)
        self.assertEqual(movement.quantity, 3)
        self.assertEqual(movement.notes, 'conference samples')
        self.assertEqual(movement.moved_by, self.manager.id)
        self.assertIsNotNone(movement.moved_at)

    def test_central_movement_has_no_source_user(self) -> None:
        movement = self._move(5, self.u1)
        self.assertIsNone(movement.from_user_id)
        self.assertIsNone(movement.notes)

    def test_each_successful_move_appends_exactly_one_movement(self) -> None:
        for expected in range(1, 4):
            self._move(1, self.u1)
            self.assertEqual(self._movement_count(), expected)

    def test_repeat_destination_reuses_allocation_row(self) -> None:
        self._move(5, self.u1)
        self._move(7, self.u1)
        rows = list_allocations(self.db, user_id=self.u1.id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].quantity, 12)
        self.assertEqual(rows[0].allocated_by, self.manager.id)

    def test_unknown_stock_item_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            move_stock(self.db, stock_item_id=9999, quantity=1, to_user_id=self.u1.id, moved_by=self.manager.id)

    def test_non_positive_or_non_integer_quantity_is_rejected(self) -> None:
        for quantity in (0, -3, 1.5, True, '2'):
            with self.subTest(quantity=quantity):
                with self.assertRaises(InvalidArgumentError):
                    self._move(quantity, self.u1)
        self.assertEqual(self._movement_count(), 0)

    def test_missing_or_unknown_destination_is_rejected(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            self._move(1, None)
        with self.assertRaises(InvalidArgumentError):
            move_stock(self.db, stock_item_id=self.item.id, quantity=1, to_user_id=4242, moved_by=self.manager.id)

    def test_source_and_destination_must_differ(self) -> None:
        self._move(5, self.u1)
        with self.assertRaises(InvalidArgumentError):
            self._move(1, self.u1, from_user=self.u1)
        self.assertEqual(self._allocation(self.u1), 5)

    def test_list_movements_filters_and_orders_newest_first(self) -> None:
        other = add_item(self.db, category=self.category, created_by=self.manager, quantity=10, name='Item Y')
        first = self._move(5, self.u1)
        second = self._move(2, self.u2, from_user=self.u1)
        move_stock(self.db, stock_item_id=other.id, quantity=1, to_user_id=self.u2.id, moved_by=self.manager.id)
        self.db.commit()

        for_item = list_movements(self.db, stock_item_id=self.item.id)
        self.assertEqual([m.id for m in for_item], [second.id, first.id])

        for_u1 = list_movements(self.db, user_id=self.u1.id)
        self.assertEqual({m.id for m in for_u1}, {first.id, second.id})

        self.assertEqual(len(list_movements(self.db)), 3)

    def test_list_allocations_for_all_users(self) -> None:
        self._move(5, self.u1)
        self._move(6, self.u2)
        rows = list_allocations(self.db)
        self.assertEqual({(r.user_id, r.quantity) for r in rows}, {(self.u1.id, 5), (self.u2.id, 6)})


if __name__ == '__main__':
    unittest.main()
