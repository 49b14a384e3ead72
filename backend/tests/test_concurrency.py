# Overview: Threaded tests for the write lock; oversell protection, balance totals and document numbers.

"""
Concurrency tests against a file-backed SQLite database.

Each worker thread gets its own app context (and so its own session); the
write lock taken by every unit of work must serialize them.
"""
import os
import tempfile
import threading
import unittest
from decimal import Decimal

from tokoberas import create_app
from tokoberas.errors import InsufficientStockError
from tokoberas.extensions import db
from tokoberas.models import CashFlow, FinancialAccount, Product, Sale
from tokoberas.services import account_service, sales_service
from tokoberas.validation import LineItem


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "TESTING": True,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()
            account_service.seed_default_accounts()

            product = Product(
                code="BR-KONK",
                name="Beras Rojolele 5kg",
                category="beras",
                unit="karung",
                stock=5,
                purchase_price=Decimal("10000"),
                selling_price=Decimal("15000"),
                min_stock=0,
                is_active=True,
            )
            db.session.add(product)
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run(self, targets):
        threads = [threading.Thread(target=t) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def _sell(self, quantity, results, lock):
        def worker():
            with self.app.app_context():
                try:
                    sale = sales_service.create_sale(
                        items=[LineItem(self.product_id, quantity)], payment_method="cash"
                    )
                    with lock:
                        results.append(sale.sale_number)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()
        return worker

    def test_concurrent_sales_cannot_oversell(self):
        results = []
        lock = threading.Lock()

        self._run([self._sell(4, results, lock), self._sell(3, results, lock)])

        errors = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(results), 2)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InsufficientStockError)

        with self.app.app_context():
            stock = db.session.get(Product, self.product_id).stock
            self.assertIn(stock, (1, 2))
            self.assertGreaterEqual(stock, 0)
            self.assertEqual(db.session.query(Sale).count(), 1)

    def test_concurrent_cash_sales_add_up(self):
        results = []
        lock = threading.Lock()

        self._run([self._sell(1, results, lock) for _ in range(5)])

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        self.assertEqual(len(set(results)), 5)

        with self.app.app_context():
            cash = db.session.query(FinancialAccount).filter_by(code="1101").one()
            self.assertEqual(cash.current_balance, Decimal("75000"))

            flows = (
                db.session.query(CashFlow)
                .filter_by(account_id=cash.id)
                .order_by(CashFlow.id.asc())
                .all()
            )
            self.assertEqual(
                [f.running_balance for f in flows],
                [Decimal(15000 * n) for n in range(1, 6)],
            )
            self.assertEqual(db.session.get(Product, self.product_id).stock, 0)


if __name__ == "__main__":
    unittest.main()
