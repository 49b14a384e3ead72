# Overview: Pytest coverage for account lookup, balance policies and payment routing.

from decimal import Decimal

import pytest

from tokoberas.errors import AccountNotFoundError, InsufficientBalanceError, ValidationError
from tokoberas.models import FinancialAccount
from tokoberas.services import account_service
from tokoberas.services.account_service import DECREASE, INCREASE, PaymentAccountPolicy

from conftest import set_balance


class TestSeedAndLookup:
    def test_seed_creates_default_accounts_once(self, db_session):
        first = account_service.seed_default_accounts()
        second = account_service.seed_default_accounts()

        assert sorted(a.code for a in first) == ["1101", "1102", "1301", "5101"]
        assert second == []
        assert db_session.query(FinancialAccount).count() == 4

    def test_inventory_account_clamps_and_is_not_auto_updated(self, accounts):
        inventory = accounts["1301"]
        assert inventory.negative_balance_policy == "clamp"
        assert inventory.auto_update_balance is False

    def test_get_account_by_code(self, accounts):
        account = account_service.get_account(code="1102")
        assert account.name == "Bank BCA"

    def test_get_account_missing_raises(self, accounts):
        with pytest.raises(AccountNotFoundError):
            account_service.get_account(code="9999")

    def test_inactive_account_is_not_found_when_active_required(self, db_session, accounts):
        accounts["1102"].is_active = False
        db_session.commit()

        with pytest.raises(AccountNotFoundError):
            account_service.get_account(code="1102")
        assert account_service.get_account(code="1102", require_active=False).id == accounts["1102"].id

    def test_create_account_rejects_duplicate_code(self, accounts):
        with pytest.raises(ValidationError):
            account_service.create_account(code="1101", name="Kas Kedua", account_type="cash")

    def test_create_account_sets_opening_balance(self, accounts):
        account = account_service.create_account(
            code="1103", name="Bank Mandiri", account_type="bank", bank_name="Mandiri", opening_balance=250000
        )
        assert account.opening_balance == Decimal("250000")
        assert account.current_balance == Decimal("250000")

    def test_create_account_requires_code_and_name(self, accounts):
        with pytest.raises(ValidationError):
            account_service.create_account(code="", name="Kas Cadangan", account_type="cash")
        with pytest.raises(ValidationError):
            account_service.create_account(code="1104", name="   ", account_type="cash")

    def test_create_account_rejects_non_numeric_opening_balance(self, accounts):
        with pytest.raises(ValidationError):
            account_service.create_account(
                code="1104", name="Kas Cadangan", account_type="cash", opening_balance="abc"
            )


class TestAdjustBalance:
    def test_increase(self, db_session, accounts):
        cash = accounts["1101"]
        change = account_service.adjust_balance(cash, 30000, INCREASE)

        assert change.balance_before == Decimal("0")
        assert change.balance_after == Decimal("30000")
        assert cash.current_balance == Decimal("30000")
        assert not change.clamped

    def test_allow_policy_goes_negative(self, db_session, accounts):
        cash = accounts["1101"]
        change = account_service.adjust_balance(cash, 5000, DECREASE)
        assert change.balance_after == Decimal("-5000")
        assert change.applied == Decimal("5000")

    def test_clamp_policy_stops_at_zero(self, db_session, accounts, caplog):
        inventory = accounts["1301"]
        set_balance(inventory, 1000)

        change = account_service.adjust_balance(inventory, 1500, DECREASE)

        assert change.applied == Decimal("1000")
        assert change.balance_after == Decimal("0")
        assert change.clamped
        assert "clamped" in caplog.text

    def test_reject_policy_raises(self, db_session, accounts):
        bank = accounts["1102"]
        bank.negative_balance_policy = "reject"
        set_balance(bank, 100)

        with pytest.raises(InsufficientBalanceError):
            account_service.adjust_balance(bank, 500, DECREASE)
        assert bank.current_balance == Decimal("100")

    def test_non_positive_amount_rejected(self, accounts):
        with pytest.raises(ValidationError):
            account_service.adjust_balance(accounts["1101"], 0, INCREASE)


class TestSufficientBalance:
    def test_message_names_available_and_required(self, accounts):
        set_balance(accounts["1101"], 1000000)
        with pytest.raises(InsufficientBalanceError) as exc:
            account_service.ensure_sufficient_balance(accounts["1101"], 5800000)
        assert "Available: Rp 1.000.000" in str(exc.value)
        assert "Required: Rp 5.800.000" in str(exc.value)

    def test_exact_balance_is_enough(self, accounts):
        set_balance(accounts["1101"], 5000)
        account_service.ensure_sufficient_balance(accounts["1101"], 5000)


class TestPaymentAccountPolicy:
    def test_cash_routes_to_cash_account(self, accounts):
        assert PaymentAccountPolicy().resolve("cash").code == "1101"

    @pytest.mark.parametrize("method", ["transfer", "debit", "credit"])
    def test_electronic_methods_route_to_designated_bank(self, accounts, method):
        assert PaymentAccountPolicy().resolve(method).code == "1102"

    def test_unmapped_method_raises(self, accounts):
        with pytest.raises(AccountNotFoundError) as exc:
            PaymentAccountPolicy().resolve("qris")
        assert str(exc.value) == "Account not found for payment method qris"

    def test_inactive_mapped_account_raises_instead_of_falling_back(self, db_session, accounts):
        accounts["1102"].is_active = False
        db_session.commit()

        with pytest.raises(AccountNotFoundError) as exc:
            PaymentAccountPolicy().resolve("transfer")
        assert "transfer" in str(exc.value)

    def test_explicit_mapping_overrides_config(self, accounts):
        policy = PaymentAccountPolicy({"transfer": "1101"})
        assert policy.resolve("transfer").code == "1101"
