"""
Test suite for transaction balancer

CRITICAL: Validates posting weights, residual inference and that a
failed transaction never touches any inventory.
"""

import pytest
from decimal import Decimal
from datetime import date

from ledger_engine.accounts import AccountRegistry
from ledger_engine.currency import Amount, ToleranceConfig
from ledger_engine.directives import Cost, Open, Posting, Transaction
from ledger_engine.transactions import TransactionBalancer, posting_weight, price_weight


def amt(number, currency="USD"):
    return Amount(Decimal(number), currency)


def txn(*postings, on=date(2024, 1, 15)):
    return Transaction(on, "test", postings=list(postings))


class TestPostingWeight:
    """Test the balancing weight of a single posting"""

    def test_plain_units(self):
        assert posting_weight(Posting("Assets:Cash", amt('10.00'))) == amt('10.00')

    def test_per_unit_price(self):
        posting = Posting("Assets:Cash", amt('100', 'EUR'), price=amt('1.10'))
        assert posting_weight(posting) == amt('110.00')

    def test_total_price_is_signed(self):
        """Test that @@ uses the total price with the sign of the units"""
        posting = Posting("Assets:Cash", amt('-100', 'EUR'), price=amt('110.00'), price_is_total=True)
        assert posting_weight(posting) == amt('-110.00')
        assert price_weight(amt('100', 'EUR'), amt('110.00'), True) == amt('110.00')

    def test_cost_wins_over_price(self):
        """Test that the cost basis is the weight even when a price is given"""
        posting = Posting("Assets:Broker", amt('10', 'AAPL'),
                          price=amt('200'), cost=Cost(amount=amt('150')))
        assert posting_weight(posting) == amt('1500')

    def test_total_cost(self):
        posting = Posting("Assets:Broker", amt('10', 'AAPL'), cost=Cost(amount=amt('1500'), is_total=True))
        assert posting_weight(posting) == amt('1500')

    def test_elided_posting_has_no_weight(self):
        assert posting_weight(Posting("Assets:Cash")) is None


class TestTransactionBalancer:
    """Test balancing and inference"""

    def setup_method(self):
        """Set up test fixtures"""
        self.registry = AccountRegistry()
        for name in ("Assets:Checking", "Assets:Broker", "Expenses:Food", "Income:Salary",
                     "Equity:Opening"):
            self.registry.open(Open(date(2024, 1, 1), name))
        self.registry.open(Open(date(2024, 1, 1), "Assets:Euro", ["EUR"]))
        self.balancer = TransactionBalancer(self.registry, ToleranceConfig())

    def test_balanced_transaction(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('25.00')),
            Posting("Assets:Checking", amt('-25.00')),
        ))
        assert result.ok
        assert result.inventories["Expenses:Food"].get("USD") == Decimal('25.00')
        assert result.inventories["Assets:Checking"].get("USD") == Decimal('-25.00')

    def test_booking_does_not_touch_accounts(self):
        """Test that the registry inventories change only when the result is installed"""
        self.balancer.book(txn(
            Posting("Expenses:Food", amt('25.00')),
            Posting("Assets:Checking", amt('-25.00')),
        ))
        assert self.registry.get("Expenses:Food").inventory.get("USD") == Decimal('0')

    def test_within_tolerance(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('25.004')),
            Posting("Assets:Checking", amt('-25.00')),
        ))
        assert result.ok

    def test_imbalance(self):
        """Test one TransactionImbalance for the offending currency"""
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('25.01')),
            Posting("Assets:Checking", amt('-25.00')),
        ))
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.code == "TransactionImbalance"
        assert error.currency == "USD"
        assert error.residual == Decimal('0.01')
        assert result.inventories == {}

    def test_imbalance_per_currency(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('1.00')),
            Posting("Assets:Checking", amt('2.00', 'EUR')),
        ))
        assert [e.currency for e in result.errors] == ["EUR", "USD"]

    def test_tolerance_override(self):
        tolerances = ToleranceConfig()
        tolerances.set('USD', Decimal('0.02'))
        balancer = TransactionBalancer(self.registry, tolerances)
        result = balancer.book(txn(
            Posting("Expenses:Food", amt('25.01')),
            Posting("Assets:Checking", amt('-25.00')),
        ))
        assert result.ok

    def test_infer_elided_amount(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('12.50')),
            Posting("Expenses:Food", amt('7.50')),
            Posting("Assets:Checking"),
        ))
        assert result.ok
        inferred = result.postings[2]
        assert inferred.inferred
        assert inferred.units == amt('-20.00')
        assert result.inventories["Assets:Checking"].get("USD") == Decimal('-20.00')

    def test_infer_through_price(self):
        """Test inference in the price currency of a converted posting"""
        result = self.balancer.book(txn(
            Posting("Assets:Euro", amt('100', 'EUR'), price=amt('1.10')),
            Posting("Assets:Checking"),
        ))
        assert result.ok
        assert result.postings[1].units == amt('-110.00')

    def test_balanced_currency_ignored_for_inference(self):
        """Test that a currency already balanced does not make inference ambiguous"""
        result = self.balancer.book(txn(
            Posting("Assets:Euro", amt('10', 'EUR')),
            Posting("Assets:Euro", amt('-10', 'EUR')),
            Posting("Expenses:Food", amt('5.00')),
            Posting("Assets:Checking"),
        ))
        assert result.ok
        assert result.postings[3].units == amt('-5.00')

    def test_two_elided_postings(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('5.00')),
            Posting("Assets:Checking"),
            Posting("Assets:Broker"),
        ))
        assert [e.code for e in result.errors] == ["AmbiguousResidualAmount"]
        assert result.inventories == {}

    def test_elided_with_multiple_currencies(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('5.00')),
            Posting("Assets:Euro", amt('3.00', 'EUR')),
            Posting("Assets:Checking"),
        ))
        assert [e.code for e in result.errors] == ["AmbiguousResidualAmount"]
        assert result.errors[0].currencies == ["EUR", "USD"]
        assert result.inventories == {}

    def test_currency_constraint(self):
        result = self.balancer.book(txn(
            Posting("Assets:Euro", amt('5.00')),
            Posting("Assets:Checking", amt('-5.00')),
        ))
        assert [e.code for e in result.errors] == ["CurrencyConstraintViolation"]

    def test_currency_constraint_on_inferred_amount(self):
        result = self.balancer.book(txn(
            Posting("Expenses:Food", amt('5.00')),
            Posting("Assets:Euro"),
        ))
        assert [e.code for e in result.errors] == ["CurrencyConstraintViolation"]


class TestLotBooking:
    """Test augmentations and reductions at cost"""

    def setup_method(self):
        """Set up test fixtures"""
        self.registry = AccountRegistry()
        self.registry.open(Open(date(2024, 1, 1), "Assets:Checking"))
        self.registry.open(Open(date(2024, 1, 1), "Assets:Broker"))
        self.registry.open(Open(date(2024, 1, 1), "Income:Gains"))
        self.balancer = TransactionBalancer(self.registry, ToleranceConfig())

    def install(self, result):
        for name, inventory in result.inventories.items():
            self.registry.get(name).inventory = inventory

    def buy(self, units, cost, on):
        result = self.balancer.book(txn(
            Posting("Assets:Broker", amt(units, 'AAPL'), cost=Cost(amount=amt(cost))),
            Posting("Assets:Checking"),
            on=on,
        ))
        assert result.ok
        self.install(result)
        return result

    def test_augmentation_creates_lot(self):
        """Test that the lot date defaults to the transaction date"""
        self.buy('10', '100', date(2024, 1, 10))
        lots = self.registry.get("Assets:Broker").inventory.lots("AAPL")

        assert len(lots) == 1
        assert lots[0].spec.cost == Decimal('100')
        assert lots[0].spec.date == date(2024, 1, 10)
        assert self.registry.get("Assets:Checking").inventory.get("USD") == Decimal('-1000')

    def test_reduction_weighs_booked_lots(self):
        """Test that an empty cost spec is booked FIFO and weighed at lot cost"""
        self.buy('10', '100', date(2024, 1, 10))
        self.buy('10', '120', date(2024, 1, 11))

        result = self.balancer.book(txn(
            Posting("Assets:Broker", amt('-15', 'AAPL'), cost=Cost(), price=amt('130')),
            Posting("Assets:Checking", amt('1950')),
            Posting("Income:Gains"),
            on=date(2024, 2, 1),
        ))
        assert result.ok
        # 10 * 100 + 5 * 120 = 1600 booked, 1950 received
        assert result.postings[0].weight == amt('-1600')
        assert result.postings[2].units == amt('-350')

    def test_failed_reduction(self):
        self.buy('10', '100', date(2024, 1, 10))
        result = self.balancer.book(txn(
            Posting("Assets:Broker", amt('-11', 'AAPL'), cost=Cost()),
            Posting("Assets:Checking"),
        ))
        assert [e.code for e in result.errors] == ["InventoryReductionFailed"]

    def test_infer_cost_of_augmentation(self):
        """Test that an empty cost on a purchase is inferred from the residual"""
        result = self.balancer.book(txn(
            Posting("Assets:Broker", amt('4', 'AAPL'), cost=Cost()),
            Posting("Assets:Checking", amt('-500')),
        ))
        assert result.ok
        lot = result.inventories["Assets:Broker"].lots("AAPL")[0]
        assert lot.spec.cost == Decimal('125')
        assert lot.spec.cost_currency == "USD"

    def test_merge_cost_rejected(self):
        result = self.balancer.book(txn(
            Posting("Assets:Broker", amt('-4', 'AAPL'), cost=Cost(is_merge=True)),
            Posting("Assets:Checking"),
        ))
        assert [e.code for e in result.errors] == ["InvalidCost"]

    def test_cost_on_elided_posting_rejected(self):
        result = self.balancer.book(txn(
            Posting("Assets:Checking", amt('-500')),
            Posting("Assets:Broker", cost=Cost()),
        ))
        assert [e.code for e in result.errors] == ["InvalidCost"]

    def test_cannot_infer_amount_and_cost(self):
        result = self.balancer.book(txn(
            Posting("Assets:Broker", amt('4', 'AAPL'), cost=Cost()),
            Posting("Assets:Checking"),
        ))
        assert [e.code for e in result.errors] == ["AmbiguousResidualAmount"]
