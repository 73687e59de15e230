"""
End-to-end tests of the Banker facade over key files and the in-memory ledger.
"""

from unittest.mock import patch

import pytest
from rich.console import Console

from banker.bank import Banker
from banker.config import Config
from banker.display import render_balances, render_report
from banker.models import Balance, PaymentResult
from banker.strategies import DistributionReport
from banker.utils import BankerError, TargetNotFoundError
from banker.wallet import wallet_file_name

from conftest import PASSWORD, FakeClock, FakeLedger, address_only_key, make_address


@pytest.fixture
def wallet_dir(tmp_path):
    directory = tmp_path / "wallets"
    directory.mkdir()
    for i in range(3):
        address_only_key(directory / wallet_file_name(i + 1), make_address(i))
    return directory


def banker_for(directory, ledger=None, **overrides):
    config = Config(api_url="https://ledger.example", password=PASSWORD,
                    working_dir=str(directory), threads=2, key_tier=1, **overrides)
    return Banker(config, gateway=ledger, clock=FakeClock())


class TestBanker:

    def test_create_wallets_skips_existing(self, tmp_path):
        directory = tmp_path / "new"
        banker = banker_for(directory)

        first = banker.create_wallets(2)
        second = banker.create_wallets(3)

        assert [p.name for p in first] == ["wallet_0001.key", "wallet_0002.key"]
        assert [p.name for p in second] == ["wallet_0003.key"]
        assert len(banker.pool) == 3

    def test_create_requires_password(self, tmp_path):
        banker = Banker(Config(working_dir=str(tmp_path)))
        with pytest.raises(BankerError):
            banker.create_wallets(1)

    def test_create_rejects_zero(self, tmp_path):
        with pytest.raises(ValueError):
            banker_for(tmp_path).create_wallets(0)

    def test_balances_sorted(self, wallet_dir):
        ledger = FakeLedger({make_address(0): 3, make_address(1): 2, make_address(2): 1})

        balances = banker_for(wallet_dir, ledger).balances()

        assert [b.key_file for b in balances] == ["wallet_0001.key", "wallet_0002.key", "wallet_0003.key"]
        assert [b.balance for b in balances] == [3, 2, 1]

    def test_max_balance(self, wallet_dir):
        ledger = FakeLedger({make_address(0): 3, make_address(1): 9, make_address(2): 1})

        identity, balance = banker_for(wallet_dir, ledger).max_balance()

        assert identity.address == make_address(1)
        assert balance == 9

    def test_seed_then_collect(self, wallet_dir):
        ledger = FakeLedger({make_address(0): 300, make_address(1): 0, make_address(2): 0})
        banker = banker_for(wallet_dir, ledger)

        banker.seed(make_address(0))
        assert ledger.balances == {make_address(0): 100, make_address(1): 100, make_address(2): 100}

        report = banker.collect(make_address(0))
        assert report.succeeded == 2
        assert ledger.balances[make_address(0)] == 300
        assert banker.metrics.get_summary()["operations"]["payment"]["total"] == 3

    def test_seed_independent(self, wallet_dir):
        ledger = FakeLedger({make_address(0): 300})

        report = banker_for(wallet_dir, ledger).seed_independent(make_address(0))

        assert report.rounds == 1
        assert ledger.balances[make_address(1)] == 100

    def test_sustained_uses_configured_batch_size(self, wallet_dir):
        ledger = FakeLedger({make_address(i): 5 for i in range(3)})

        report = banker_for(wallet_dir, ledger, sustained_batch_size=3).sustained(cycles=2)

        assert len(report.results) == 6
        assert report.failed == 0

    def test_fan_out_dry_run(self, wallet_dir):
        ledger = FakeLedger({make_address(0): 300})

        report = banker_for(wallet_dir, ledger, dry_run=True).fan_out(rounds=1)

        assert report.results[0].committed is False
        assert ledger.balances == {make_address(0): 300}

    def test_sustained_rejects_zero_batch(self, wallet_dir):
        banker = banker_for(wallet_dir, FakeLedger(), sustained_batch_size=3)

        with pytest.raises(ValueError):
            banker.sustained(0, cycles=1)

    def test_fan_out_prints_balances_every_round(self, wallet_dir):
        ledger = FakeLedger({make_address(0): 300})
        banker = banker_for(wallet_dir, ledger, dry_run=True)

        with patch.object(banker, "print_all_balances") as print_all_balances:
            banker.fan_out(rounds=2)

        assert print_all_balances.call_count == 2

    def test_unknown_target(self, wallet_dir):
        with pytest.raises(TargetNotFoundError):
            banker_for(wallet_dir, FakeLedger()).collect(make_address(42))

    def test_gateway_needs_url(self, tmp_path):
        banker = Banker(Config(password=PASSWORD, working_dir=str(tmp_path)))
        with pytest.raises(BankerError):
            banker.gateway

    def test_str(self, wallet_dir):
        assert "dry run" in str(banker_for(wallet_dir, dry_run=True))


class TestDisplay:

    def test_render_balances_total(self):
        console = Console(record=True, width=200)
        balances = [
            Balance("wallet_0001.key", make_address(0), balance=150_000_000),
            Balance("wallet_0002.key", make_address(1), error="ledger down"),
            Balance("wallet_0003.key", make_address(2), balance=50_000_000),
        ]

        total = render_balances(balances, console)

        output = console.export_text()
        assert total == 200_000_000
        assert "2.00000000" in output
        assert "ledger down" in output

    def test_render_report_lists_failures(self):
        console = Console(record=True, width=200)
        report = DistributionReport(rounds=1, results=[
            PaymentResult(make_address(0), 2, 10, True),
            PaymentResult(make_address(1), 1, 5, False, detail="insufficient funds"),
        ])

        render_report("collect", report, console)

        output = console.export_text()
        assert "Failed Payments" in output
        assert "insufficient funds" in output
