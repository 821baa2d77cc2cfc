import pytest

from prizepool.config import Config
from prizepool.ledger.database_ledger import DatabaseCreditLedger
from prizepool.ledger.registry import CreditLedgerRegistry


def test_defaults():
    assert Config.WINNER_SLOTS == 3
    assert Config.CLAIM_PERIOD_SECONDS == 7 * 86_400
    assert Config.get_prize_amount(1) == 20_000_000
    assert Config.get_prize_amount(3) == 5_000_000
    Config.validate()


def test_prize_amount_rank_range():
    with pytest.raises(ValueError):
        Config.get_prize_amount(0)
    with pytest.raises(ValueError):
        Config.get_prize_amount(4)


def test_credit_ledger_versions_are_ordered(monkeypatch):
    monkeypatch.setattr(Config, 'CREDIT_LEDGER_VERSIONS', ' v1, v2 ,v4 ')
    assert Config.get_credit_ledger_versions() == ['v1', 'v2', 'v4']


@pytest.mark.parametrize('value', ['', 'v1,v2,v1'])
def test_credit_ledger_versions_rejected(monkeypatch, value):
    monkeypatch.setattr(Config, 'CREDIT_LEDGER_VERSIONS', value)
    with pytest.raises(ValueError):
        Config.get_credit_ledger_versions()


def test_registry_pairs_follow_deployment_order():
    registry = CreditLedgerRegistry(DatabaseCreditLedger(None, v) for v in ['v1', 'v2', 'v3'])
    assert registry.current.version == 'v3'
    assert [(s.version, t.version) for s, t in registry.migration_pairs()] == [('v1', 'v2'), ('v2', 'v3')]
    with pytest.raises(KeyError):
        registry.get('v9')


def test_registry_rejects_repeated_version():
    with pytest.raises(ValueError):
        CreditLedgerRegistry([DatabaseCreditLedger(None, 'v1'), DatabaseCreditLedger(None, 'v1')])
