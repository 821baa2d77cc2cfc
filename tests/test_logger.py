import importlib
import logging
from pathlib import Path

import pytest

from prizepool.utils.logger import setup_logger

SERVICE_MODULES = [
    'prizepool.database.database',
    'prizepool.ledger.database_ledger',
    'prizepool.services.base',
    'prizepool.services.claim_service',
    'prizepool.services.day_lock',
    'prizepool.services.migration_holds',
    'prizepool.services.migration_reconciler',
    'prizepool.services.pending_day_scanner',
    'prizepool.services.ranking_cache',
    'prizepool.services.ranking_service',
    'prizepool.services.session_store',
    'prizepool.services.settlement_service',
    'prizepool.services.winner_registration',
    'prizepool.utils.redis_utils',
]


def _file_prefixes(logger):
    return sorted(
        Path(handler.baseFilename).name.split('_', 1)[0]
        for handler in logger.handlers
        if isinstance(handler, logging.FileHandler)
    )


@pytest.mark.parametrize('module_name', SERVICE_MODULES)
def test_module_logger_writes_daily_log_files(module_name):
    importlib.import_module(module_name)
    logger = logging.getLogger(module_name)
    assert _file_prefixes(logger) == ['anomalies', 'settlement']


def test_setup_logger_does_not_duplicate_handlers():
    first = setup_logger('prizepool.tests.logger')
    handler_count = len(first.handlers)
    second = setup_logger('prizepool.tests.logger')
    assert second is first
    assert len(second.handlers) == handler_count == 3


def test_anomalies_log_only_receives_errors():
    logger = setup_logger('prizepool.tests.anomalies')
    anomalies = next(h for h in logger.handlers
                     if isinstance(h, logging.FileHandler) and 'anomalies_' in h.baseFilename)
    logger.warning("balance drifted")
    logger.error("duplicate migration for player")
    anomalies.flush()
    with open(anomalies.baseFilename, encoding='utf-8') as fh:
        contents = fh.read()
    assert "duplicate migration for player" in contents
    assert "balance drifted" not in contents
