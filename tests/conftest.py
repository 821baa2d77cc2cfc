import os
import sys
import tempfile

import pytest

# Ensure the project root (containing the `prizepool` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Keep test logs out of the working tree; must happen before Config is imported
os.environ.setdefault('LOG_DIR', tempfile.mkdtemp(prefix='prizepool-logs-'))
os.environ.setdefault('REDIS_URL', '')

PLAYER_A = '0x' + 'a' * 40
PLAYER_B = '0x' + 'b' * 40
PLAYER_C = '0x' + 'c' * 40
PLAYER_D = '0x' + 'd' * 40

# 2024-10-04 00:00:00 UTC
DAY = 20000
DAY_START_MS = DAY * 86_400_000
# A week after DAY, so DAY is closed and within the default lookback
NOW = (DAY + 7) * 86_400 + 3_600


@pytest.fixture()
def database_url(tmp_path):
    return f"sqlite:///{tmp_path}/test.db"
