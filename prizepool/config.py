import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Settlement pipeline configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///prizepool.db')
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    REDIS_URL = os.getenv('REDIS_URL', '')
    
    # Prize settings
    WINNER_SLOTS = 3
    CLAIM_PERIOD_SECONDS = int(os.getenv('CLAIM_PERIOD_SECONDS', 7 * 86400))
    PRIZE_AMOUNTS = (20_000_000, 10_000_000, 5_000_000)  # USDC base units, rank 1..3
    
    # Settlement job settings
    SCAN_LOOKBACK_DAYS = int(os.getenv('SCAN_LOOKBACK_DAYS', 30))
    TX_MAX_ATTEMPTS = int(os.getenv('TX_MAX_ATTEMPTS', 3))
    TX_RETRY_DELAY = float(os.getenv('TX_RETRY_DELAY', 0.5))
    TX_CONFIRMATION_TIMEOUT = float(os.getenv('TX_CONFIRMATION_TIMEOUT', 120))
    DAY_LOCK_TTL_SECONDS = int(os.getenv('DAY_LOCK_TTL_SECONDS', 600))
    
    # Ranking read cache
    RANKING_CACHE_TTL = float(os.getenv('RANKING_CACHE_TTL', 5))
    RANKING_CACHE_MAX_SIZE = int(os.getenv('RANKING_CACHE_MAX_SIZE', 256))
    
    # Credit ledger deployments, oldest first
    CREDIT_LEDGER_VERSIONS = os.getenv('CREDIT_LEDGER_VERSIONS', 'v1,v2,v3')
    
    @classmethod
    def get_credit_ledger_versions(cls):
        """Get the ordered list of credit ledger deployments"""
        versions = [v.strip() for v in cls.CREDIT_LEDGER_VERSIONS.split(',') if v.strip()]
        if not versions:
            raise ValueError("CREDIT_LEDGER_VERSIONS must name at least one deployment")
        if len(set(versions)) != len(versions):
            raise ValueError("CREDIT_LEDGER_VERSIONS must not repeat a deployment")
        return versions
    
    @classmethod
    def get_prize_amount(cls, rank: int) -> int:
        """Get the prize for a 1-based rank"""
        if not 1 <= rank <= cls.WINNER_SLOTS:
            raise ValueError(f"Rank must be between 1 and {cls.WINNER_SLOTS}")
        return cls.PRIZE_AMOUNTS[rank - 1]
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if cls.CLAIM_PERIOD_SECONDS <= 0:
            raise ValueError("CLAIM_PERIOD_SECONDS must be positive")
        if cls.SCAN_LOOKBACK_DAYS < 1:
            raise ValueError("SCAN_LOOKBACK_DAYS must be at least 1")
        if cls.TX_MAX_ATTEMPTS < 1:
            raise ValueError("TX_MAX_ATTEMPTS must be at least 1")
        if len(cls.PRIZE_AMOUNTS) != cls.WINNER_SLOTS:
            raise ValueError("PRIZE_AMOUNTS must define one prize per winner slot")
        cls.get_credit_ledger_versions()
