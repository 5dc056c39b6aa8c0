import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ledger configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///tournament_ledger.db')
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')  # Empty disables the file log
    
    # Tournament period settings
    TOURNAMENT_TIMEZONE = os.getenv('TOURNAMENT_TIMEZONE', 'America/New_York')
    TOURNAMENT_LENGTH_DAYS = int(os.getenv('TOURNAMENT_LENGTH_DAYS', 7))
    STARTING_GRANT = int(os.getenv('STARTING_GRANT', 1000))
    PER_SUBSCRIBER_CONTRIBUTION_CENTS = int(os.getenv('PER_SUBSCRIBER_CONTRIBUTION_CENTS', 1800))  # $18 of a $20 subscription
    
    # Wager settings
    GAME_LOCK_MINUTES = int(os.getenv('GAME_LOCK_MINUTES', 5))
    PUSH_POLICY = os.getenv('PUSH_POLICY', 'loss').lower()  # "loss" or "refund"
    
    # Batch job settings
    BATCH_MAX_RETRIES = int(os.getenv('BATCH_MAX_RETRIES', 3))
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        import pytz
        
        if cls.PUSH_POLICY not in ('loss', 'refund'):
            raise ValueError("PUSH_POLICY must be 'loss' or 'refund'")
        if cls.STARTING_GRANT <= 0:
            raise ValueError("STARTING_GRANT must be positive")
        if cls.PER_SUBSCRIBER_CONTRIBUTION_CENTS < 0:
            raise ValueError("PER_SUBSCRIBER_CONTRIBUTION_CENTS cannot be negative")
        if cls.TOURNAMENT_LENGTH_DAYS < 1:
            raise ValueError("TOURNAMENT_LENGTH_DAYS must be at least 1")
        if cls.BATCH_MAX_RETRIES < 1:
            raise ValueError("BATCH_MAX_RETRIES must be at least 1")
        try:
            pytz.timezone(cls.TOURNAMENT_TIMEZONE)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown TOURNAMENT_TIMEZONE '{cls.TOURNAMENT_TIMEZONE}'")
