import logging
import sys
from datetime import datetime
from pathlib import Path

from tournament_ledger.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logger(name: str) -> logging.Logger:
    """Logger writing to stdout and to a daily ledger file"""
    
    logger = logging.getLogger(name)
    
    if logger.handlers:
        return logger
    
    level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(level)
    
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    
    # Job output goes to stdout so the scheduler captures it
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    
    if Config.LOG_DIR:
        log_dir = Path(Config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        
        # Full detail in the file regardless of console level
        file_handler = logging.FileHandler(
            log_dir / f'tournament_ledger_{datetime.now().strftime("%Y%m%d")}.log',
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    
    return logger
