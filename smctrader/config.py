import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load .env file from project root if it exists
project_root = Path(__file__).parent.parent
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)


@dataclass
class Config:
    # Binance public market data (credentials are optional for klines/tickers)
    api_key: str = ""
    api_secret: str = ""
    testnet: bool = False

    # Trade generation
    investment_amount: float = 1000.0  # Default stake per generated trade (USDT)
    random_seed: Optional[int] = None  # Seed leverage draws for reproducible runs

    # Reversal detection
    scoring_policy: str = "signal_count"  # "signal_count" or "fixed_weight"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None  # Also log to this file when set

    def __post_init__(self):
        """Override defaults with environment variables if present."""
        # API credentials
        self.api_key = os.getenv("BINANCE_API_KEY", self.api_key)
        self.api_secret = os.getenv("BINANCE_API_SECRET", self.api_secret)
        self.testnet = os.getenv("BINANCE_TESTNET", str(self.testnet)).lower() in ("true", "1", "yes")

        # Trade generation
        if os.getenv("SMC_INVESTMENT_AMOUNT"):
            self.investment_amount = float(os.getenv("SMC_INVESTMENT_AMOUNT"))
        if os.getenv("SMC_RANDOM_SEED"):
            self.random_seed = int(os.getenv("SMC_RANDOM_SEED"))

        # Reversal detection
        self.scoring_policy = os.getenv("SMC_SCORING_POLICY", self.scoring_policy)
        if self.scoring_policy not in ("signal_count", "fixed_weight"):
            raise ValueError(f"scoring_policy must be 'signal_count' or 'fixed_weight', got {self.scoring_policy}")

        # Logging
        self.log_level = os.getenv("SMC_LOG_LEVEL", self.log_level)
        self.log_file = os.getenv("SMC_LOG_FILE", self.log_file)

    def to_dict(self) -> dict:
        """Convert config to dictionary (credentials masked)."""
        return {
            'api_key': f"{self.api_key[:6]}..." if self.api_key else '',
            'testnet': self.testnet,
            'investment_amount': self.investment_amount,
            'random_seed': self.random_seed,
            'scoring_policy': self.scoring_policy,
            'log_level': self.log_level,
            'log_file': self.log_file,
        }
