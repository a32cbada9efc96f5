"""
Configuration management for the oracle relay.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here and read once at startup;
there is no hot reload.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _parse_start_block(value: str) -> Optional[int]:
    """Parse EVENT_START_BLOCK: 'latest' (or empty) means None, else an int."""
    if not value or value.strip().lower() == 'latest':
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class LedgerConfig:
    """JSON-RPC endpoint and contract artifacts."""
    url: str = os.getenv('LEDGER_URL', 'http://127.0.0.1:8545')
    app_address: Optional[str] = os.getenv('APP_CONTRACT_ADDRESS') or None
    data_address: Optional[str] = os.getenv('DATA_CONTRACT_ADDRESS') or None
    app_abi_path: str = os.getenv('APP_CONTRACT_ABI', 'build/contracts/FlightSuretyApp.json')
    data_abi_path: str = os.getenv('DATA_CONTRACT_ABI', 'build/contracts/FlightSuretyData.json')
    timeout_seconds: int = int(os.getenv('LEDGER_TIMEOUT_SECONDS', '30'))
    receipt_timeout_seconds: int = int(os.getenv('RECEIPT_TIMEOUT_SECONDS', '120'))

    # Resource ceilings attached to every send
    gas_limit: int = int(os.getenv('GAS_LIMIT', '999999999'))
    oracle_gas_limit: int = int(os.getenv('ORACLE_GAS_LIMIT', '9999999'))

    @property
    def is_configured(self) -> bool:
        return bool(self.app_address and self.data_address)


@dataclass(frozen=True)
class OracleConfig:
    """Oracle roster and vote synthesis settings."""
    num_oracles: int = int(os.getenv('NUM_ORACLES', '20'))
    first_oracle_account: int = int(os.getenv('FIRST_ORACLE_ACCOUNT', '10'))
    desired_status_code: int = int(os.getenv('DESIRED_STATUS_CODE', '20'))
    prob_code_error: float = float(os.getenv('PROB_CODE_ERROR', '0.0'))
    submission_workers: int = int(os.getenv('SUBMISSION_WORKERS', '8'))


@dataclass(frozen=True)
class EventConfig:
    """Event subscription polling."""
    poll_seconds: float = float(os.getenv('EVENT_POLL_SECONDS', '2'))
    start_block: Optional[int] = _parse_start_block(os.getenv('EVENT_START_BLOCK', 'latest'))
    # Blocks to rewind after a lost connection; replays are deduplicated
    replay_blocks: int = int(os.getenv('EVENT_REPLAY_BLOCKS', '5'))
    error_history: int = 50


@dataclass(frozen=True)
class ConsensusConfig:
    """Client-side view of the ledger's quorum rule."""
    min_responses: int = int(os.getenv('MIN_RESPONSES', '3'))


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///oracle_relay.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    ledger: LedgerConfig
    oracles: OracleConfig
    events: EventConfig
    consensus: ConsensusConfig
    database: DatabaseConfig

    # Flask settings
    secret_key: str
    debug: bool
    port: int


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        ledger=LedgerConfig(),
        oracles=OracleConfig(),
        events=EventConfig(),
        consensus=ConsensusConfig(),
        database=DatabaseConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
        port=int(os.getenv('PORT', '3000')),
    )


# Singleton instance
config = load_config()
