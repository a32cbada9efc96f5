"""
Oracle identities and their votes.

Handles registering the relay's oracle accounts with the app contract and
answering OracleRequest events on their behalf.
"""

from oracle_relay.oracles.registry import OracleRegistry
from oracle_relay.oracles.coordinator import OracleResponse, ResponseCoordinator, SubmissionResult

__all__ = ['OracleRegistry', 'ResponseCoordinator', 'OracleResponse', 'SubmissionResult']
