"""
API module for the oracle relay.

Provides REST endpoints for:
- Relay status, oracle roster and submissions
- Flights and their finalized statuses
- Insurance purchase and claims
"""

from oracle_relay.api.relay import relay_bp
from oracle_relay.api.flights import flights_bp
from oracle_relay.api.insurance import insurance_bp

__all__ = ['relay_bp', 'flights_bp', 'insurance_bp']
