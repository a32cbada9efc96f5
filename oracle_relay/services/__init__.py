"""
Contract-level services.

Typed FlightSurety operations for the API and relay startup, and the
demo ledger setup.
"""

from oracle_relay.services.surety import FlightSuretyService, RegisteredFlight

__all__ = ['FlightSuretyService', 'RegisteredFlight']
