"""
Error taxonomy for the relay.

- TransportError: connectivity to the ledger lost. Recoverable; the
  subscription layer resubscribes on the next successful poll.
- RejectedByLedger: a send was declined by contract validation. Expected,
  frequent, logged and never fatal.
- RegistrationFailure: an oracle failed to register. That oracle is left
  out of the roster.
- UnknownOracle: the coordinator asked about an identity the registry never
  registered. Logged loudly, never crashes the relay.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class TransportError(RelayError):
    """The ledger could not be reached."""


class RejectedByLedger(RelayError):
    """The ledger declined a state-mutating operation."""

    def __init__(self, method: str, reason: str = ''):
        self.method = method
        self.reason = reason
        super().__init__(f'{method} rejected by ledger: {reason}' if reason else f'{method} rejected by ledger')


class RegistrationFailure(RelayError):
    """An oracle identity could not be registered."""

    def __init__(self, identity: str, reason: str = ''):
        self.identity = identity
        self.reason = reason
        super().__init__(f'Oracle {identity} failed to register: {reason}')


class UnknownOracle(RelayError):
    """Identity was never registered with the registry."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f'Oracle {identity} is not registered')
