"""Exception types raised by the crank supervisor."""


class MulticrankError(Exception):
    """Base class for all multicrank errors."""

    pass


class ConfigurationError(MulticrankError):
    """Exception raised for configuration validation errors."""

    pass


class SpawnFailedError(MulticrankError):
    """The OS refused to launch the crank binary."""

    pass


class AlreadyRunningError(MulticrankError):
    """A crank was asked to start while it still owns a running process."""

    pass


class NoHandleError(MulticrankError):
    """A crank was asked to halt but holds no process handle."""

    pass


class ProcessNotRunningError(MulticrankError):
    """The process behind a handle has already exited."""

    pass


class SignalFailedError(MulticrankError):
    """Sending the kill signal to a crank process failed."""

    pass


class MarketNotFoundError(MulticrankError):
    """No crank is registered for the requested market id."""

    def __init__(self, market_id: str):
        super().__init__(f"no market with id {market_id}")
        self.market_id = market_id


class DuplicateMarketError(MulticrankError):
    """A crank is already registered for the requested market id."""

    def __init__(self, market_id: str):
        super().__init__(f"crank for market {market_id} is already registered")
        self.market_id = market_id


class PersistenceError(MulticrankError):
    """Base class for snapshot and market file problems."""

    pass


class StateIOError(PersistenceError):
    """A state or market file could not be read or written."""

    pass


class StateParseError(PersistenceError):
    """A state or market file does not have the expected shape."""

    pass
