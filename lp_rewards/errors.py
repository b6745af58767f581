# Every error here is fatal to a run: rewards computed past a violated
# invariant cannot be trusted, so nothing is retried or recovered.


class RewardsError(Exception):
    pass


class ConfigError(RewardsError):
    pass


class SubgraphError(RewardsError):
    pass


class InvalidCampaign(RewardsError):
    pass


class InconsistentEvent(RewardsError):
    def __init__(self, message, event=None):
        if event is not None:
            message = f"{message}\n at event:\n{event!r}"
        super().__init__(message)
        self.event = event


class InvalidLogIndex(RewardsError):
    pass


class UnknownEventKind(InconsistentEvent):
    pass


class NegativeSupply(RewardsError):
    pass


class InvalidAccountState(RewardsError):
    def __init__(self, address, account, event=None):
        super().__init__(
            f"Invalid account {address}:\n{account!r}\n at event:\n{event!r}"
        )
        self.address = address
        self.account = account
        self.event = event


class InconsistentInitialState(RewardsError):
    pass


class ReconciliationMismatch(RewardsError):
    pass


class EngineFinalized(RewardsError):
    pass
