"""Exception types raised by provisioning steps."""


class ProvisioningError(Exception):
    """A fatal step failure; the run stops and exits with ``exit_code``."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code if exit_code else 1


class PreflightError(ProvisioningError):
    """The host is not fit for provisioning; nothing has been changed yet."""

    def __init__(self, message: str):
        super().__init__(message, exit_code=1)
