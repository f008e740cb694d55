class NCFail(Exception):
    """Raised by a contract to abort the current call.

    The runner restores every storage touched by the call before the
    exception reaches the caller.
    """


class NCMethodNotFound(NCFail):
    """Raised when a contract does not expose the requested method."""


class NCInvalidMethodCall(NCFail):
    """Raised when a view is called as public or a public method as a view."""


class NanoContractDoesNotExist(NCFail):
    pass


class NCContractAlreadyExists(NCFail):
    pass


class TokenDoesNotExist(NCFail):
    pass


class ReentrantCall(NCFail):
    """Raised when a guarded method is entered while another is running."""


class Unauthorized(NCFail):
    """Raised when the caller lacks the role required by the method."""


class EnforcedPause(NCFail):
    pass


class ExpectedPause(NCFail):
    pass


class InvalidAddress(NCFail):
    pass
