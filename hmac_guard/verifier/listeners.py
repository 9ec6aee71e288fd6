"""
Verification Listeners
======================
Callbacks notified after every verification.
"""

from typing import Awaitable, Callable, Optional, Protocol, Union

from ..models import Credential, RequestContext
from .results import VerificationFailureReason


class VerificationListener(Protocol):
    """
    Receives verification outcomes.

    Methods may be plain functions or coroutines. Exceptions raised by a
    listener are logged and never change the verification result.
    """

    def on_success(self, context: RequestContext, credential: Credential):
        ...

    def on_failure(
        self,
        context: RequestContext,
        client_id: str,
        reason: VerificationFailureReason,
        credential: Optional[Credential],
    ):
        ...


SuccessCallback = Callable[[RequestContext, Credential], Union[None, Awaitable[None]]]
FailureCallback = Callable[
    [RequestContext, str, VerificationFailureReason, Optional[Credential]],
    Union[None, Awaitable[None]],
]


class CallbackListener:
    """Adapts plain callables to the listener interface."""

    def __init__(
        self,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ):
        self._on_success = on_success
        self._on_failure = on_failure

    def on_success(self, context, credential):
        if self._on_success:
            return self._on_success(context, credential)
        return None

    def on_failure(self, context, client_id, reason, credential):
        if self._on_failure:
            return self._on_failure(context, client_id, reason, credential)
        return None
