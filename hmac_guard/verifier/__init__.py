"""
Verifier Module
===============
Request verification pipeline, results and listeners.
"""

from .results import VerificationFailureReason, VerificationResult
from .listeners import CallbackListener, VerificationListener
from .verifier import HmacVerifier

__all__ = [
    # Results
    "VerificationFailureReason",
    "VerificationResult",
    # Listeners
    "VerificationListener",
    "CallbackListener",
    # Pipeline
    "HmacVerifier",
]
