"""wpcheck — weakest-precondition verification of annotated Python functions"""

__version__ = "0.1.0"

from wpcheck.annotations import invariant, old, post, pre
from wpcheck.config import VerifierConfig, load_config
from wpcheck.verifier import FunctionResult, Verdict, VerificationReport, Verifier, verify_source

__all__ = [
    "__version__",
    "pre", "post", "invariant", "old",
    "VerifierConfig", "load_config",
    "Verifier", "Verdict", "FunctionResult", "VerificationReport", "verify_source",
]
