"""
=============================================================================
TAGGING
=============================================================================

The classifier side of the server: the Classifier interface the sessions
call, a bundled gazetteer implementation, the three output formats, and
model loading.

=============================================================================
"""

from .classifier import Classifier, GazetteerClassifier
from .formats import Token, render, tokenize
from .loader import load_classifier

__all__ = [
    "Classifier",
    "GazetteerClassifier",
    "Token",
    "render",
    "tokenize",
    "load_classifier",
]
