"""
Exception classes for the analysis pipeline.

Lexicon and remote errors are raised inside their stage and converted
into an ``Outcome`` at the stage boundary. ``ConfigurationError`` reaches
the RPC layer, which reports it as ``{"ok": false, "error": ...}``.
"""


class FeedGuardError(Exception):
    """Base exception for all pipeline errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(FeedGuardError):
    """Raised when the persisted runtime configuration cannot be read or written."""
    pass


# =============================================================================
# Lexicon Errors
# =============================================================================

class LexiconError(FeedGuardError):
    """Base exception for lexicon errors."""
    pass


class LexiconLoadError(LexiconError):
    """Raised when the lexicon resource cannot be read or parsed."""
    pass


# =============================================================================
# Remote Classifier Errors
# =============================================================================

class RemoteClassifierError(FeedGuardError):
    """Base exception for remote classifier errors."""
    pass


class RemoteTransportError(RemoteClassifierError):
    """Raised on network failures, timeouts and non-success statuses."""
    pass


class RemotePayloadError(RemoteClassifierError):
    """Raised when the provider answers with something other than a JSON array."""
    pass
