"""
truststore_manager — lifecycle management for mTLS trust-store CA sets.

Creates, edits, activates, deactivates and deletes versioned CA sets held
by a remote trust-store service, reconciling a declarative host's local
records with the service's authoritative state.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
