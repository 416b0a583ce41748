"""
===============================================================================
CRC CARD — infrastructure/db/errors.py
===============================================================================

Component:
  Typed pool lifecycle errors

Responsibilities:
  - Avoid generic RuntimeErrors for pool misuse.
  - Clear semantics: "not initialized", "already initialized", "closed",
    "released twice".

Notes:
  - These are programming/lifecycle errors. Runtime database failures use the
    gateway taxonomy in crosscutting.exceptions.
===============================================================================
"""


class DatabasePoolError(Exception):
    """Base for pool lifecycle errors."""


class PoolAlreadyInitializedError(DatabasePoolError):
    """init_pool() was called more than once."""


class PoolNotInitializedError(DatabasePoolError):
    """The pool was used before init_pool()."""


class PoolClosedError(DatabasePoolError):
    """The pool was closed while a caller tried to use it."""


class ConnectionReleaseError(DatabasePoolError):
    """A connection was released twice or to a pool that never lent it."""
