"""
Observable Collection Errors
============================

Every error raised by this package derives from CollectionError so callers can
catch the whole family at once.

Mutation failures raised by a host store are never thrown from the facade
call that started the mutation. They are captured on the pending operation and
handed to each subscriber's ``on_error`` callback instead.
"""


# ============================================================================
# BASE
# ============================================================================


class CollectionError(Exception):
    """Base error for all collection operations."""

    pass


class ConfigError(CollectionError):
    """Invalid collection options."""

    pass


# ============================================================================
# MUTATIONS
# ============================================================================


class MutationError(CollectionError):
    """A host insert, remove, update or upsert failed."""

    pass


class DuplicateKeyError(MutationError):
    """A document with the same _id already exists."""

    pass


class InvalidDocumentError(MutationError):
    """The document cannot be stored."""

    pass


class InvalidSelectorError(MutationError):
    """The selector uses an unknown operator or a malformed operand."""

    pass


class InvalidModifierError(MutationError):
    """The modifier cannot be applied to the matched document."""

    pass


# ============================================================================
# VALIDATION RULES
# ============================================================================


class InvalidRulesError(CollectionError):
    """An allow/deny rules mapping has an unknown key or a bad value."""

    pass
