"""Exceptions raised by the matching engine."""


class AccountMatchError(Exception):
    """Base class for matching engine errors."""


class FieldMappingError(AccountMatchError, ValueError):
    """A field mapping names an unknown canonical field or maps one twice."""


class StoreError(AccountMatchError):
    """The record store could not be read."""


class CandidateRetrievalError(StoreError):
    """A chunk could not be completed because candidate retrieval failed."""


class JudgeError(AccountMatchError):
    """The judge backend was unreachable or answered with a non-2xx status."""
