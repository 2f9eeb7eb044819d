from __future__ import annotations


class TiplineError(Exception):
    """Base error for Tipline."""


class CipherError(TiplineError):
    """Field cipher failure."""


class InvalidKeyError(CipherError, ValueError):
    """Key material is not exactly 32 bytes of hex or base64."""


class DecryptionError(CipherError):
    """Envelope could not be authenticated or decoded with the given key."""


class DataKeyError(TiplineError):
    """Company data-key store failure."""


class CompanyNotFoundError(DataKeyError):
    """No company row exists for the requested id."""


class DataKeyExistsError(DataKeyError):
    """A data key is already established; replacing it needs explicit confirmation."""


class KeyUnwrapError(DataKeyError):
    """Persisted key material is corrupt or partial; stored content cannot be recovered."""


class ReportError(TiplineError):
    """Report workflow failure."""


class ReportValidationError(ReportError, ValueError):
    """Submitted report fields failed validation."""


class ReportLockedError(ReportError):
    """Report has left its initial status and can no longer be deleted."""


class DatabaseError(TiplineError):
    """Database layer failure."""
