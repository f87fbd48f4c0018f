from __future__ import annotations


class TaxonomyValidationError(ValueError):
    """Raised when a candidate category or tag is rejected at intake."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class TaxonomyNotFoundError(LookupError):
    """Raised when an id is not one of this organization's known entities."""

    def __init__(self, kind: str, ident: str | None) -> None:
        super().__init__(f"Unknown {kind} '{ident}'.")
        self.kind = kind
        self.ident = ident
