# storefront/domain/errors.py
"""
Taksonomia bledow domeny. Serwisy rzucaja, routery nie lapia -
handlery w api/errors.py zamieniaja je na koperte {success, error, message}.
"""


class StorefrontError(Exception):
    code = "internal_error"
    status_code = 500
    default_message = "Wystapil nieoczekiwany blad"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(StorefrontError):
    code = "authentication_required"
    status_code = 401
    default_message = "Wymagane logowanie"


class PermissionDenied(StorefrontError):
    code = "permission_denied"
    status_code = 403
    default_message = "Brak uprawnien"


class NotFound(StorefrontError):
    code = "not_found"
    status_code = 404
    default_message = "Nie znaleziono"


class ValidationError(StorefrontError):
    code = "validation_error"
    status_code = 400
    default_message = "Niepoprawne dane wejsciowe"


class Conflict(StorefrontError):
    code = "conflict"
    status_code = 409
    default_message = "Konflikt stanu"


class InsufficientStock(StorefrontError):
    code = "insufficient_stock"
    status_code = 409
    default_message = "Niewystarczajacy stan magazynowy"


class UpstreamError(StorefrontError):
    """Blad procesora platnosci - klient moze ponowic."""

    code = "upstream_error"
    status_code = 502
    default_message = "Procesor platnosci jest niedostepny"


class InternalError(StorefrontError):
    pass
