"""
Exceptions métier levées par les services.
Les routers les traduisent en HTTPException (404 / 403) ; les erreurs de
validation métier restent des ValueError (400).
"""


class NotFoundError(LookupError):
    """Ressource (cours, support, paiement...) introuvable."""


class PermissionDeniedError(Exception):
    """L'utilisateur n'a pas le droit d'effectuer cette action."""
