# attestations/exceptions.py
"""Erreurs métier du module attestations.

Chaque classe porte son code HTTP et un message par défaut en français ;
``scn_exception_handler`` les convertit en réponses ``{"error": ...}``.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ScnError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Requête invalide"

    def __init__(self, message=None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def as_payload(self):
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


class ValidationError(ScnError):
    default_message = "Données invalides"


class PiecesIncompletes(ValidationError):
    default_message = "Pièces obligatoires absentes ou non conformes"


class TemplateInvalide(ValidationError):
    default_message = "Configuration du template invalide"


class NotFound(ScnError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Ressource introuvable"


class IllegalTransition(ScnError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, from_state, to_state, message=None):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            message or f"Transition interdite : {from_state} → {to_state}",
            from_state=str(from_state),
            to_state=str(to_state),
        )


class InvalidState(IllegalTransition):
    """L'opération exige un statut précis que la demande n'a pas."""


class AlreadyIssued(ScnError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Une attestation existe déjà pour cette demande"


class NoActiveTemplate(ScnError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Aucun template d'attestation actif"


class RenderingError(ScnError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Impossible de composer le document PDF"


class AuthenticationFailed(ScnError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Authentification de signature refusée"


class AccountLocked(AuthenticationFailed):
    status_code = status.HTTP_423_LOCKED
    default_message = "Signature bloquée suite à trop de tentatives"


class TamperDetected(ScnError):
    """Levée pendant la vérification publique ; ne sort jamais de cette frontière."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Falsification détectée ({reason})")


class StorageFailure(ScnError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Stockage indisponible, réessayez plus tard"


def scn_exception_handler(exc, context):
    if isinstance(exc, ScnError):
        if exc.status_code >= 500:
            logger.error("Erreur %s sur %s : %s", type(exc).__name__, context.get("view"), exc.message)
        return Response(exc.as_payload(), status=exc.status_code)
    return exception_handler(exc, context)
