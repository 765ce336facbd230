# attestations/lifecycle.py
"""Transitions légales du statut d'une demande.

Table pure : aucune écriture en base ici, les services appellent
``transition`` sur une instance verrouillée puis sauvegardent eux-mêmes.
"""
from enum import Enum

from .exceptions import IllegalTransition
from .models import StatutDemande as S


class Action(str, Enum):
    MODIFIER = "MODIFIER"
    DEMARRER_TRAITEMENT = "DEMARRER_TRAITEMENT"
    SIGNALER_NON_CONFORMITE = "SIGNALER_NON_CONFORMITE"
    REPRENDRE = "REPRENDRE"
    VALIDER = "VALIDER"
    REJETER = "REJETER"
    GENERER = "GENERER"
    SIGNER = "SIGNER"
    RETOURNER_AGENT = "RETOURNER_AGENT"
    DELIVRER = "DELIVRER"
    ANNULER_ATTESTATION = "ANNULER_ATTESTATION"


EDITABLE = (S.ENREGISTREE, S.EN_TRAITEMENT, S.PIECES_NON_CONFORMES)

# action -> ({statuts de départ}, statut d'arrivée) ; None = statut inchangé
TRANSITIONS = {
    Action.MODIFIER: (set(EDITABLE), None),
    Action.DEMARRER_TRAITEMENT: ({S.ENREGISTREE}, S.EN_TRAITEMENT),
    Action.SIGNALER_NON_CONFORMITE: ({S.EN_TRAITEMENT}, S.PIECES_NON_CONFORMES),
    Action.REPRENDRE: ({S.PIECES_NON_CONFORMES}, S.EN_TRAITEMENT),
    Action.VALIDER: ({S.EN_TRAITEMENT, S.PIECES_NON_CONFORMES}, S.VALIDEE),
    Action.REJETER: ({S.EN_TRAITEMENT, S.PIECES_NON_CONFORMES}, S.REJETEE),
    Action.GENERER: ({S.VALIDEE}, S.EN_ATTENTE_SIGNATURE),
    Action.SIGNER: ({S.EN_ATTENTE_SIGNATURE}, S.SIGNEE),
    Action.RETOURNER_AGENT: ({S.EN_ATTENTE_SIGNATURE}, S.EN_TRAITEMENT),
    Action.DELIVRER: ({S.SIGNEE}, S.DELIVREE),
    Action.ANNULER_ATTESTATION: ({S.EN_ATTENTE_SIGNATURE, S.SIGNEE, S.DELIVREE}, S.VALIDEE),
}

TERMINAL = (S.DELIVREE, S.REJETEE)


def target(statut, action: Action) -> S:
    """Statut obtenu en appliquant ``action`` depuis ``statut``.

    Lève ``IllegalTransition`` si le couple n'est pas autorisé.
    """
    action = Action(action)
    statut = S(statut)
    sources, destination = TRANSITIONS[action]
    destination = destination or statut
    if statut not in sources:
        raise IllegalTransition(statut, destination)
    return destination


def can(statut, action: Action) -> bool:
    try:
        target(statut, action)
    except IllegalTransition:
        return False
    return True


def is_editable(statut) -> bool:
    return S(statut) in EDITABLE


def allowed_actions(statut) -> list:
    return [action for action in Action if can(statut, action)]


def transition(demande, action: Action):
    """Applique la transition sur l'instance (sans sauvegarde) et renvoie le nouveau statut."""
    demande.statut = target(demande.statut, action)
    return demande.statut
