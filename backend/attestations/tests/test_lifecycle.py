from types import SimpleNamespace

from django.test import SimpleTestCase

from attestations import lifecycle
from attestations.exceptions import IllegalTransition
from attestations.lifecycle import Action
from attestations.models import StatutDemande as S

# (statut, action) -> statut d'arrivée ; tout autre couple est illégal
EXPECTED = {
    (S.ENREGISTREE, Action.MODIFIER): S.ENREGISTREE,
    (S.ENREGISTREE, Action.DEMARRER_TRAITEMENT): S.EN_TRAITEMENT,
    (S.EN_TRAITEMENT, Action.MODIFIER): S.EN_TRAITEMENT,
    (S.EN_TRAITEMENT, Action.SIGNALER_NON_CONFORMITE): S.PIECES_NON_CONFORMES,
    (S.EN_TRAITEMENT, Action.VALIDER): S.VALIDEE,
    (S.EN_TRAITEMENT, Action.REJETER): S.REJETEE,
    (S.PIECES_NON_CONFORMES, Action.MODIFIER): S.PIECES_NON_CONFORMES,
    (S.PIECES_NON_CONFORMES, Action.REPRENDRE): S.EN_TRAITEMENT,
    (S.PIECES_NON_CONFORMES, Action.VALIDER): S.VALIDEE,
    (S.PIECES_NON_CONFORMES, Action.REJETER): S.REJETEE,
    (S.VALIDEE, Action.GENERER): S.EN_ATTENTE_SIGNATURE,
    (S.EN_ATTENTE_SIGNATURE, Action.SIGNER): S.SIGNEE,
    (S.EN_ATTENTE_SIGNATURE, Action.RETOURNER_AGENT): S.EN_TRAITEMENT,
    (S.EN_ATTENTE_SIGNATURE, Action.ANNULER_ATTESTATION): S.VALIDEE,
    (S.SIGNEE, Action.DELIVRER): S.DELIVREE,
    (S.SIGNEE, Action.ANNULER_ATTESTATION): S.VALIDEE,
    (S.DELIVREE, Action.ANNULER_ATTESTATION): S.VALIDEE,
}


class LifecycleTests(SimpleTestCase):
    def test_every_state_action_pair(self):
        for statut in S:
            for action in Action:
                with self.subTest(statut=statut, action=action):
                    if (statut, action) in EXPECTED:
                        self.assertEqual(lifecycle.target(statut, action), EXPECTED[(statut, action)])
                        self.assertTrue(lifecycle.can(statut, action))
                    else:
                        with self.assertRaises(IllegalTransition):
                            lifecycle.target(statut, action)
                        self.assertFalse(lifecycle.can(statut, action))

    def test_allowed_actions_match_table(self):
        for statut in S:
            expected = [action for action in Action if (statut, action) in EXPECTED]
            self.assertEqual(lifecycle.allowed_actions(statut), expected)

    def test_nominal_path(self):
        statut = S.ENREGISTREE
        for action, expected in (
            (Action.DEMARRER_TRAITEMENT, S.EN_TRAITEMENT),
            (Action.VALIDER, S.VALIDEE),
            (Action.GENERER, S.EN_ATTENTE_SIGNATURE),
            (Action.SIGNER, S.SIGNEE),
            (Action.DELIVRER, S.DELIVREE),
        ):
            statut = lifecycle.target(statut, action)
            self.assertEqual(statut, expected)

    def test_non_conformity_loop(self):
        self.assertEqual(lifecycle.target(S.EN_TRAITEMENT, Action.SIGNALER_NON_CONFORMITE), S.PIECES_NON_CONFORMES)
        self.assertEqual(lifecycle.target(S.PIECES_NON_CONFORMES, Action.REPRENDRE), S.EN_TRAITEMENT)
        self.assertEqual(lifecycle.target(S.PIECES_NON_CONFORMES, Action.VALIDER), S.VALIDEE)
        self.assertEqual(lifecycle.target(S.PIECES_NON_CONFORMES, Action.REJETER), S.REJETEE)

    def test_director_return_and_admin_undo(self):
        self.assertEqual(lifecycle.target(S.EN_ATTENTE_SIGNATURE, Action.RETOURNER_AGENT), S.EN_TRAITEMENT)
        for statut in (S.EN_ATTENTE_SIGNATURE, S.SIGNEE, S.DELIVREE):
            self.assertEqual(lifecycle.target(statut, Action.ANNULER_ATTESTATION), S.VALIDEE)

    def test_illegal_transition_carries_states(self):
        with self.assertRaises(IllegalTransition) as cm:
            lifecycle.target(S.ENREGISTREE, Action.SIGNER)
        self.assertEqual(cm.exception.from_state, S.ENREGISTREE)
        self.assertEqual(cm.exception.to_state, S.SIGNEE)
        self.assertEqual(cm.exception.status_code, 409)

    def test_no_clamping_on_skipped_states(self):
        self.assertFalse(lifecycle.can(S.VALIDEE, Action.DELIVRER))
        self.assertFalse(lifecycle.can(S.ENREGISTREE, Action.VALIDER))
        self.assertFalse(lifecycle.can(S.SIGNEE, Action.RETOURNER_AGENT))

    def test_editable_states(self):
        self.assertTrue(lifecycle.is_editable(S.PIECES_NON_CONFORMES))
        self.assertFalse(lifecycle.is_editable(S.VALIDEE))
        self.assertEqual(lifecycle.target(S.EN_TRAITEMENT, Action.MODIFIER), S.EN_TRAITEMENT)
        with self.assertRaises(IllegalTransition):
            lifecycle.target(S.SIGNEE, Action.MODIFIER)

    def test_terminal_states(self):
        self.assertEqual(lifecycle.allowed_actions(S.REJETEE), [])
        self.assertEqual(lifecycle.allowed_actions(S.DELIVREE), [Action.ANNULER_ATTESTATION])

    def test_transition_mutates_instance_only(self):
        demande = SimpleNamespace(statut=S.VALIDEE)
        self.assertEqual(lifecycle.transition(demande, Action.GENERER), S.EN_ATTENTE_SIGNATURE)
        self.assertEqual(demande.statut, S.EN_ATTENTE_SIGNATURE)
