from smtplib import SMTPException
from unittest import mock

from django.core import mail
from django.test import TestCase

from attestations import workflow
from attestations.models import StatutDemande, User
from attestations.tasks import notify_demande_status

from .base import ctx_for, make_demande, make_user


class NotifyDemandeStatusTests(TestCase):
    def test_rejection_mail_carries_reason(self):
        agent = make_user("agent", User.Role.AGENT)
        demande = make_demande(statut=StatutDemande.EN_TRAITEMENT)
        with self.captureOnCommitCallbacks(execute=True):
            workflow.rejeter(demande.pk, "Arrêté introuvable", ctx_for(agent))

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["moussa.abdou@example.ne"])
        self.assertIn("REG-2026-001", message.subject)
        self.assertIn("Motif : Arrêté introuvable", message.body)

    def test_applicant_without_email(self):
        demande = make_demande(email="")
        notify_demande_status(demande.pk, "validee")
        self.assertEqual(mail.outbox, [])

    def test_mail_failure_is_logged_not_raised(self):
        demande = make_demande()
        with mock.patch("attestations.tasks.EmailTemplates.demande_status_email", side_effect=SMTPException("down")):
            with self.assertLogs("attestations.tasks", level="ERROR"):
                notify_demande_status(demande.pk, "validee")
