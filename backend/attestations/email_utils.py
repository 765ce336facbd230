# attestations/email_utils.py
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.conf import settings
from django.utils.html import strip_tags

TEMPLATE = "emails/base_template.html"


def send_templated_email(recipient_email, subject, message_content, *, destinataire=None, rubrique=None,
                         code=None, code_minutes=None, note=None, alerte=False):
    """Mail HTML + texte construit sur le gabarit commun des notifications SCN."""
    if not recipient_email:
        raise ValueError("Adresse e-mail du destinataire manquante")

    html_content = render_to_string(TEMPLATE, {
        "subject": subject,
        "app_name": settings.APP_NAME,
        "base_url": settings.FRONT_BASE_URL,
        "user_name": destinataire,
        "email_type": rubrique,
        "message_content": message_content,
        "otp_code": code,
        "otp_expiry": code_minutes,
        "info_message": note,
        "info_type": "warning" if alerte else "info",
    })
    message = EmailMultiAlternatives(
        subject=subject,
        body=strip_tags(html_content) or message_content,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[recipient_email],
    )
    message.attach_alternative(html_content, "text/html")
    message.send()


def _display_name(user) -> str:
    return user.get_full_name() or user.username


def _nom_appele(appele) -> str:
    return f"{appele.prenom} {appele.nom}"


class EmailTemplates:
    """Mails envoyés par la plateforme."""

    @staticmethod
    def otp_email(user, otp_code: str, expiry_minutes: int) -> None:
        send_templated_email(
            user.email,
            "Code de vérification pour la signature",
            "Voici votre code de vérification pour confirmer la signature des attestations. "
            "Saisissez ce code dans l'application pour finaliser l'opération.",
            destinataire=_display_name(user),
            rubrique="Code de vérification",
            code=otp_code,
            code_minutes=expiry_minutes,
            note="Ne partagez jamais ce code. Si vous n'êtes pas à l'origine de cette demande, "
                 "changez immédiatement votre code PIN.",
            alerte=True,
        )

    @staticmethod
    def signature_locked_email(user, minutes: int) -> None:
        send_templated_email(
            user.email,
            "Signature électronique bloquée",
            "Suite à plusieurs codes PIN erronés, votre signature électronique est temporairement bloquée "
            f"pendant {minutes} minutes.",
            destinataire=_display_name(user),
            rubrique="Alerte de sécurité",
            note="Contactez un administrateur si vous n'êtes pas à l'origine de ces tentatives.",
            alerte=True,
        )

    @staticmethod
    def demande_status_email(appele, demande, subject: str, message: str, info: str | None = None) -> None:
        send_templated_email(
            appele.email,
            f"{subject} : demande {demande.numero_enregistrement}",
            message,
            destinataire=_nom_appele(appele),
            rubrique="Suivi de votre demande d'attestation",
            note=info,
        )

    @staticmethod
    def attestation_ready_email(appele, attestation) -> None:
        send_templated_email(
            appele.email,
            f"Votre attestation {attestation.numero} est disponible",
            "Votre attestation de service civique a été signée. "
            "Vous pouvez la retirer auprès de nos services.",
            destinataire=_nom_appele(appele),
            rubrique="Attestation signée",
            note="L'authenticité du document peut être vérifiée à tout moment via son QR code.",
        )
