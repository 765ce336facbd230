from __future__ import annotations

from django.db import models
from django.conf import settings
from django.utils import timezone
from django.core.exceptions import ValidationError
from django.contrib.auth.models import AbstractUser
import logging

logger = logging.getLogger(__name__)


class User(AbstractUser):
    """
    Utilisateur de la plateforme – hérite d'AbstractUser
    et ajoute le rôle qui conditionne les actions autorisées.
    """

    class Role(models.TextChoices):
        SAISIE = "SAISIE", "Agent de saisie"
        AGENT = "AGENT", "Agent de traitement"
        DIRECTEUR = "DIRECTEUR", "Directeur"
        ADMIN = "ADMIN", "Administrateur"

    role = models.CharField(max_length=12, choices=Role.choices, default=Role.SAISIE)
    phone_number = models.CharField(max_length=20, blank=True, null=True)

    REQUIRED_FIELDS = ["email"]

    def __str__(self):
        return self.get_full_name() or self.username

    def has_role(self, *roles) -> bool:
        return self.is_active and self.role in roles


# =========================
# Demande
# =========================
class StatutDemande(models.TextChoices):
    ENREGISTREE = "ENREGISTREE", "Enregistrée"
    EN_TRAITEMENT = "EN_TRAITEMENT", "En traitement"
    PIECES_NON_CONFORMES = "PIECES_NON_CONFORMES", "Pièces non conformes"
    VALIDEE = "VALIDEE", "Validée"
    EN_ATTENTE_SIGNATURE = "EN_ATTENTE_SIGNATURE", "En attente de signature"
    SIGNEE = "SIGNEE", "Signée"
    DELIVREE = "DELIVREE", "Délivrée"
    REJETEE = "REJETEE", "Rejetée"


class Demande(models.Model):
    numero_enregistrement = models.CharField(max_length=50, unique=True)
    date_enregistrement = models.DateTimeField(default=timezone.now)
    statut = models.CharField(
        max_length=24, choices=StatutDemande.choices, default=StatutDemande.ENREGISTREE
    )
    date_traitement = models.DateTimeField(null=True, blank=True)
    date_validation = models.DateTimeField(null=True, blank=True)
    date_signature = models.DateTimeField(null=True, blank=True)
    date_delivrance = models.DateTimeField(null=True, blank=True)
    observations = models.TextField(blank=True, default="")
    motif_rejet = models.TextField(blank=True, default="")
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="demandes_saisies",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date_enregistrement"]
        indexes = [models.Index(fields=["statut"], name="attestation_statut_demande_idx")]

    def __str__(self):
        return self.numero_enregistrement

    def save(self, *args, **kwargs):
        # Le numéro d'enregistrement ne change jamais après création
        if self.pk:
            previous = (
                Demande.objects.filter(pk=self.pk)
                .values_list("numero_enregistrement", flat=True)
                .first()
            )
            if previous is not None and previous != self.numero_enregistrement:
                raise ValidationError("Le numéro d'enregistrement est immuable.")
        super().save(*args, **kwargs)

    def append_observation(self, text: str) -> None:
        self.observations = f"{self.observations}\n{text}".strip() if self.observations else text


class Appele(models.Model):
    """Personne ayant accompli son service civique."""

    CIVILITE_CHOICES = [("M.", "Monsieur"), ("Mme", "Madame")]

    demande = models.OneToOneField(Demande, on_delete=models.CASCADE, related_name="appele")
    civilite = models.CharField(max_length=4, choices=CIVILITE_CHOICES, blank=True, default="")
    nom = models.CharField(max_length=100)
    prenom = models.CharField(max_length=150)
    date_naissance = models.DateField()
    lieu_naissance = models.CharField(max_length=150)
    diplome = models.CharField(max_length=200, blank=True, default="")
    promotion = models.CharField(max_length=50, blank=True, default="")
    structure = models.CharField(max_length=200, blank=True, default="")
    date_debut_service = models.DateField(null=True, blank=True)
    date_fin_service = models.DateField(null=True, blank=True)
    numero_arrete = models.CharField(max_length=100, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    telephone = models.CharField(max_length=20, blank=True, default="")

    def __str__(self):
        return f"{self.prenom} {self.nom}"

    @property
    def nom_complet(self) -> str:
        return f"{self.prenom} {self.nom.upper()}".strip()


class PieceDossier(models.Model):
    class TypePiece(models.TextChoices):
        DEMANDE_MANUSCRITE = "DEMANDE_MANUSCRITE", "Demande manuscrite"
        CERTIFICAT_ASSIDUITE = "CERTIFICAT_ASSIDUITE", "Certificat d'assiduité"
        CERTIFICAT_CESSATION = "CERTIFICAT_CESSATION", "Certificat de cessation"
        CERTIFICAT_PRISE_SERVICE = "CERTIFICAT_PRISE_SERVICE", "Certificat de prise de service"
        COPIE_ARRETE = "COPIE_ARRETE", "Copie de l'arrêté"

    demande = models.ForeignKey(Demande, on_delete=models.CASCADE, related_name="pieces")
    type_piece = models.CharField(max_length=32, choices=TypePiece.choices)
    present = models.BooleanField(default=False)
    # None = pas encore examinée
    conforme = models.BooleanField(null=True, blank=True)
    obligatoire = models.BooleanField(default=True)
    observation = models.TextField(blank=True, default="")
    date_verification = models.DateTimeField(null=True, blank=True)
    verifie_par = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="pieces_verifiees",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["demande", "type_piece"], name="piece_unique_par_demande"),
        ]
        ordering = ["id"]

    def __str__(self):
        return f"{self.demande_id} - {self.type_piece}"

    @property
    def bloquante(self) -> bool:
        return self.obligatoire and (not self.present or self.conforme is False)


# =========================
# Attestation
# =========================
class AttestationCounter(models.Model):
    """Compteur annuel de numérotation, incrémenté sous verrou de ligne."""

    annee = models.PositiveIntegerField(primary_key=True)
    valeur = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.annee}: {self.valeur}"


class TemplateAttestation(models.Model):
    nom = models.CharField(max_length=150)
    description = models.TextField(blank=True, default="")
    background = models.ImageField(upload_to="templates/backgrounds/")
    config = models.JSONField(default=dict, blank=True)
    actif = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["actif"],
                condition=models.Q(actif=True),
                name="un_seul_template_actif",
            ),
        ]
        ordering = ["-updated_at"]

    def __str__(self):
        return f"{self.nom}{' (actif)' if self.actif else ''}"


class Attestation(models.Model):
    class Statut(models.TextChoices):
        GENEREE = "GENEREE", "Générée"
        EN_ATTENTE_SIGNATURE = "EN_ATTENTE_SIGNATURE", "En attente de signature"
        SIGNEE = "SIGNEE", "Signée"
        DELIVREE = "DELIVREE", "Délivrée"

    class TypeSignature(models.TextChoices):
        ELECTRONIQUE = "ELECTRONIQUE", "Électronique"
        MANUSCRITE = "MANUSCRITE", "Manuscrite"

    demande = models.OneToOneField(Demande, on_delete=models.PROTECT, related_name="attestation")
    numero = models.CharField(max_length=20, unique=True)
    annee = models.PositiveIntegerField()
    sequence = models.PositiveIntegerField()
    date_generation = models.DateTimeField(default=timezone.now)
    template = models.ForeignKey(
        TemplateAttestation, on_delete=models.SET_NULL, null=True, blank=True, related_name="attestations"
    )
    fichier = models.FileField(upload_to="attestations/")
    fichier_signe = models.FileField(upload_to="attestations/signees/", null=True, blank=True)
    hash_sha256 = models.CharField(max_length=64, blank=True, default="")
    qr_payload = models.JSONField(default=dict, blank=True)
    statut = models.CharField(max_length=24, choices=Statut.choices, default=Statut.GENEREE)
    date_signature = models.DateTimeField(null=True, blank=True)
    date_delivrance = models.DateTimeField(null=True, blank=True)
    type_signature = models.CharField(
        max_length=12, choices=TypeSignature.choices, default=TypeSignature.ELECTRONIQUE
    )
    signataire = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="attestations_signees",
    )
    signature_manuscrite = models.ImageField(upload_to="attestations/manuscrites/", null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["annee", "sequence"], name="numero_unique_par_annee"),
        ]
        ordering = ["-date_generation"]

    def __str__(self):
        return self.numero

    @property
    def est_signee(self) -> bool:
        return self.statut in (self.Statut.SIGNEE, self.Statut.DELIVREE)

    def document(self):
        """Fichier courant : signé s'il existe, sinon la version non signée."""
        return self.fichier_signe if self.fichier_signe else self.fichier


# =========================
# Configuration de signature du directeur
# =========================
class DirecteurSignature(models.Model):
    METHOD_CHOICES = [("email", "Code par e-mail"), ("totp", "Application d'authentification")]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="signature_config"
    )
    signature_image = models.ImageField(upload_to="signatures/", null=True, blank=True)
    texte_signature = models.CharField(max_length=200, blank=True, default="")
    pin_hash = models.CharField(max_length=128, blank=True, default="")

    position_x = models.FloatField(default=500)
    position_y = models.FloatField(default=100)
    signature_width = models.FloatField(default=150)
    signature_height = models.FloatField(default=60)
    qr_position_x = models.FloatField(default=50)
    qr_position_y = models.FloatField(default=500)
    qr_size = models.FloatField(default=80)

    is_enabled = models.BooleanField(default=True)
    pin_attempts = models.PositiveIntegerField(default=0)
    pin_first_failure_at = models.DateTimeField(null=True, blank=True)
    pin_locked_until = models.DateTimeField(null=True, blank=True)

    two_factor_method = models.CharField(max_length=8, choices=METHOD_CHOICES, default="email")
    totp_secret = models.TextField(blank=True, default="")  # chiffré (Fernet)
    totp_enabled = models.BooleanField(default=False)
    totp_last_timecode = models.BigIntegerField(null=True, blank=True)
    totp_backup_codes = models.JSONField(default=list, blank=True)  # hachés

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Signature de {self.user}"

    @property
    def has_pin(self) -> bool:
        return bool(self.pin_hash)

    def is_locked(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.pin_locked_until and self.pin_locked_until > now)


# =========================
# Journal d'audit
# =========================
class AuditAction(models.TextChoices):
    DEMANDE_CREEE = "DEMANDE_CREEE"
    DEMANDE_MODIFIEE = "DEMANDE_MODIFIEE"
    DEMANDE_SUPPRIMEE = "DEMANDE_SUPPRIMEE"
    TRAITEMENT_DEMARRE = "TRAITEMENT_DEMARRE"
    PIECE_VERIFIEE = "PIECE_VERIFIEE"
    PIECES_NON_CONFORMES = "PIECES_NON_CONFORMES"
    TRAITEMENT_REPRIS = "TRAITEMENT_REPRIS"
    DEMANDE_VALIDEE = "DEMANDE_VALIDEE"
    DEMANDE_REJETEE = "DEMANDE_REJETEE"
    ATTESTATION_GENEREE = "ATTESTATION_GENEREE"
    ATTESTATION_SIGNEE = "ATTESTATION_SIGNEE"
    ATTESTATION_DELIVREE = "ATTESTATION_DELIVREE"
    ATTESTATION_SUPPRIMEE = "ATTESTATION_SUPPRIMEE"
    DEMANDE_RETOURNEE = "DEMANDE_RETOURNEE"
    TEMPLATE_CREE = "TEMPLATE_CREE"
    TEMPLATE_MODIFIE = "TEMPLATE_MODIFIE"
    TEMPLATE_ACTIVE = "TEMPLATE_ACTIVE"
    SIGNATURE_CONFIGUREE = "SIGNATURE_CONFIGUREE"
    PIN_MODIFIE = "PIN_MODIFIE"
    PIN_ECHEC = "PIN_ECHEC"
    SIGNATURE_BLOQUEE = "SIGNATURE_BLOQUEE"
    SIGNATURE_DEBLOQUEE = "SIGNATURE_DEBLOQUEE"
    OTP_ECHEC = "OTP_ECHEC"
    TOTP_ACTIVE = "TOTP_ACTIVE"
    TOTP_DESACTIVE = "TOTP_DESACTIVE"
    METHODE_2FA_MODIFIEE = "METHODE_2FA_MODIFIEE"
    BACKUP_CODE_UTILISE = "BACKUP_CODE_UTILISE"


class AuditLog(models.Model):
    """Journal d'audit append-only."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    demande = models.ForeignKey(
        Demande,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=40, choices=AuditAction.choices)
    cible = models.CharField(max_length=100, blank=True, default="")
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["action", "created_at"], name="attestation_action_created_idx")]

    def __str__(self):
        return f"{self.action} by {self.user} on {self.created_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Une entrée d'audit ne peut pas être modifiée.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Une entrée d'audit ne peut pas être supprimée.")
