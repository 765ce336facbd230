import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                (
                    "is_superuser",
                    models.BooleanField(
                        default=False,
                        help_text="Designates that this user has all permissions without explicitly assigning them.",
                        verbose_name="superuser status",
                    ),
                ),
                (
                    "username",
                    models.CharField(
                        error_messages={"unique": "A user with that username already exists."},
                        help_text="Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.",
                        max_length=150,
                        unique=True,
                        validators=[django.contrib.auth.validators.UnicodeUsernameValidator()],
                        verbose_name="username",
                    ),
                ),
                ("first_name", models.CharField(blank=True, max_length=150, verbose_name="first name")),
                ("last_name", models.CharField(blank=True, max_length=150, verbose_name="last name")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="email address")),
                (
                    "is_staff",
                    models.BooleanField(
                        default=False,
                        help_text="Designates whether the user can log into this admin site.",
                        verbose_name="staff status",
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="Designates whether this user should be treated as active. Unselect this instead of deleting accounts.",
                        verbose_name="active",
                    ),
                ),
                ("date_joined", models.DateTimeField(default=django.utils.timezone.now, verbose_name="date joined")),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("SAISIE", "Agent de saisie"),
                            ("AGENT", "Agent de traitement"),
                            ("DIRECTEUR", "Directeur"),
                            ("ADMIN", "Administrateur"),
                        ],
                        default="SAISIE",
                        max_length=12,
                    ),
                ),
                ("phone_number", models.CharField(blank=True, max_length=20, null=True)),
                (
                    "groups",
                    models.ManyToManyField(
                        blank=True,
                        help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.",
                        related_name="user_set",
                        related_query_name="user",
                        to="auth.group",
                        verbose_name="groups",
                    ),
                ),
                (
                    "user_permissions",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Specific permissions for this user.",
                        related_name="user_set",
                        related_query_name="user",
                        to="auth.permission",
                        verbose_name="user permissions",
                    ),
                ),
            ],
            options={
                "verbose_name": "user",
                "verbose_name_plural": "users",
                "abstract": False,
            },
            managers=[
                ("objects", django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name="AttestationCounter",
            fields=[
                ("annee", models.PositiveIntegerField(primary_key=True, serialize=False)),
                ("valeur", models.PositiveIntegerField(default=0)),
            ],
        ),
        migrations.CreateModel(
            name="Demande",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("numero_enregistrement", models.CharField(max_length=50, unique=True)),
                ("date_enregistrement", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "statut",
                    models.CharField(
                        choices=[
                            ("ENREGISTREE", "Enregistrée"),
                            ("EN_TRAITEMENT", "En traitement"),
                            ("PIECES_NON_CONFORMES", "Pièces non conformes"),
                            ("VALIDEE", "Validée"),
                            ("EN_ATTENTE_SIGNATURE", "En attente de signature"),
                            ("SIGNEE", "Signée"),
                            ("DELIVREE", "Délivrée"),
                            ("REJETEE", "Rejetée"),
                        ],
                        default="ENREGISTREE",
                        max_length=24,
                    ),
                ),
                ("date_traitement", models.DateTimeField(blank=True, null=True)),
                ("date_validation", models.DateTimeField(blank=True, null=True)),
                ("date_signature", models.DateTimeField(blank=True, null=True)),
                ("date_delivrance", models.DateTimeField(blank=True, null=True)),
                ("observations", models.TextField(blank=True, default="")),
                ("motif_rejet", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "agent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="demandes_saisies",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-date_enregistrement"],
                "indexes": [models.Index(fields=["statut"], name="attestation_statut_demande_idx")],
            },
        ),
        migrations.CreateModel(
            name="Appele",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "civilite",
                    models.CharField(
                        blank=True, choices=[("M.", "Monsieur"), ("Mme", "Madame")], default="", max_length=4
                    ),
                ),
                ("nom", models.CharField(max_length=100)),
                ("prenom", models.CharField(max_length=150)),
                ("date_naissance", models.DateField()),
                ("lieu_naissance", models.CharField(max_length=150)),
                ("diplome", models.CharField(blank=True, default="", max_length=200)),
                ("promotion", models.CharField(blank=True, default="", max_length=50)),
                ("structure", models.CharField(blank=True, default="", max_length=200)),
                ("date_debut_service", models.DateField(blank=True, null=True)),
                ("date_fin_service", models.DateField(blank=True, null=True)),
                ("numero_arrete", models.CharField(blank=True, default="", max_length=100)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("telephone", models.CharField(blank=True, default="", max_length=20)),
                (
                    "demande",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="appele",
                        to="attestations.demande",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="PieceDossier",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "type_piece",
                    models.CharField(
                        choices=[
                            ("DEMANDE_MANUSCRITE", "Demande manuscrite"),
                            ("CERTIFICAT_ASSIDUITE", "Certificat d'assiduité"),
                            ("CERTIFICAT_CESSATION", "Certificat de cessation"),
                            ("CERTIFICAT_PRISE_SERVICE", "Certificat de prise de service"),
                            ("COPIE_ARRETE", "Copie de l'arrêté"),
                        ],
                        max_length=32,
                    ),
                ),
                ("present", models.BooleanField(default=False)),
                ("conforme", models.BooleanField(blank=True, null=True)),
                ("obligatoire", models.BooleanField(default=True)),
                ("observation", models.TextField(blank=True, default="")),
                ("date_verification", models.DateTimeField(blank=True, null=True)),
                (
                    "demande",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pieces",
                        to="attestations.demande",
                    ),
                ),
                (
                    "verifie_par",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="pieces_verifiees",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.UniqueConstraint(fields=("demande", "type_piece"), name="piece_unique_par_demande")
                ],
            },
        ),
        migrations.CreateModel(
            name="TemplateAttestation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("nom", models.CharField(max_length=150)),
                ("description", models.TextField(blank=True, default="")),
                ("background", models.ImageField(upload_to="templates/backgrounds/")),
                ("config", models.JSONField(blank=True, default=dict)),
                ("actif", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-updated_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("actif", True)), fields=("actif",), name="un_seul_template_actif"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Attestation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("numero", models.CharField(max_length=20, unique=True)),
                ("annee", models.PositiveIntegerField()),
                ("sequence", models.PositiveIntegerField()),
                ("date_generation", models.DateTimeField(default=django.utils.timezone.now)),
                ("fichier", models.FileField(upload_to="attestations/")),
                ("fichier_signe", models.FileField(blank=True, null=True, upload_to="attestations/signees/")),
                ("hash_sha256", models.CharField(blank=True, default="", max_length=64)),
                ("qr_payload", models.JSONField(blank=True, default=dict)),
                (
                    "statut",
                    models.CharField(
                        choices=[
                            ("GENEREE", "Générée"),
                            ("EN_ATTENTE_SIGNATURE", "En attente de signature"),
                            ("SIGNEE", "Signée"),
                            ("DELIVREE", "Délivrée"),
                        ],
                        default="GENEREE",
                        max_length=24,
                    ),
                ),
                ("date_signature", models.DateTimeField(blank=True, null=True)),
                ("date_delivrance", models.DateTimeField(blank=True, null=True)),
                (
                    "type_signature",
                    models.CharField(
                        choices=[("ELECTRONIQUE", "Électronique"), ("MANUSCRITE", "Manuscrite")],
                        default="ELECTRONIQUE",
                        max_length=12,
                    ),
                ),
                (
                    "signature_manuscrite",
                    models.ImageField(blank=True, null=True, upload_to="attestations/manuscrites/"),
                ),
                (
                    "demande",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="attestation",
                        to="attestations.demande",
                    ),
                ),
                (
                    "signataire",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="attestations_signees",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="attestations",
                        to="attestations.templateattestation",
                    ),
                ),
            ],
            options={
                "ordering": ["-date_generation"],
                "constraints": [
                    models.UniqueConstraint(fields=("annee", "sequence"), name="numero_unique_par_annee")
                ],
            },
        ),
        migrations.CreateModel(
            name="DirecteurSignature",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("signature_image", models.ImageField(blank=True, null=True, upload_to="signatures/")),
                ("texte_signature", models.CharField(blank=True, default="", max_length=200)),
                ("pin_hash", models.CharField(blank=True, default="", max_length=128)),
                ("position_x", models.FloatField(default=500)),
                ("position_y", models.FloatField(default=100)),
                ("signature_width", models.FloatField(default=150)),
                ("signature_height", models.FloatField(default=60)),
                ("qr_position_x", models.FloatField(default=50)),
                ("qr_position_y", models.FloatField(default=500)),
                ("qr_size", models.FloatField(default=80)),
                ("is_enabled", models.BooleanField(default=True)),
                ("pin_attempts", models.PositiveIntegerField(default=0)),
                ("pin_first_failure_at", models.DateTimeField(blank=True, null=True)),
                ("pin_locked_until", models.DateTimeField(blank=True, null=True)),
                (
                    "two_factor_method",
                    models.CharField(
                        choices=[("email", "Code par e-mail"), ("totp", "Application d'authentification")],
                        default="email",
                        max_length=8,
                    ),
                ),
                ("totp_secret", models.TextField(blank=True, default="")),
                ("totp_enabled", models.BooleanField(default=False)),
                ("totp_last_timecode", models.BigIntegerField(blank=True, null=True)),
                ("totp_backup_codes", models.JSONField(blank=True, default=list)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="signature_config",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("DEMANDE_CREEE", "Demande Creee"),
                            ("DEMANDE_MODIFIEE", "Demande Modifiee"),
                            ("DEMANDE_SUPPRIMEE", "Demande Supprimee"),
                            ("TRAITEMENT_DEMARRE", "Traitement Demarre"),
                            ("PIECE_VERIFIEE", "Piece Verifiee"),
                            ("PIECES_NON_CONFORMES", "Pieces Non Conformes"),
                            ("TRAITEMENT_REPRIS", "Traitement Repris"),
                            ("DEMANDE_VALIDEE", "Demande Validee"),
                            ("DEMANDE_REJETEE", "Demande Rejetee"),
                            ("ATTESTATION_GENEREE", "Attestation Generee"),
                            ("ATTESTATION_SIGNEE", "Attestation Signee"),
                            ("ATTESTATION_DELIVREE", "Attestation Delivree"),
                            ("ATTESTATION_SUPPRIMEE", "Attestation Supprimee"),
                            ("DEMANDE_RETOURNEE", "Demande Retournee"),
                            ("TEMPLATE_CREE", "Template Cree"),
                            ("TEMPLATE_MODIFIE", "Template Modifie"),
                            ("TEMPLATE_ACTIVE", "Template Active"),
                            ("SIGNATURE_CONFIGUREE", "Signature Configuree"),
                            ("PIN_MODIFIE", "Pin Modifie"),
                            ("PIN_ECHEC", "Pin Echec"),
                            ("SIGNATURE_BLOQUEE", "Signature Bloquee"),
                            ("SIGNATURE_DEBLOQUEE", "Signature Debloquee"),
                            ("OTP_ECHEC", "Otp Echec"),
                            ("TOTP_ACTIVE", "Totp Active"),
                            ("TOTP_DESACTIVE", "Totp Desactive"),
                            ("METHODE_2FA_MODIFIEE", "Methode 2Fa Modifiee"),
                            ("BACKUP_CODE_UTILISE", "Backup Code Utilise"),
                        ],
                        max_length=40,
                    ),
                ),
                ("cible", models.CharField(blank=True, default="", max_length=100)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "demande",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_logs",
                        to="attestations.demande",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["action", "created_at"], name="attestation_action_created_idx")],
            },
        ),
    ]
