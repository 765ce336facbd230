from rest_framework import serializers
from django.contrib.auth import get_user_model
import logging

from . import lifecycle
from .exceptions import TemplateInvalide
from .layout import TemplateConfig
from .models import (
    Appele,
    Attestation,
    AuditLog,
    Demande,
    DirecteurSignature,
    PieceDossier,
    TemplateAttestation,
)

logger = logging.getLogger(__name__)
User = get_user_model()


# -------- Users --------

class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone_number', 'role']
        read_only_fields = fields


# -------- Demandes --------

class AppeleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Appele
        exclude = ['id', 'demande']

    def validate(self, attrs):
        debut = attrs.get('date_debut_service')
        fin = attrs.get('date_fin_service')
        if debut and fin and fin < debut:
            raise serializers.ValidationError("La fin du service précède son début.")
        return attrs


class PieceDossierSerializer(serializers.ModelSerializer):
    verifie_par = serializers.StringRelatedField()

    class Meta:
        model = PieceDossier
        fields = [
            'id', 'type_piece', 'present', 'conforme', 'obligatoire',
            'observation', 'date_verification', 'verifie_par',
        ]
        read_only_fields = fields


class PieceInputSerializer(serializers.Serializer):
    type_piece = serializers.ChoiceField(choices=PieceDossier.TypePiece.choices)
    present = serializers.BooleanField(required=False)
    obligatoire = serializers.BooleanField(required=False)
    observation = serializers.CharField(required=False, allow_blank=True)


class AttestationSerializer(serializers.ModelSerializer):
    demande_numero = serializers.CharField(source='demande.numero_enregistrement', read_only=True)
    appele = serializers.SerializerMethodField()
    signataire = serializers.StringRelatedField()
    document_url = serializers.SerializerMethodField()

    class Meta:
        model = Attestation
        fields = [
            'id', 'numero', 'demande', 'demande_numero', 'appele', 'statut', 'date_generation',
            'date_signature', 'date_delivrance', 'type_signature', 'signataire', 'hash_sha256',
            'document_url',
        ]
        read_only_fields = fields

    def get_appele(self, obj):
        appele = obj.demande.appele
        return {'nom': appele.nom, 'prenom': appele.prenom, 'promotion': appele.promotion}

    def get_document_url(self, obj):
        request = self.context.get('request')
        path = f"/api/attestations/{obj.pk}/document/"
        return request.build_absolute_uri(path) if request else path


class DemandeSerializer(serializers.ModelSerializer):
    appele = AppeleSerializer(read_only=True)
    pieces = PieceDossierSerializer(many=True, read_only=True)
    attestation = serializers.SerializerMethodField()
    actions_possibles = serializers.SerializerMethodField()
    agent = serializers.StringRelatedField()

    class Meta:
        model = Demande
        fields = [
            'id', 'numero_enregistrement', 'date_enregistrement', 'statut', 'date_traitement',
            'date_validation', 'date_signature', 'date_delivrance', 'observations', 'motif_rejet',
            'agent', 'appele', 'pieces', 'attestation', 'actions_possibles', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_attestation(self, obj):
        attestation = Attestation.objects.filter(demande=obj).first()
        if attestation is None:
            return None
        return {'id': attestation.pk, 'numero': attestation.numero, 'statut': attestation.statut}

    def get_actions_possibles(self, obj):
        return [action.value for action in lifecycle.allowed_actions(obj.statut)]


class DemandeCreateSerializer(serializers.Serializer):
    numero_enregistrement = serializers.CharField(max_length=50)
    date_enregistrement = serializers.DateTimeField(required=False)
    observations = serializers.CharField(required=False, allow_blank=True, default="")
    appele = AppeleSerializer()
    pieces = PieceInputSerializer(many=True, required=False)


class DemandeUpdateSerializer(serializers.Serializer):
    observations = serializers.CharField(required=False, allow_blank=True)
    appele = AppeleSerializer(required=False)
    pieces = PieceInputSerializer(many=True, required=False)

    def validate(self, attrs):
        if 'numero_enregistrement' in self.initial_data:
            raise serializers.ValidationError({'numero_enregistrement': "Le numéro d'enregistrement est immuable."})
        return attrs


class NonConformiteSerializer(serializers.Serializer):
    pieces = PieceInputSerializer(many=True)
    observations = serializers.CharField(required=False, allow_blank=True, default="")


# -------- Templates --------

class TemplateAttestationSerializer(serializers.ModelSerializer):
    created_by = serializers.StringRelatedField()

    class Meta:
        model = TemplateAttestation
        fields = ['id', 'nom', 'description', 'background', 'config', 'actif', 'created_by', 'created_at', 'updated_at']
        read_only_fields = ['actif', 'created_by', 'created_at', 'updated_at']

    def validate_config(self, value):
        try:
            return TemplateConfig.from_dict(value or {}).as_json()
        except TemplateInvalide as e:
            raise serializers.ValidationError(e.message)


# -------- Signature directeur --------

class DirecteurSignatureSerializer(serializers.ModelSerializer):
    has_pin = serializers.BooleanField(read_only=True)
    is_locked = serializers.SerializerMethodField()
    backup_codes_restants = serializers.SerializerMethodField()

    class Meta:
        model = DirecteurSignature
        fields = [
            'signature_image', 'texte_signature', 'has_pin',
            'position_x', 'position_y', 'signature_width', 'signature_height',
            'qr_position_x', 'qr_position_y', 'qr_size',
            'is_enabled', 'is_locked', 'pin_locked_until',
            'two_factor_method', 'totp_enabled', 'backup_codes_restants', 'updated_at',
        ]
        read_only_fields = fields

    def get_is_locked(self, obj):
        return obj.is_locked()

    def get_backup_codes_restants(self, obj):
        return len(obj.totp_backup_codes or [])


class SignatureConfigInputSerializer(serializers.Serializer):
    pin = serializers.CharField(required=False, write_only=True)
    signature_image = serializers.ImageField(required=False)
    texte_signature = serializers.CharField(required=False, allow_blank=True, max_length=200)
    position_x = serializers.FloatField(required=False, min_value=0)
    position_y = serializers.FloatField(required=False, min_value=0)
    signature_width = serializers.FloatField(required=False, min_value=1)
    signature_height = serializers.FloatField(required=False, min_value=1)
    qr_position_x = serializers.FloatField(required=False, min_value=0)
    qr_position_y = serializers.FloatField(required=False, min_value=0)
    qr_size = serializers.FloatField(required=False, min_value=1)


# -------- Audit --------

class AuditLogSerializer(serializers.ModelSerializer):
    user = serializers.StringRelatedField()

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'demande', 'action', 'cible', 'details', 'ip_address', 'user_agent', 'created_at']
        read_only_fields = fields
