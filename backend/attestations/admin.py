from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import Attestation, AuditLog, Demande, TemplateAttestation, User


@admin.register(User)
class ScnUserAdmin(UserAdmin):
    list_display = ('username', 'email', 'role', 'is_active')
    list_filter = ('role', 'is_active')
    fieldsets = UserAdmin.fieldsets + (('Service Civique', {'fields': ('role', 'phone_number')}),)


@admin.register(Demande)
class DemandeAdmin(admin.ModelAdmin):
    list_display = ('numero_enregistrement', 'statut', 'date_enregistrement', 'agent')
    search_fields = ('numero_enregistrement', 'appele__nom')
    list_filter = ('statut',)


@admin.register(Attestation)
class AttestationAdmin(admin.ModelAdmin):
    list_display = ('numero', 'statut', 'date_generation', 'date_signature')
    search_fields = ('numero',)
    list_filter = ('statut', 'annee')
    readonly_fields = ('numero', 'annee', 'sequence', 'hash_sha256', 'qr_payload')


@admin.register(TemplateAttestation)
class TemplateAttestationAdmin(admin.ModelAdmin):
    list_display = ('nom', 'actif', 'updated_at')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'demande', 'cible', 'ip_address', 'created_at')
    search_fields = ('action', 'user__username', 'demande__numero_enregistrement', 'cible', 'ip_address')
    list_filter = ('action', 'created_at')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
