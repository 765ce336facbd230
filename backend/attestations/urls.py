# attestations/urls.py
from rest_framework.routers import DefaultRouter
from django.urls import path, include

from .views import signature
from .views.attestations import AttestationViewSet
from .views.audit import AuditLogViewSet
from .views.demandes import DemandeViewSet
from .views.templates import TemplateAttestationViewSet
from .views.verification import verifier_code, verifier_payload

router = DefaultRouter()
router.register(r'demandes', DemandeViewSet, basename='demandes')
router.register(r'attestations', AttestationViewSet, basename='attestations')
router.register(r'admin/templates', TemplateAttestationViewSet, basename='templates')
router.register(r'admin/audit', AuditLogViewSet, basename='audit')

urlpatterns = [
    path('', include(router.urls)),
    path('directeur/signature/config/', signature.SignatureConfigView.as_view(), name='signature-config'),
    path('directeur/signature/pin/', signature.SignaturePinView.as_view(), name='signature-pin'),
    path('directeur/signature/change-pin/', signature.change_pin, name='signature-change-pin'),
    path('directeur/signature/otp/', signature.verify_otp, name='signature-otp'),
    path('directeur/signature/otp/resend/', signature.resend_otp, name='signature-otp-resend'),
    path('directeur/attestations/signer/', signature.signer, name='signature-signer'),
    path('directeur/2fa/setup-totp/', signature.setup_totp, name='2fa-setup-totp'),
    path('directeur/2fa/enable-totp/', signature.enable_totp, name='2fa-enable-totp'),
    path('directeur/2fa/disable-totp/', signature.disable_totp, name='2fa-disable-totp'),
    path('directeur/2fa/method/', signature.set_method, name='2fa-method'),
    path('admin/signature/<int:user_id>/debloquer/', signature.debloquer, name='signature-debloquer'),
    path('verifier/<str:code>/', verifier_code, name='verifier-code'),
    path('verifier/', verifier_payload, name='verifier'),
]
