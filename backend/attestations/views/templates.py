# attestations/views/templates.py
from django.http import HttpResponse
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from .. import issuance, pdf_engine
from ..audit import log_action
from ..layout import AVAILABLE_FIELDS, TemplateConfig
from ..models import AuditAction, TemplateAttestation
from ..permissions import IsAdmin
from ..serializers import TemplateAttestationSerializer
from .helpers import ctx


class TemplateAttestationViewSet(viewsets.ModelViewSet):
    """
    Templates d'attestation (administration).
    - /admin/templates/{id}/activate/ : active ce template, désactive les autres
    - /admin/templates/{id}/preview/  : PDF d'aperçu avec des données fictives
    - /admin/templates/fields/        : catalogue des champs disponibles
    """
    serializer_class = TemplateAttestationSerializer
    permission_classes = [IsAdmin]
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    queryset = TemplateAttestation.objects.select_related('created_by')

    def perform_create(self, serializer):
        template = serializer.save(created_by=self.request.user)
        log_action(ctx(self.request), AuditAction.TEMPLATE_CREE, cible=template.nom, details={"template_id": template.pk})

    def perform_update(self, serializer):
        template = serializer.save()
        log_action(
            ctx(self.request), AuditAction.TEMPLATE_MODIFIE, cible=template.nom,
            details={"template_id": template.pk, "champs": sorted(serializer.validated_data)},
        )

    @action(detail=True, methods=['post'])
    def activate(self, request, pk=None):
        template = issuance.activer_template(pk, ctx(request))
        return Response(self.get_serializer(template).data)

    @action(detail=True, methods=['get'])
    def preview(self, request, pk=None):
        template = self.get_object()
        config = TemplateConfig.from_dict(template.config)
        pdf = pdf_engine.render_preview(config, issuance.read_file(template.background, "fond du template"))
        resp = HttpResponse(pdf, content_type='application/pdf')
        resp['Content-Disposition'] = f'inline; filename="apercu-template-{template.pk}.pdf"'
        resp['Cache-Control'] = 'no-store'
        return resp

    @action(detail=False, methods=['get'])
    def fields(self, request):
        return Response(AVAILABLE_FIELDS)
