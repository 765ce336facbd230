# attestations/views/attestations.py
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .. import issuance
from ..models import Attestation
from ..permissions import IsAdmin, IsStaff
from ..serializers import AttestationSerializer
from .helpers import ctx, serve_pdf


class AttestationViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         mixins.DestroyModelMixin,
                         viewsets.GenericViewSet):
    """
    Attestations générées.
    - /attestations/{id}/document/ : PDF signé s'il existe, sinon le PDF non signé
    - DELETE : annulation administrative (la demande repasse à l'état validé)
    """
    serializer_class = AttestationSerializer

    def get_permissions(self):
        if self.action == 'destroy':
            return [IsAdmin()]
        return [IsStaff()]

    def get_queryset(self):
        qs = Attestation.objects.select_related('demande__appele', 'signataire').order_by('-date_generation')
        statut = self.request.query_params.get('statut')
        if statut:
            qs = qs.filter(statut=statut)
        return qs

    def destroy(self, request, *args, **kwargs):
        issuance.supprimer_attestation(kwargs['pk'], ctx(request))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'])
    def document(self, request, pk=None):
        attestation = self.get_object()
        document = attestation.document()
        if not document:
            return Response({'error': 'Pas de document disponible'}, status=status.HTTP_404_NOT_FOUND)
        download = request.query_params.get('download') in ('1', 'true')
        return serve_pdf(document, f"{attestation.numero}.pdf", inline=not download)
