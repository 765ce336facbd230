# attestations/views/demandes.py
from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .. import issuance, workflow
from ..models import Attestation, Demande
from ..permissions import IsAgent, IsDirecteur, IsSaisie, IsStaff
from ..serializers import (
    AttestationSerializer,
    DemandeCreateSerializer,
    DemandeSerializer,
    DemandeUpdateSerializer,
    NonConformiteSerializer,
    PieceDossierSerializer,
)
from .helpers import ctx


class DemandeViewSet(viewsets.ModelViewSet):
    """
    Demandes d'attestation.
    - lecture : tout le personnel
    - création / modification : saisie et agents
    - actions du circuit de traitement : agents
    """
    serializer_class = DemandeSerializer
    http_method_names = ['get', 'post', 'put', 'patch', 'delete', 'head', 'options']

    def get_permissions(self):
        if self.action in ('list', 'retrieve'):
            return [IsStaff()]
        if self.action in ('create', 'update', 'partial_update'):
            return [IsSaisie()]
        if self.action == 'retour_agent':
            return [IsDirecteur()]
        return [IsAgent()]

    def get_queryset(self):
        qs = Demande.objects.select_related('appele', 'agent').prefetch_related('pieces').order_by('-date_enregistrement')
        statut = self.request.query_params.get('statut')
        if statut:
            qs = qs.filter(statut=statut)
        q = self.request.query_params.get('q')
        if q:
            qs = qs.filter(Q(numero_enregistrement__icontains=q) | Q(appele__nom__icontains=q))
        return qs

    def _detail(self, demande, code=status.HTTP_200_OK):
        demande = self.get_queryset().get(pk=demande.pk)
        return Response(DemandeSerializer(demande, context={'request': self.request}).data, status=code)

    def create(self, request, *args, **kwargs):
        serializer = DemandeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        demande = workflow.creer_demande(ctx(request), **serializer.validated_data)
        return self._detail(demande, status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        serializer = DemandeUpdateSerializer(data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)
        demande = workflow.modifier_demande(kwargs['pk'], ctx(request), **serializer.validated_data)
        return self._detail(demande)

    def partial_update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        workflow.supprimer_demande(kwargs['pk'], ctx(request))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='demarrer-traitement')
    def demarrer_traitement(self, request, pk=None):
        return self._detail(workflow.demarrer_traitement(pk, ctx(request)))

    @action(detail=True, methods=['post'], url_path=r'pieces/(?P<piece_id>\d+)/verifier')
    def verifier_piece(self, request, pk=None, piece_id=None):
        piece = workflow.verifier_piece(
            pk, piece_id, request.data.get('conforme'), ctx(request),
            observation=request.data.get('observation', ''),
        )
        return Response(PieceDossierSerializer(piece).data)

    @action(detail=True, methods=['post'], url_path='non-conforme')
    def non_conforme(self, request, pk=None):
        serializer = NonConformiteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        demande = workflow.signaler_non_conformite(pk, ctx(request), **serializer.validated_data)
        return self._detail(demande)

    @action(detail=True, methods=['post'])
    def reprendre(self, request, pk=None):
        return self._detail(workflow.reprendre_traitement(pk, ctx(request)))

    @action(detail=True, methods=['post'])
    def valider(self, request, pk=None):
        return self._detail(workflow.valider(pk, ctx(request), request.data.get('observations', '')))

    @action(detail=True, methods=['post'])
    def rejeter(self, request, pk=None):
        return self._detail(workflow.rejeter(pk, request.data.get('motif'), ctx(request)))

    @action(detail=True, methods=['post'], url_path='generer-attestation')
    def generer_attestation(self, request, pk=None):
        attestation = issuance.generate(pk, ctx(request))
        return Response(
            AttestationSerializer(attestation, context={'request': request}).data,
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['post'])
    def delivrer(self, request, pk=None):
        attestation = workflow.delivrer(pk, ctx(request))
        return Response(AttestationSerializer(attestation, context={'request': request}).data)

    @action(detail=True, methods=['post'], url_path='retour-agent')
    def retour_agent(self, request, pk=None):
        """Renvoi par le directeur de la demande à l'agent, avec une remarque."""
        attestation = Attestation.objects.filter(demande_id=pk).only('pk').first()
        if attestation is None:
            return Response({'error': "Aucune attestation pour cette demande"}, status=status.HTTP_404_NOT_FOUND)
        demande = issuance.retourner_agent(attestation.pk, request.data.get('remarque'), ctx(request))
        return self._detail(demande)
