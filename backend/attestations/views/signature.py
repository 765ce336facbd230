# attestations/views/signature.py
"""Espace du directeur : configuration de la signature, PIN, second facteur et signature par lot."""
import logging

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from .. import signing, two_factor
from ..models import Attestation
from ..permissions import IsAdmin, IsDirecteur
from ..serializers import DirecteurSignatureSerializer, SignatureConfigInputSerializer
from .helpers import ctx

logger = logging.getLogger(__name__)
User = get_user_model()


def _challenge_payload(challenge, **extra):
    data = {
        'challenge_id': challenge.id,
        'state': challenge.state.value,
        'method': challenge.method,
        'attestation_ids': challenge.attestation_ids,
    }
    data.update(extra)
    return data


class SignatureConfigView(APIView):
    """GET : configuration courante. POST : création ou mise à jour (PIN, image, positions)."""

    permission_classes = [IsDirecteur]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get(self, request):
        config = two_factor.get_config(request.user)
        return Response(DirecteurSignatureSerializer(config).data)

    def post(self, request):
        serializer = SignatureConfigInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        config = two_factor.configure_signature(
            request.user,
            ctx(request),
            pin=data.pop('pin', None),
            signature_image=data.pop('signature_image', None),
            texte_signature=data.pop('texte_signature', None),
            positions=data,
        )
        return Response(DirecteurSignatureSerializer(config).data)


class SignaturePinView(APIView):
    """
    Première étape de la signature : vérifie le PIN.
    Sans challenge_id, une nouvelle tentative est ouverte pour attestation_ids.
    """

    permission_classes = [IsDirecteur]
    throttle_scope = 'signature-pin'

    def post(self, request):
        challenge_id = request.data.get('challenge_id')
        if not challenge_id:
            challenge_id = two_factor.begin(request.user, request.data.get('attestation_ids')).id
        challenge = two_factor.submit_pin(request.user, challenge_id, request.data.get('pin'), ctx(request))
        message = (
            "Code de vérification envoyé par e-mail"
            if challenge.method == 'email'
            else "Saisissez le code de votre application d'authentification"
        )
        return Response(_challenge_payload(challenge, message=message))


@api_view(['POST'])
@permission_classes([IsDirecteur])
def change_pin(request):
    two_factor.change_pin(
        request.user, request.data.get('old_pin'), request.data.get('new_pin'), ctx(request)
    )
    return Response({'detail': 'Code PIN modifié'})


@api_view(['POST'])
@permission_classes([IsDirecteur])
def verify_otp(request):
    challenge = two_factor.submit_second_factor(
        request.user, request.data.get('challenge_id'), request.data.get('code'), ctx(request)
    )
    return Response(_challenge_payload(challenge))


@api_view(['POST'])
@permission_classes([IsDirecteur])
def resend_otp(request):
    challenge = two_factor.resend_otp(request.user, request.data.get('challenge_id'))
    return Response(_challenge_payload(challenge, message="Nouveau code envoyé"))


@api_view(['POST'])
@permission_classes([IsDirecteur])
@parser_classes([MultiPartParser, FormParser, JSONParser])
def signer(request):
    """
    Signe les attestations autorisées par la tentative.
    Le code du second facteur peut être joint ici plutôt que via /otp/.
    """
    challenge_id = request.data.get('challenge_id')
    code = request.data.get('code')
    if code:
        two_factor.submit_second_factor(request.user, challenge_id, code, ctx(request))

    type_signature = request.data.get('type_signature') or Attestation.TypeSignature.ELECTRONIQUE
    if type_signature not in Attestation.TypeSignature.values:
        return Response({'error': 'Type de signature invalide'}, status=status.HTTP_400_BAD_REQUEST)

    result = signing.sign_attestations(
        request.user,
        challenge_id,
        ctx(request),
        type_signature=type_signature,
        signature_manuscrite=request.FILES.get('signature_manuscrite'),
    )
    logger.info(
        "Lot de signature du directeur %s : %d signée(s), %d erreur(s)",
        request.user.pk, len(result.signees), len(result.erreurs),
    )
    return Response(result.as_dict())


# -------- Second facteur TOTP --------

@api_view(['POST'])
@permission_classes([IsDirecteur])
def setup_totp(request):
    return Response(two_factor.setup_totp(request.user))


@api_view(['POST'])
@permission_classes([IsDirecteur])
def enable_totp(request):
    config = two_factor.enable_totp(request.user, request.data.get('code'), ctx(request))
    return Response(DirecteurSignatureSerializer(config).data)


@api_view(['POST'])
@permission_classes([IsDirecteur])
def disable_totp(request):
    config = two_factor.disable_totp(request.user, request.data.get('code'), ctx(request))
    return Response(DirecteurSignatureSerializer(config).data)


@api_view(['POST'])
@permission_classes([IsDirecteur])
def set_method(request):
    config = two_factor.set_method(request.user, request.data.get('method'), ctx(request))
    return Response(DirecteurSignatureSerializer(config).data)


@api_view(['POST'])
@permission_classes([IsAdmin])
def debloquer(request, user_id):
    directeur = get_object_or_404(User, pk=user_id)
    config = two_factor.unlock(directeur, ctx(request))
    return Response(DirecteurSignatureSerializer(config).data)
