# attestations/views/verification.py
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from .. import verification


class VerificationRateThrottle(AnonRateThrottle):
    scope = 'verification'


@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([VerificationRateThrottle])
def verifier_code(request, code):
    """Lien du QR code : /verifier/<numero>/?sig=...&ts=..."""
    result = verification.verify_attestation(
        code, request.query_params.get('sig'), request.query_params.get('ts')
    )
    return Response(result.public_payload())


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([VerificationRateThrottle])
def verifier_payload(request):
    """Vérification à partir du contenu JSON lu dans le QR code, ou d'un simple numéro."""
    try:
        data = request.data
    except ParseError:
        data = None
    if not isinstance(data, dict):
        return Response(verification.reject('malformed', 'corps de requête').public_payload())

    payload = data.get('payload')
    if payload is not None:
        result = verification.verify_scanned_payload(payload)
    else:
        result = verification.verify_attestation(
            data.get('numero'), data.get('sig'), data.get('ts')
        )
    return Response(result.public_payload())
