import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from django.conf import settings
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from ..serializers import UserSerializer

logger = logging.getLogger(__name__)


def _set_auth_cookies(response, access, refresh):
    secure = not settings.DEBUG
    if access:
        response.set_cookie('access_token', access, httponly=True, secure=secure, samesite='Lax')
    if refresh:
        response.set_cookie('refresh_token', refresh, httponly=True, secure=secure, samesite='Lax')


class CookieTokenObtainPairView(TokenObtainPairView):
    """Émet les JWT et les place dans des cookies HttpOnly."""

    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        _set_auth_cookies(response, response.data.get('access'), response.data.get('refresh'))
        response.data = {'detail': 'Connexion réussie'}
        return response


class CookieTokenRefreshView(TokenRefreshView):
    """Rafraîchit le jeton d'accès à partir du cookie HttpOnly."""

    def post(self, request, *args, **kwargs):
        if 'refresh' not in request.data:
            refresh = request.COOKIES.get('refresh_token')
            if refresh:
                request.data['refresh'] = refresh
        response = super().post(request, *args, **kwargs)
        _set_auth_cookies(response, response.data.get('access'), response.data.get('refresh'))
        response.data = {'detail': 'Jeton rafraîchi'}
        return response


@api_view(['POST'])
@permission_classes([AllowAny])
def logout(request):
    """Révoque le jeton de rafraîchissement puis efface les cookies d'authentification."""
    refresh = request.COOKIES.get('refresh_token')
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            logger.info("Déconnexion avec un jeton déjà invalide : %s", e)
    response = Response({'detail': 'Déconnexion réussie'}, status=status.HTTP_200_OK)
    response.delete_cookie('access_token')
    response.delete_cookie('refresh_token')
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    return Response({'valid': True, 'user': UserSerializer(request.user).data})
