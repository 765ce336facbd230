from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework.exceptions import AuthenticationFailed

ACCESS_COOKIE = "access_token"


class CookieJWTAuthentication(JWTAuthentication):
    """JWT lu dans l'en-tête Authorization ou, à défaut, dans le cookie HttpOnly."""

    def authenticate(self, request):
        header = self.get_header(request)
        raw_token = self.get_raw_token(header) if header is not None else request.COOKIES.get(ACCESS_COOKIE)
        if raw_token is None:
            return None
        try:
            validated_token = self.get_validated_token(raw_token)
            user = self.get_user(validated_token)
        except (InvalidToken, AuthenticationFailed):
            # Jeton expiré ou compte désactivé : les cookies seront effacés
            getattr(request, "_request", request)._delete_auth_cookies = True
            return None
        return user, validated_token
