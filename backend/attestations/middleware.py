# attestations/middleware.py
import re

from django.conf import settings

PDF_ROUTE = re.compile(r"^/api/attestations/\d+/document/$")


class AllowIframeForPDFOnlyMiddleware:
    """Restreint l'intégration en iframe des PDF d'attestation.

    Sur la route qui sert le document, ``X-Frame-Options`` reste
    configurable (``SAMEORIGIN`` par défaut) et ``frame-ancestors`` est
    limité aux origines déclarées ; partout ailleurs on impose SAMEORIGIN.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.x_frame_options = getattr(settings, "SIGNATURE_X_FRAME_OPTIONS", "SAMEORIGIN")
        self.frame_ancestors = getattr(settings, "SIGNATURE_FRAME_ANCESTORS", "'self'")

    def __call__(self, request):
        response = self.get_response(request)
        if not PDF_ROUTE.match(request.path):
            return response

        content_type = response.headers.get("Content-Type", "").split(";")[0].strip().lower()
        if content_type != "application/pdf":
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
            return response

        response.headers["X-Frame-Options"] = self.x_frame_options
        directives = [
            d.strip()
            for d in response.headers.get("Content-Security-Policy", "").split(";")
            if d.strip() and not d.strip().startswith("frame-ancestors")
        ]
        directives.append(f"frame-ancestors {self.frame_ancestors}")
        response.headers["Content-Security-Policy"] = "; ".join(directives)
        return response


class ClearAuthCookiesMiddleware:
    """Supprime les cookies JWT quand la couche d'authentification l'a demandé."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        if getattr(request, "_delete_auth_cookies", False):
            response.delete_cookie("access_token", samesite="None")
            response.delete_cookie("refresh_token", samesite="None")
        return response
