import logging

from django.conf import settings
from django.http import HttpResponse

from ..context import RequestContext
from ..exceptions import NotFound

logger = logging.getLogger(__name__)


def ctx(request) -> RequestContext:
    return RequestContext.from_request(request)


def safe_filename(name: str) -> str:
    base = (name or "attestation").replace('"', "").strip() or "attestation"
    if not base.lower().endswith(".pdf"):
        base += ".pdf"
    return base


def serve_pdf(file_field, filename: str, inline: bool = True) -> HttpResponse:
    try:
        with file_field.storage.open(file_field.name, "rb") as fh:
            data = fh.read()
    except FileNotFoundError:
        logger.error("PDF introuvable sur le stockage : %s", file_field.name)
        raise NotFound("Document introuvable")

    resp = HttpResponse(data, content_type="application/pdf")
    disp = "inline" if inline else "attachment"
    safe_name = safe_filename(filename)
    resp["Content-Disposition"] = f'{disp}; filename="{safe_name}"; filename*=UTF-8\'\'{safe_name}'

    resp["X-Frame-Options"] = "SAMEORIGIN"
    frame_ancestors = getattr(settings, "SIGNATURE_FRAME_ANCESTORS", "'self'")
    resp["Content-Security-Policy"] = f"frame-ancestors {frame_ancestors}"

    resp["Cache-Control"] = "no-store"
    resp["Pragma"] = "no-cache"
    resp["Expires"] = "0"
    return resp
