from dataclasses import dataclass
from typing import Any, Optional

from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address


def _valid_ip(value) -> Optional[str]:
    value = (value or "").strip()
    try:
        validate_ipv46_address(value)
    except ValidationError:
        return None
    return value


def client_ip(request) -> Optional[str]:
    """Première adresse de X-Forwarded-For si elle est bien formée, sinon REMOTE_ADDR."""
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    return _valid_ip(forwarded.split(",")[0]) or _valid_ip(request.META.get("REMOTE_ADDR"))


@dataclass(frozen=True)
class RequestContext:
    """Auteur et provenance d'une opération, transmis explicitement aux services."""

    user: Any = None
    ip_address: Optional[str] = None
    user_agent: str = ""

    @classmethod
    def from_request(cls, request):
        user = getattr(request, "user", None)
        if user is not None and not user.is_authenticated:
            user = None
        return cls(
            user=user,
            ip_address=client_ip(request),
            user_agent=request.META.get("HTTP_USER_AGENT", "")[:500],
        )

    @classmethod
    def system(cls):
        return cls(user=None, ip_address=None, user_agent="system")
