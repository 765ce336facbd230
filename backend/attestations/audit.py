# attestations/audit.py
import logging

from django.db import DatabaseError, transaction

from .models import AuditLog

logger = logging.getLogger(__name__)
alerts = logging.getLogger("attestations.alerts")


def log_action(ctx, action, *, demande=None, cible="", details=None):
    """Écrit une entrée d'audit.

    Un échec d'écriture n'interrompt jamais l'opération métier : il est
    signalé sur le logger d'alertes opérationnelles.
    """
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user=ctx.user if ctx else None,
                demande=demande,
                action=action,
                cible=str(cible or (demande.numero_enregistrement if demande else ""))[:100],
                details=details or {},
                ip_address=ctx.ip_address if ctx else None,
                user_agent=(ctx.user_agent if ctx else "")[:500],
            )
    except DatabaseError:
        alerts.error(
            "Échec d'écriture du journal d'audit (action=%s, cible=%s)",
            action,
            cible or getattr(demande, "pk", ""),
            exc_info=True,
        )
        return None
