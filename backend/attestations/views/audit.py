# attestations/views/audit.py
from rest_framework import viewsets

from ..models import AuditLog
from ..permissions import IsAdmin
from ..serializers import AuditLogSerializer


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = AuditLogSerializer
    permission_classes = [IsAdmin]

    def get_queryset(self):
        qs = AuditLog.objects.select_related('user').order_by('-created_at')
        params = self.request.query_params
        if params.get('action'):
            qs = qs.filter(action=params['action'])
        if params.get('demande'):
            qs = qs.filter(demande_id=params['demande'])
        return qs
