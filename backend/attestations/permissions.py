from rest_framework import permissions

from .models import User

Role = User.Role


class HasRole(permissions.BasePermission):
    """Autorise les utilisateurs actifs dont le rôle figure dans ``roles``."""

    roles = ()
    message = "Action non autorisée pour votre rôle"

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.has_role(*self.roles))


def roles(*allowed):
    return type(f"HasRole_{'_'.join(allowed)}", (HasRole,), {"roles": allowed})


IsSaisie = roles(Role.SAISIE, Role.AGENT, Role.ADMIN)
IsAgent = roles(Role.AGENT, Role.ADMIN)
IsDirecteur = roles(Role.DIRECTEUR)
IsAdmin = roles(Role.ADMIN)
IsStaff = roles(Role.SAISIE, Role.AGENT, Role.DIRECTEUR, Role.ADMIN)
