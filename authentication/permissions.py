# authentication/permissions.py
from rest_framework import permissions

from authentication.context import AuthContext


class IsClinicalStaff(permissions.BasePermission):
    """
    Solo odontólogos y administradores acceden a la ficha clínica.
    Sin sesión: 401. Con sesión de otro rol: 403.
    """
    message = 'No tiene permisos para acceder a la ficha clínica'

    def has_permission(self, request, view):
        auth = request.auth
        if not isinstance(auth, AuthContext) or not auth.is_authenticated:
            return False
        return auth.is_clinical_staff
