"""
============================================================================
API SESSION AUTHENTICATION - Lee la sesión abierta contra la API externa
============================================================================
"""
from rest_framework.authentication import SessionAuthentication

from authentication.context import AuthContext, ClinicSessionUser


class ApiSessionAuthentication(SessionAuthentication):
    """
    Autentica con el AuthContext que arma AuthContextMiddleware.
    Sin marca de sesión no autentica (DRF responde 401).

    La sesión viaja en una cookie, así que toda solicitud autenticada
    que modifica algo debe traer el token CSRF (header X-CSRFToken).
    """

    def authenticate(self, request):
        auth = getattr(request._request, 'auth_context', None)
        if auth is None:
            # Vistas llamadas sin el middleware (tests unitarios)
            auth = AuthContext.from_session(request.session)
            request._request.auth_context = auth

        if not auth.is_authenticated:
            return None

        self.enforce_csrf(request)

        return ClinicSessionUser(auth.role), auth

    def authenticate_header(self, request):
        return 'Session'
