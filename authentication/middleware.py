"""
============================================================================
AUTHENTICATION MIDDLEWARE
============================================================================
Contexto de autenticación por request
"""

import logging

from authentication.context import AuthContext

logger = logging.getLogger(__name__)


# ============================================================================
# AUTH CONTEXT MIDDLEWARE
# ============================================================================

class AuthContextMiddleware:
    """
    Arma request.auth_context desde la sesión de Django antes de la vista.

    Si durante la request el cliente de la API refrescó el token CSRF o
    recibió cookies nuevas, las vuelve a guardar en la sesión al terminar.
    Debe ir después de SessionMiddleware.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.auth_context = AuthContext.from_session(request.session)

        response = self.get_response(request)

        auth = getattr(request, 'auth_context', None)
        if auth is not None and auth.dirty:
            auth.save_to_session(request.session)
            logger.debug("Credenciales de la API actualizadas en la sesión")

        return response
