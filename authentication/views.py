"""
============================================================================
AUTHENTICATION VIEWS
============================================================================
Login y logout contra la API externa. La autenticación la resuelve la API;
aquí solo se guardan (o se borran) en la sesión la marca, el rol, el token
CSRF y las cookies que devuelve.
"""

import logging

from django.middleware.csrf import get_token
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from authentication.context import AuthContext
from authentication.serializers import LoginSerializer
from authentication.session_authentication import ApiSessionAuthentication
from common.services.api_client import ClinicApiClient

logger = logging.getLogger(__name__)


# ============================================================================
# LOGIN
# ============================================================================

@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login_view(request):
    """
    Reenvía las credenciales a /auth/login.
    Un error de la API llega al exception handler con su mensaje.
    """
    serializer = LoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    auth = AuthContext()
    data = ClinicApiClient(auth).login(serializer.validated_data)

    user = data.get('user') or {}
    auth.token = data.get('token') or 'session'
    auth.role = user.get('role') or ''
    auth.update_csrf(data.get('csrfToken') or '')

    # Sesión nueva al autenticar
    request.session.cycle_key()
    auth.save_to_session(request.session)
    request._request.auth_context = auth

    logger.info(f"Login exitoso con rol {auth.role or 'sin rol'}")

    # Token CSRF propio del BFF: va en X-CSRFToken en cada POST/PATCH
    return Response({
        'user': user,
        'csrfToken': get_token(request),
        'message': 'Login exitoso'
    }, status=status.HTTP_200_OK)


# ============================================================================
# LOGOUT
# ============================================================================

@api_view(['POST'])
@authentication_classes([ApiSessionAuthentication])
@permission_classes([AllowAny])
def logout_view(request):
    """
    Cierra la sesión en la API y borra la sesión local (y con ella el acceso
    a las fichas abiertas), aunque la API responda con error.
    Con sesión abierta exige el token CSRF.
    """
    auth = getattr(request._request, 'auth_context', None) or AuthContext.from_session(request.session)
    try:
        if auth.is_authenticated:
            ClinicApiClient(auth).logout()
    finally:
        request.session.flush()
        request._request.auth_context = AuthContext()

    logger.info("Logout exitoso")

    return Response({
        'message': 'Logout exitoso'
    }, status=status.HTTP_200_OK)


# ============================================================================
# CSRF
# ============================================================================

@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def csrf_view(request):
    """Token CSRF vigente, para el front que recarga la página con la sesión abierta"""
    return Response({
        'csrfToken': get_token(request),
    }, status=status.HTTP_200_OK)
