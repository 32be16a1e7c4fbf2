# api/utils/exception_handlers.py
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework.exceptions import APIException
from rest_framework import status
import logging

from common.services.api_client import ApiError

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    """
    Formato estándar para todos los errores:
    {success, status_code, message, data, errors}

    Los ApiError que no se capturan en la vista (login/logout) conservan el
    status de la API externa; un fallo de red se informa como 502.
    """
    if isinstance(exc, ApiError):
        exc = _api_error_a_drf(exc)

    response = exception_handler(exc, context)

    if response is not None:
        logger.warning(
            f"API Error: {exc.__class__.__name__} - {str(exc)}",
            extra={'status_code': response.status_code}
        )

        response.data = {
            'success': False,
            'status_code': response.status_code,
            'message': _get_error_message(exc, response),
            'data': None,
            'errors': _format_errors(response.data)
        }
    else:
        # Excepción no manejada por DRF (500 Internal Server Error)
        logger.critical(
            f"Unhandled Exception: {exc.__class__.__name__} - {str(exc)}",
            exc_info=exc,
        )

        response = Response(
            {
                'success': False,
                'status_code': 500,
                'message': 'Error interno del servidor',
                'data': None,
                'errors': {'detail': ['Ha ocurrido un error inesperado']}
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return response


def _api_error_a_drf(exc):
    error = APIException(detail=exc.message, code='api_error')
    if exc.status_code and 400 <= exc.status_code < 600:
        error.status_code = exc.status_code
    else:
        error.status_code = status.HTTP_502_BAD_GATEWAY
    return error


def _get_error_message(exc, response):
    """Primer mensaje de error, o uno genérico según el status"""
    if hasattr(exc, 'detail'):
        if isinstance(exc.detail, dict) and exc.detail:
            first_error = next(iter(exc.detail.values()))
            return str(first_error[0]) if isinstance(first_error, list) else str(first_error)
        if isinstance(exc.detail, list) and exc.detail:
            return str(exc.detail[0])
        return str(exc.detail)

    status_messages = {
        400: 'Error en los datos enviados',
        401: 'Credenciales no válidas',
        403: 'No tiene permisos para esta acción',
        404: 'Recurso no encontrado',
        405: 'Método no permitido',
        409: 'Conflicto con el estado actual',
        500: 'Error interno del servidor',
        502: 'La API de la clínica no respondió',
    }

    return status_messages.get(response.status_code, 'Error en la solicitud')


def _format_errors(data):
    """
    Formatea errores de validación.

    Args:
        data: Datos de error de DRF

    Returns:
        dict: Errores formateados
    """
    if isinstance(data, dict):
        errors = {}
        for field, messages in data.items():
            if isinstance(messages, list):
                errors[field] = messages
            elif isinstance(messages, dict):
                # Errores anidados (ej: serializers anidados)
                errors[field] = _format_errors(messages)
            else:
                errors[field] = [str(messages)]
        return errors
    elif isinstance(data, list):
        return {'non_field_errors': data}
    else:
        return {'detail': [str(data)]}
