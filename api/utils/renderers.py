# api/utils/renderers.py
import json

from rest_framework import renderers
from rest_framework.renderers import JSONRenderer


class StandardizedJSONRenderer(JSONRenderer):
    """
    Envuelve todas las respuestas JSON en el formato estándar
    {success, status_code, message, data, errors}.
    """

    STATUS_MESSAGES = {
        200: 'Operación exitosa',
        201: 'Recurso creado exitosamente',
        204: 'Recurso eliminado exitosamente',
        400: 'Error en los datos enviados',
        401: 'No autenticado',
        403: 'No tiene permisos para esta acción',
        404: 'Recurso no encontrado',
        409: 'Conflicto con el estado actual',
        500: 'Error interno del servidor'
    }

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = renderer_context.get('response') if renderer_context else None

        # Sin response en el contexto se devuelve tal cual
        if not response:
            return super().render(data, accepted_media_type, renderer_context)

        # Ya viene formateada (exception handler)
        if isinstance(data, dict) and 'success' in data and 'status_code' in data:
            return super().render(data, accepted_media_type, renderer_context)

        standardized_response = {
            'success': response.status_code < 400,
            'status_code': response.status_code,
            'message': self._get_message(data, response),
            'data': data if response.status_code < 400 else None,
            'errors': data if response.status_code >= 400 else None
        }

        return super().render(standardized_response, accepted_media_type, renderer_context)

    def _get_message(self, data, response):
        # Mensaje propio de la vista; si viene vacío, el genérico del status
        if isinstance(data, dict) and 'message' in data:
            message = data.pop('message')
            if message:
                return message

        return self.STATUS_MESSAGES.get(response.status_code, 'Operación completada')


class PDFRenderer(renderers.BaseRenderer):
    """
    Permite negociar Accept: application/pdf en las acciones que devuelven
    un HttpResponse con el PDF; solo renderiza las respuestas de error.
    """
    media_type = "application/pdf"
    format = "pdf"
    charset = None
    render_style = "binary"

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if isinstance(data, (bytes, bytearray)):
            return data
        # Errores de permisos o de sesión: dict del exception handler
        return json.dumps(data, ensure_ascii=False).encode("utf-8")
