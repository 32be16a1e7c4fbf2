# api/patients/exceptions.py
from rest_framework import status
from rest_framework.exceptions import APIException


class ScreenNotOpen(APIException):
    """La ficha no fue abierta (o expiró) en esta sesión"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "La ficha del paciente no está abierta. Vuelva a cargarla."
    default_code = "screen_not_open"


class ActionInProgress(APIException):
    """Ya hay una solicitud igual en curso: el botón sigue deshabilitado"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Ya hay una operación en curso. Espere a que termine."
    default_code = "action_in_progress"
