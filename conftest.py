"""
Configuración de pytest para todo el proyecto.

La API externa de la clínica nunca se llama en los tests: los repositorios
y el cliente HTTP se reemplazan con unittest.mock.
"""
from unittest.mock import patch

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient


@pytest.fixture(autouse=True)
def limpiar_cache():
    """Sesiones, bloqueos y throttling viven en la cache local"""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def abrir_sesion():
    """Deja en la sesión del cliente lo mismo que guarda el login"""
    def _abrir(client, role="ODONTOLOGO", csrf="csrf-inicial"):
        session = client.session
        session["session"] = "1"
        session["userRole"] = role
        session["csrfToken"] = csrf
        session["apiCookies"] = {"refresh": "r-1"}
        session.save()
        return session
    return _abrir


@pytest.fixture
def cliente_odontologo(api_client, abrir_sesion):
    abrir_sesion(api_client, "ODONTOLOGO")
    return api_client


@pytest.fixture
def repositorio():
    """PatientRepository de las vistas reemplazado por un mock"""
    with patch("api.patients.views.PatientRepository") as repository_class:
        yield repository_class.return_value
