# authentication/tests/test_auth_views.py

from unittest.mock import patch

import pytest
from rest_framework import status

from common.services.api_client import ApiError

LOGIN_URL = "/api/auth/login/"
LOGOUT_URL = "/api/auth/logout/"


class TestAuthenticationViews:
    """Login y logout reenviados a la API de la clínica"""

    @pytest.fixture(autouse=True)
    def cliente_api(self):
        with patch("authentication.views.ClinicApiClient") as client_class:
            self.api = client_class.return_value
            yield client_class

    def setup_method(self):
        self.valid_login_data = {
            "identifier": "odontologo@clinica.com",
            "password": "secreta123",
        }

    def test_login_guarda_sesion(self, api_client):
        """Test: login exitoso deja marca, rol y CSRF en la sesión"""
        self.api.login.return_value = {
            "user": {"id": 3, "role": "ODONTOLOGO"},
            "csrfToken": "csrf-1",
        }

        response = api_client.post(LOGIN_URL, self.valid_login_data, format="json")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Login exitoso"
        assert body["data"]["user"]["role"] == "ODONTOLOGO"
        self.api.login.assert_called_once_with(self.valid_login_data)

        session = api_client.session
        assert session["session"] == "1"
        assert session["userRole"] == "ODONTOLOGO"
        assert session["csrfToken"] == "csrf-1"

    def test_login_habilita_la_ficha(self, api_client):
        self.api.login.return_value = {"user": {"role": "ADMIN"}}

        api_client.post(LOGIN_URL, self.valid_login_data, format="json")

        with patch("api.patients.views.PatientRepository") as repository_class:
            repository_class.return_value.get_with_appointments.return_value = ({"id": 7}, [])
            response = api_client.get("/api/patients/7/")

        assert response.status_code == status.HTTP_200_OK

    def test_login_credenciales_invalidas(self, api_client):
        """Test: el status y el mensaje de la API llegan al cliente"""
        self.api.login.side_effect = ApiError("Credenciales inválidas", 401)

        response = api_client.post(LOGIN_URL, self.valid_login_data, format="json")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "Credenciales inválidas"
        assert "session" not in api_client.session

    def test_login_api_caida(self, api_client):
        self.api.login.side_effect = ApiError("No se pudo completar la solicitud")

        response = api_client.post(LOGIN_URL, self.valid_login_data, format="json")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["message"] == "No se pudo completar la solicitud"

    def test_login_campos_requeridos(self, api_client):
        response = api_client.post(LOGIN_URL, {"identifier": "x"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "password" in response.json()["errors"]
        self.api.login.assert_not_called()

    def test_logout(self, cliente_odontologo):
        response = cliente_odontologo.post(LOGOUT_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Logout exitoso"
        self.api.logout.assert_called_once()
        assert cliente_odontologo.get("/api/patients/7/").status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_borra_sesion_aunque_la_api_falle(self, cliente_odontologo):
        self.api.logout.side_effect = ApiError("No se pudo cerrar sesion", 500)

        response = cliente_odontologo.post(LOGOUT_URL)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "session" not in cliente_odontologo.session

    def test_logout_sin_sesion(self, api_client):
        response = api_client.post(LOGOUT_URL)

        assert response.status_code == status.HTTP_200_OK
        self.api.logout.assert_not_called()
