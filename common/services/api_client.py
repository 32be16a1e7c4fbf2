# common/services/api_client.py
"""
Cliente HTTP de la API externa de la clínica.

Toda la persistencia, autenticación y disponibilidad viven en esa API; este
cliente solo envía las credenciales de la sesión (cookies + CSRF), reintenta
una vez tras refrescar el token ante un 401 y traduce los errores a ApiError
con el mensaje del servidor o uno por defecto de la operación.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Fallo de red o respuesta no exitosa de la API externa"""

    def __init__(self, message, status_code=None, payload=None):
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


class ClinicApiClient:
    CSRF_HEADER = "X-CSRF-Token"

    def __init__(self, auth, base_url: Optional[str] = None, timeout=None, session=None):
        self.auth = auth
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else getattr(settings, "API_TIMEOUT", None)
        self.session = session or requests.Session()
        # Las solicitudes en paralelo comparten sesión: un solo refresh a la vez
        self._refresh_lock = threading.Lock()
        self._refreshes = 0
        if auth is not None and auth.cookies:
            self.session.cookies.update(auth.cookies)

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        csrf = self.auth.csrf_token if self.auth is not None else ""
        if csrf:
            headers[self.CSRF_HEADER] = csrf
        return headers

    def _send(self, method, url, **kwargs):
        return self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)

    def _refresh(self) -> bool:
        """POST /auth/refresh; guarda el nuevo CSRF si la API lo devuelve"""
        logger.info("Token vencido, intentando refrescar sesión")
        response = self.session.request("POST", f"{self.base_url}/auth/refresh", timeout=self.timeout)
        if not response.ok:
            logger.warning(f"No se pudo refrescar la sesión (status {response.status_code})")
            return False
        csrf = response.headers.get(self.CSRF_HEADER)
        if csrf and self.auth is not None:
            self.auth.update_csrf(csrf)
        return True

    def _refresh_once(self, generation) -> bool:
        """
        Refresca ante un 401. Si otra solicitud ya refrescó después de que
        esta se envió, solo se reintenta con las credenciales nuevas.
        """
        with self._refresh_lock:
            if self._refreshes != generation:
                return True
            if not self._refresh():
                return False
            self._refreshes += 1
            return True

    def _sync_cookies(self):
        if self.auth is not None:
            with self._refresh_lock:
                self.auth.update_cookies(self.session.cookies.get_dict())

    def request(self, method: str, path: str, default_message: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            generation = self._refreshes
            response = self._send(method, url, **kwargs)
            if response.status_code == 401 and self._refresh_once(generation):
                response = self._send(method, url, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"Error de red en {method} {path}: {e}")
            raise ApiError(default_message) from e
        finally:
            self._sync_cookies()

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if not response.ok:
            logger.warning(f"API {method} {path} respondió {response.status_code}")
            raise ApiError(data.get("message") or default_message, response.status_code, data)
        return data

    # ------------------------------------------------------------------
    # Sesión
    # ------------------------------------------------------------------

    def login(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/auth/login", "No se pudo completar la solicitud", json=payload)

    def logout(self) -> bool:
        self.request("POST", "/auth/logout", "No se pudo cerrar sesion")
        return True

    # ------------------------------------------------------------------
    # Pacientes
    # ------------------------------------------------------------------

    def fetch_patient(self, patient_id) -> Optional[Dict[str, Any]]:
        data = self.request("GET", f"/patients/{patient_id}", "No se pudo obtener el paciente")
        return data.get("patient")

    def fetch_patient_appointments(self, patient_id) -> List[Dict[str, Any]]:
        data = self.request(
            "GET",
            f"/patients/{patient_id}/appointments",
            "No se pudieron obtener los turnos del paciente",
        )
        return data.get("appointments") or []

    def update_patient(self, patient_id, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = self.request(
            "PATCH",
            f"/patients/{patient_id}",
            "No se pudo actualizar el paciente",
            json=payload,
        )
        return data.get("patient")
