# authentication/context.py
"""
Contexto de autenticación explícito.

Reúne lo que la sesión guarda tras el login contra la API externa (marca de
sesión, rol, token CSRF y cookies) y se pasa a los servicios en lugar de que
estos lean la sesión por su cuenta.
"""
from dataclasses import dataclass, field
from typing import Dict

from api.patients.constants import ROLES_CLINICOS

SESSION_FLAG_KEY = "session"
SESSION_ROLE_KEY = "userRole"
SESSION_CSRF_KEY = "csrfToken"
SESSION_COOKIES_KEY = "apiCookies"


@dataclass
class AuthContext:
    token: str = ""
    role: str = ""
    csrf_token: str = ""
    cookies: Dict[str, str] = field(default_factory=dict)
    dirty: bool = field(default=False, compare=False)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_clinical_staff(self) -> bool:
        return self.role in ROLES_CLINICOS

    def update_csrf(self, csrf_token: str):
        if csrf_token and csrf_token != self.csrf_token:
            self.csrf_token = csrf_token
            self.dirty = True

    def update_cookies(self, cookies: Dict[str, str]):
        if cookies != self.cookies:
            self.cookies = dict(cookies)
            self.dirty = True

    @classmethod
    def from_session(cls, session) -> "AuthContext":
        return cls(
            token="session" if session.get(SESSION_FLAG_KEY) else "",
            role=session.get(SESSION_ROLE_KEY) or "",
            csrf_token=session.get(SESSION_CSRF_KEY) or "",
            cookies=dict(session.get(SESSION_COOKIES_KEY) or {}),
        )

    def save_to_session(self, session):
        """Guarda marca de sesión, rol, CSRF y cookies de la API"""
        session[SESSION_FLAG_KEY] = "1" if self.token else ""
        session[SESSION_ROLE_KEY] = self.role
        session[SESSION_CSRF_KEY] = self.csrf_token
        session[SESSION_COOKIES_KEY] = dict(self.cookies)
        self.dirty = False


class ClinicSessionUser:
    """request.user de DRF cuando hay sesión abierta contra la API externa"""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, role):
        self.role = role

    def __str__(self):
        return f"sesión {self.role or 'sin rol'}"
