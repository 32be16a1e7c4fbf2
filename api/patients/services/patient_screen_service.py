# api/patients/services/patient_screen_service.py

"""
Ficha del paciente abierta en pantalla.

Une los cuatro submodelos (odontograma, plan, pagos, historia) sobre un mismo
paciente. Se decodifican al cargar, se modifican en memoria y se guardan:
  - odontograma, plan e historia: juntos, con "guardar" (un solo PATCH)
  - pagos: en cada alta/edición/baja, junto con el saldo recalculado

El saldo guardado en el paciente solo se usa para mostrar al abrir la ficha;
cualquier cambio en los pagos lo recalcula y lo sobrescribe.

El estado de la ficha vive en la cache, por sesión y paciente. Cada solicitud
que lo modifica lo carga, lo cambia y lo guarda con la ficha bloqueada
(screen_lock), así dos solicitudes sobre la misma ficha no se pisan.

No hay control de concurrencia contra la API: si otra pestaña u otro usuario
guarda el mismo paciente, gana la última escritura.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.core.cache import cache

from api.patients.constants import DETAIL_FIELDS, Estado, Herramienta, Modal, Panel
from api.patients.decoders import decode_history_entries, decode_payments, normalize_plan_items
from api.patients.exceptions import ActionInProgress
from api.patients.services.history_service import HistoryService
from api.patients.services.odontogram_service import OdontogramService
from api.patients.services.payment_service import PaymentLedgerService
from api.patients.services.treatment_plan_service import TreatmentPlanService
from api.patients.types import (
    Appointment,
    HistoryEntry,
    PaymentRecord,
    ToothMark,
    TreatmentPlanItem,
    ValidationResult,
)
from api.patients.utils import clean_number, format_date, format_time, is_nan, to_number, today_iso
from common.services.api_client import ApiError

logger = logging.getLogger(__name__)

SCREEN_PREFIX = "patient_screen"

# Intervalo entre intentos de tomar la ficha
LOCK_POLL_SECONDS = 0.05


def screen_key(owner, patient_id, suffix) -> str:
    return f"{SCREEN_PREFIX}:{owner}:{patient_id}:{suffix}"


@contextmanager
def action_in_flight(owner, patient_id, accion):
    """Equivale a deshabilitar el botón mientras la solicitud está en vuelo"""
    key = screen_key(owner, patient_id, accion)
    if not cache.add(key, True, timeout=settings.SCREEN_LOCK_SECONDS):
        logger.warning(f"Solicitud duplicada rechazada: paciente {patient_id}, {accion}")
        raise ActionInProgress()
    try:
        yield
    finally:
        cache.delete(key)


@contextmanager
def screen_lock(owner, patient_id, wait=None):
    """
    Una sola solicitud a la vez carga, modifica y guarda la ficha.
    Las demás esperan hasta `wait` segundos; después, ActionInProgress.
    """
    key = screen_key(owner, patient_id, "lock")
    token = uuid.uuid4().hex
    wait = settings.SCREEN_LOCK_WAIT_SECONDS if wait is None else wait
    deadline = time.monotonic() + wait
    while not cache.add(key, token, timeout=settings.SCREEN_LOCK_SECONDS):
        if time.monotonic() >= deadline:
            logger.warning(f"Ficha del paciente {patient_id} ocupada por otra solicitud")
            raise ActionInProgress()
        time.sleep(LOCK_POLL_SECONDS)
    try:
        yield
    finally:
        # Si el bloqueo venció y lo tomó otra solicitud, no se libera
        if cache.get(key) == token:
            cache.delete(key)


def _empty_plan_form():
    return {"piece": "", "faces": [], "prestation": ""}


@dataclass
class PatientScreen:
    """Estado en memoria de la ficha abierta"""

    patient_id: Any
    patient: Optional[Dict[str, Any]] = None
    appointments: List[Appointment] = field(default_factory=list)
    status: str = Estado.LOADING
    message: str = ""
    panel: str = Panel.DATOS
    modal: str = Modal.NINGUNO
    details: Dict[str, str] = field(default_factory=dict)

    odontogram: Dict[str, ToothMark] = field(default_factory=dict)
    tool: str = Herramienta.DEFAULT

    plan_items: List[TreatmentPlanItem] = field(default_factory=list)
    plan_form: Dict[str, Any] = field(default_factory=_empty_plan_form)
    editing_plan_id: Optional[str] = None
    plan_error: str = ""

    payments: List[PaymentRecord] = field(default_factory=list)
    payment_status: str = Estado.IDLE
    payment_message: str = ""
    payment_edit: Optional[Dict[str, Any]] = None
    confirm_index: Optional[int] = None

    history_entries: List[HistoryEntry] = field(default_factory=list)
    history_filter: str = ""
    history_draft: Optional[HistoryEntry] = None

    # ------------------------------------------------------------------
    # Persistencia en la cache
    # ------------------------------------------------------------------

    def to_state(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "patient": self.patient,
            "appointments": [a.to_dict() for a in self.appointments],
            "status": self.status,
            "message": self.message,
            "panel": self.panel,
            "modal": self.modal,
            "details": dict(self.details),
            "odontogram": OdontogramService.serialize(self.odontogram),
            "tool": self.tool,
            "plan_items": [item.to_dict() for item in self.plan_items],
            "plan_form": dict(self.plan_form),
            "editing_plan_id": self.editing_plan_id,
            "plan_error": self.plan_error,
            "payments": PaymentLedgerService.serialize(self.payments),
            "payment_status": self.payment_status,
            "payment_message": self.payment_message,
            "payment_edit": self.payment_edit,
            "confirm_index": self.confirm_index,
            "history_entries": [entry.to_dict() for entry in self.history_entries],
            "history_filter": self.history_filter,
            "history_draft": self.history_draft.to_dict() if self.history_draft else None,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "PatientScreen":
        draft = state.get("history_draft")
        return cls(
            patient_id=state["patient_id"],
            patient=state.get("patient"),
            appointments=[
                Appointment(
                    id=a.get("id"),
                    start_at=a.get("startAt") or "",
                    end_at=a.get("endAt") or "",
                    status=a.get("status") or "",
                    reason=a.get("reason"),
                    dentist_id=a.get("dentistId"),
                    dentist_email=a.get("dentistEmail"),
                )
                for a in state.get("appointments") or []
            ],
            status=state.get("status", Estado.IDLE),
            message=state.get("message", ""),
            panel=state.get("panel", Panel.DATOS),
            modal=state.get("modal", Modal.NINGUNO),
            details=dict(state.get("details") or {}),
            odontogram=OdontogramService.parse(state.get("odontogram")),
            tool=state.get("tool", Herramienta.DEFAULT),
            plan_items=normalize_plan_items(state.get("plan_items")),
            plan_form=dict(state.get("plan_form") or _empty_plan_form()),
            editing_plan_id=state.get("editing_plan_id"),
            plan_error=state.get("plan_error", ""),
            payments=decode_payments(state.get("payments")),
            payment_status=state.get("payment_status", Estado.IDLE),
            payment_message=state.get("payment_message", ""),
            payment_edit=state.get("payment_edit"),
            confirm_index=state.get("confirm_index"),
            history_entries=decode_history_entries(state.get("history_entries")),
            history_filter=state.get("history_filter", ""),
            history_draft=HistoryEntry(**draft) if draft else None,
        )

    @classmethod
    def load(cls, owner, patient_id) -> Optional["PatientScreen"]:
        state = cache.get(screen_key(owner, patient_id, "state"))
        return cls.from_state(state) if state else None

    def save(self, owner):
        """Dura lo mismo que la sesión dueña de la ficha"""
        cache.set(
            screen_key(owner, self.patient_id, "state"),
            self.to_state(),
            timeout=settings.SESSION_COOKIE_AGE,
        )


class PatientScreenService:
    """Operaciones de la ficha. Los errores de la API quedan como mensajes de estado."""

    def __init__(self, screen: PatientScreen, repository, owner: str = "", held=()):
        self.screen = screen
        self.repository = repository
        self.owner = owner
        # Acciones cuyo bloqueo ya tomó quien llama (la vista)
        self.held = set(held)

    # ------------------------------------------------------------------
    # Solicitudes en curso
    # ------------------------------------------------------------------

    def _lock_key(self, accion: str) -> str:
        return screen_key(self.owner, self.screen.patient_id, accion)

    @contextmanager
    def _en_curso(self, accion: str):
        if accion in self.held:
            yield
            return
        with action_in_flight(self.owner, self.screen.patient_id, accion):
            yield

    def in_flight(self) -> List[str]:
        return [accion for accion in ("load", "details", "payments") if cache.get(self._lock_key(accion))]

    # ------------------------------------------------------------------
    # Carga y guardado
    # ------------------------------------------------------------------

    def load(self):
        screen = self.screen
        with self._en_curso("load"):
            screen.status = Estado.LOADING
            screen.message = ""
            try:
                patient, appointments = self.repository.get_with_appointments(screen.patient_id)
            except ApiError as e:
                screen.status = Estado.ERROR
                screen.message = e.message or "No se pudo cargar el paciente"
                return screen

        if patient:
            self._apply_patient(patient)
        screen.appointments = [Appointment.from_api(a) for a in appointments or [] if isinstance(a, dict)]
        screen.status = Estado.IDLE
        return screen

    def _apply_patient(self, patient: Dict[str, Any]):
        screen = self.screen
        screen.patient = patient
        screen.payments = decode_payments(patient.get("payments"))
        plan = TreatmentPlanService.parse(patient.get("treatmentPlanItems") or patient.get("treatmentPlan") or "")

        details = {key: patient.get(key) or "" for key in DETAIL_FIELDS}
        details["treatmentPlan"] = patient.get("treatmentPlan") or plan.notes or ""
        stored_balance = patient.get("balance")
        if stored_balance is not None:
            details["balance"] = str(clean_number(stored_balance))
        else:
            details["balance"] = str(PaymentLedgerService.compute_balance(screen.payments))
        screen.details = details

        screen.plan_items = plan.items
        screen.odontogram = OdontogramService.parse(patient.get("odontograma"))
        screen.history_entries = HistoryService.parse(patient.get("historyEntries"))
        if screen.history_entries:
            screen.history_filter = screen.history_entries[0].date

    def update_details(self, values: Dict[str, str]):
        for key, value in values.items():
            if key in DETAIL_FIELDS or key == "balance":
                self.screen.details[key] = value if value is not None else ""

    def build_save_payload(self) -> Dict[str, Any]:
        screen = self.screen
        payload = {key: screen.details.get(key) for key in DETAIL_FIELDS if screen.details.get(key)}
        plan = TreatmentPlanService.serialize(screen.plan_items)
        if plan or self._had_plan_items():
            # Plan vaciado: se envía "" para que los ítems no vuelvan al recargar
            payload["treatmentPlanItems"] = plan
        payload["odontograma"] = OdontogramService.serialize(screen.odontogram)
        payload["historyEntries"] = HistoryService.serialize(screen.history_entries)
        balance = screen.details.get("balance")
        if balance:
            value = to_number(balance)
            if not is_nan(value):
                payload["balance"] = clean_number(value)
        return payload

    def _had_plan_items(self) -> bool:
        """Si el paciente guardado tiene ítems de plan (no solo notas en texto libre)"""
        stored = (self.screen.patient or {}).get("treatmentPlanItems")
        return bool(TreatmentPlanService.parse(stored or "").items)

    def save_details(self) -> bool:
        """Guarda datos personales, odontograma, plan e historia en un solo PATCH"""
        screen = self.screen
        with self._en_curso("details"):
            screen.status = Estado.SAVING
            screen.message = ""
            try:
                updated = self.repository.update(screen.patient_id, **self.build_save_payload())
            except ApiError as e:
                screen.status = Estado.ERROR
                screen.message = e.message or "No se pudo actualizar"
                return False

        if updated:
            screen.patient = updated
            if "payments" in updated:
                screen.payments = decode_payments(updated.get("payments"))
        screen.status = Estado.IDLE
        screen.message = "Datos guardados"
        return True

    # ------------------------------------------------------------------
    # Vista
    # ------------------------------------------------------------------

    def set_panel(self, panel: str):
        self.screen.panel = panel

    def _restore_modal(self):
        self.screen.modal = Modal.EDITAR_PAGO if self.screen.payment_edit else Modal.NINGUNO

    # ------------------------------------------------------------------
    # Odontograma
    # ------------------------------------------------------------------

    def select_tool(self, tool: str):
        self.screen.tool = tool

    def toggle_mark(self, tooth: str, surface: Optional[str] = None):
        self.screen.odontogram = OdontogramService.toggle_mark(
            self.screen.odontogram, tooth, surface, self.screen.tool
        )

    def clear_odontogram(self):
        self.screen.odontogram = OdontogramService.clear()

    # ------------------------------------------------------------------
    # Plan de tratamiento
    # ------------------------------------------------------------------

    def set_plan_form(self, piece=None, prestation=None, faces=None):
        form = self.screen.plan_form
        if piece is not None:
            form["piece"] = piece
        if prestation is not None:
            form["prestation"] = prestation
        if faces is not None:
            form["faces"] = list(faces)
        self.screen.plan_error = ""

    def toggle_plan_face(self, face: str):
        form = self.screen.plan_form
        form["faces"] = TreatmentPlanService.toggle_face(form.get("faces") or [], face)
        self.screen.plan_error = ""

    def submit_plan_item(self) -> ValidationResult:
        screen = self.screen
        form = screen.plan_form
        items, result = TreatmentPlanService.add_or_update(
            screen.plan_items,
            form.get("piece"),
            form.get("faces") or [],
            form.get("prestation"),
            screen.editing_plan_id,
        )
        if not result:
            screen.plan_error = result.message
            return result
        screen.plan_items = items
        self.cancel_edit_plan_item()
        return result

    def start_edit_plan_item(self, item_id: str) -> bool:
        item = TreatmentPlanService.find(self.screen.plan_items, item_id)
        if item is None:
            return False
        self.screen.plan_form = {"piece": item.piece, "faces": list(item.faces), "prestation": item.prestation}
        self.screen.editing_plan_id = item.id
        self.screen.plan_error = ""
        return True

    def cancel_edit_plan_item(self):
        self.screen.plan_form = _empty_plan_form()
        self.screen.editing_plan_id = None
        self.screen.plan_error = ""

    def remove_plan_item(self, item_id: str):
        editing = self.screen.editing_plan_id
        self.screen.plan_items, editing_after = TreatmentPlanService.remove(self.screen.plan_items, item_id, editing)
        if editing and editing_after is None:
            self.cancel_edit_plan_item()

    # ------------------------------------------------------------------
    # Pagos (se guardan en el momento)
    # ------------------------------------------------------------------

    def _payment_error(self, message: str):
        self.screen.payment_status = Estado.ERROR
        self.screen.payment_message = message

    def _persist_payments(self, payments, balance, success_message, default_error) -> bool:
        """
        Envía pagos + saldo juntos. Solo si la API responde bien se
        reemplaza la lista en memoria; si falla queda visible la anterior.
        """
        screen = self.screen
        serialized = PaymentLedgerService.serialize(payments)
        with self._en_curso("payments"):
            screen.payment_status = Estado.SAVING
            screen.payment_message = ""
            try:
                updated = self.repository.update(screen.patient_id, payments=serialized, balance=balance)
            except ApiError as e:
                logger.warning(f"No se guardaron los pagos del paciente {screen.patient_id}: {e.message}")
                self._payment_error(e.message or default_error)
                return False

        screen.patient = dict(updated or screen.patient or {}, payments=serialized)
        screen.payments = payments
        screen.details["balance"] = str(balance)
        screen.payment_status = Estado.SUCCESS
        screen.payment_message = success_message
        logger.info(f"Pagos del paciente {screen.patient_id} guardados, saldo {balance}")
        return True

    def add_payment(self, amount, service_amount, method, note=None) -> bool:
        payments, balance, result = PaymentLedgerService.add_payment(
            self.screen.payments, amount, service_amount, method, note
        )
        if not result:
            self._payment_error(result.message)
            return False
        return self._persist_payments(payments, balance, "Pago agregado", "No se pudo registrar el pago")

    def start_edit_payment(self, index: int) -> bool:
        payments = self.screen.payments
        if not 0 <= index < len(payments):
            return False
        payment = payments[index]
        self.screen.payment_edit = {
            "index": index,
            "amount": str(payment.amount),
            "method": payment.method or "",
            "note": payment.note or "",
            "date": payment.date[:10] if payment.date else today_iso(),
            "serviceAmount": str(payment.service_amount),
        }
        self.screen.payment_status = Estado.IDLE
        self.screen.payment_message = ""
        self.screen.modal = Modal.EDITAR_PAGO
        return True

    def cancel_edit_payment(self):
        self.screen.payment_edit = None
        self._restore_modal()

    def edit_payment(self, index, amount, service_amount, method, note=None, date=None) -> bool:
        payments, balance, result = PaymentLedgerService.edit_payment(
            self.screen.payments, index, amount, service_amount, method, note, date
        )
        if not result:
            self._payment_error(result.message)
            return False
        return self._persist_payments(payments, balance, "Pago actualizado", "No se pudo actualizar el pago")

    def save_edit_payment(self, values: Optional[Dict[str, Any]] = None) -> bool:
        """Guarda el borrador de edición sobre la posición capturada al abrirlo"""
        draft = self.screen.payment_edit
        if draft is None:
            return False
        draft.update({k: v for k, v in (values or {}).items() if k != "index"})
        saved = self.edit_payment(
            draft["index"],
            draft.get("amount"),
            draft.get("serviceAmount"),
            draft.get("method") or "",
            draft.get("note"),
            draft.get("date"),
        )
        if saved:
            self.cancel_edit_payment()
        return saved

    def request_delete_payment(self, index: int) -> bool:
        """Abre la confirmación; no borra nada todavía"""
        if not 0 <= index < len(self.screen.payments):
            return False
        self.screen.confirm_index = index
        self.screen.modal = Modal.CONFIRMAR_ELIMINAR_PAGO
        return True

    def cancel_delete_payment(self):
        self.screen.confirm_index = None
        self._restore_modal()

    def confirm_delete_payment(self) -> bool:
        screen = self.screen
        index = screen.confirm_index
        if index is None:
            return False
        try:
            payments, balance, result = PaymentLedgerService.delete_payment(screen.payments, index)
            if not result:
                self._payment_error(result.message)
                return False
            deleted = self._persist_payments(payments, balance, "Pago eliminado", "No se pudo eliminar el pago")
            if deleted and screen.payment_edit and screen.payment_edit.get("index") == index:
                screen.payment_edit = None
            return deleted
        finally:
            screen.confirm_index = None
            self._restore_modal()

    def invoice(self, index: int) -> Optional[Dict[str, Any]]:
        if not 0 <= index < len(self.screen.payments):
            return None
        screen = self.screen
        name = screen.details.get("fullName") or (screen.patient or {}).get("fullName")
        return PaymentLedgerService.format_invoice(
            screen.payments[index], name, screen.details.get("balance") or 0, number=index + 1
        )

    # ------------------------------------------------------------------
    # Historia clínica (se guarda con "guardar")
    # ------------------------------------------------------------------

    def open_history(self, entry_id: Optional[str] = None) -> bool:
        existing = None
        if entry_id:
            existing = HistoryService.find(self.screen.history_entries, entry_id)
            if existing is None:
                return False
        self.screen.history_draft = HistoryService.open_entry(existing)
        self.screen.modal = Modal.HISTORIA
        return True

    def update_history_draft(self, values: Dict[str, str]) -> bool:
        draft = self.screen.history_draft
        if draft is None:
            return False
        for key in ("date", "title", "notes"):
            if key in values and values[key] is not None:
                setattr(draft, key, values[key])
        return True

    def save_history(self) -> bool:
        draft = self.screen.history_draft
        if draft is None:
            return False
        self.screen.history_entries = HistoryService.save_entry(self.screen.history_entries, draft)
        self.screen.history_filter = draft.date
        self.close_history()
        return True

    def close_history(self):
        self.screen.history_draft = None
        self._restore_modal()

    def set_history_filter(self, date: str):
        self.screen.history_filter = date or ""

    # ------------------------------------------------------------------
    # Representación para la vista
    # ------------------------------------------------------------------

    def to_representation(self) -> Dict[str, Any]:
        screen = self.screen
        patient = screen.patient or {}
        return {
            "patient_id": screen.patient_id,
            "status": screen.status,
            "message": screen.message,
            "panel": screen.panel,
            "modal": screen.modal,
            "in_flight": self.in_flight(),
            "patient": {"id": patient.get("id"), "fullName": patient.get("fullName")} if patient else None,
            "details": dict(screen.details),
            "odontogram": {
                "tool": screen.tool,
                "marks": {tooth: mark.to_dict() for tooth, mark in screen.odontogram.items()},
                "grid": OdontogramService.grid(screen.odontogram),
            },
            "plan": {
                "items": [
                    dict(item.to_dict(), facesLabel=TreatmentPlanService.format_faces(item.faces))
                    for item in screen.plan_items
                ],
                "form": dict(screen.plan_form),
                "editing_id": screen.editing_plan_id,
                "error": screen.plan_error,
            },
            "payments": {
                "items": [
                    dict(payment.to_dict(), index=idx, dateLabel=format_date(payment.date))
                    for idx, payment in enumerate(screen.payments)
                ],
                "summary": PaymentLedgerService.balance_summary(screen.payments, screen.details.get("balance")),
                "status": screen.payment_status,
                "message": screen.payment_message,
                "edit": screen.payment_edit,
                "confirm_index": screen.confirm_index,
            },
            "history": {
                "entries": [
                    HistoryService.preview(entry)
                    for entry in HistoryService.filter_by_date(screen.history_entries, screen.history_filter)
                ],
                "dates": HistoryService.distinct_dates(screen.history_entries),
                "filter": screen.history_filter,
                "draft": screen.history_draft.to_dict() if screen.history_draft else None,
            },
            "appointments": [
                dict(a.to_dict(), date=format_date(a.start_at), time=format_time(a.start_at))
                for a in screen.appointments
            ],
        }
