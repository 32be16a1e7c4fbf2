# api/patients/tests/test_patient_screen_service.py

import json
from unittest.mock import MagicMock

import pytest
from django.core.cache import cache

from api.patients.constants import Estado, Herramienta, Modal
from api.patients.exceptions import ActionInProgress
from api.patients.services.patient_screen_service import (
    PatientScreen,
    PatientScreenService,
    action_in_flight,
    screen_lock,
)
from api.patients.types import ToothMark
from common.services.api_client import ApiError


def _paciente(**cambios):
    paciente = {
        "id": 7,
        "fullName": "Ana Pérez",
        "email": "ana@example.com",
        "dni": "",
        "phone": None,
        "obraSocial": "OSDE",
        "treatmentPlan": "",
        "treatmentPlanItems": json.dumps([
            {"id": "p1", "piece": "11", "faces": ["mesial"], "prestation": "Resina", "createdAt": "01/2024"},
        ]),
        "odontograma": '{"11": ["mesial"]}',
        "historyEntries": json.dumps([
            {"id": "h1", "date": "2024-02-01", "title": "Control", "notes": ""},
            {"id": "h2", "date": "2024-01-01", "title": "Inicio", "notes": ""},
        ]),
        "payments": [],
        "balance": None,
    }
    paciente.update(cambios)
    return paciente


class BaseScreenTest:

    def setup_method(self):
        self.repo = MagicMock()
        self.repo.get_with_appointments.return_value = (_paciente(), [])
        self.repo.update.return_value = None
        self.service = PatientScreenService(PatientScreen(patient_id=7), self.repo, owner="s1")

    def abrir(self, **cambios):
        if cambios:
            self.repo.get_with_appointments.return_value = (_paciente(**cambios), [])
        self.service.load()
        return self.service.screen


class TestCarga(BaseScreenTest):

    def test_decodifica_los_cuatro_submodelos(self):
        screen = self.abrir()

        assert screen.status == Estado.IDLE
        assert screen.details["fullName"] == "Ana Pérez"
        assert screen.details["phone"] == ""
        assert screen.odontogram == {"11": ToothMark(surfaces={"mesial": "red"})}
        assert [item.id for item in screen.plan_items] == ["p1"]
        assert [e.id for e in screen.history_entries] == ["h1", "h2"]
        assert screen.history_filter == "2024-02-01"
        assert screen.tool == Herramienta.AZUL

    def test_saldo_calculado_si_no_hay_guardado(self):
        screen = self.abrir(payments=[{"amount": 20, "serviceAmount": 50, "method": "cash", "date": ""}])

        assert screen.details["balance"] == "30"

    def test_saldo_guardado_tiene_prioridad_al_abrir(self):
        """Test: el saldo guardado se muestra aunque no coincida con los pagos"""
        screen = self.abrir(balance=120, payments=[])

        assert screen.details["balance"] == "120"

    def test_notas_del_plan_en_texto_libre(self):
        screen = self.abrir(treatmentPlanItems=None, treatmentPlan="Control anual")

        assert screen.details["treatmentPlan"] == "Control anual"
        assert screen.plan_items == []

    def test_error_de_api_queda_como_mensaje(self):
        self.repo.get_with_appointments.side_effect = ApiError("Paciente inexistente", 404)

        screen = self.abrir()

        assert screen.status == Estado.ERROR
        assert screen.message == "Paciente inexistente"
        assert screen.patient is None

    def test_turnos(self):
        self.repo.get_with_appointments.return_value = (_paciente(), [{
            "id": 1,
            "startAt": "2024-03-01T13:00:00.000Z",
            "endAt": "2024-03-01T13:30:00.000Z",
            "status": "CONFIRMED",
            "dentist": {"user": {"email": "doc@example.com"}},
        }])

        screen = self.abrir()

        assert screen.appointments[0].dentist_email == "doc@example.com"


class TestGuardar(BaseScreenTest):

    def test_payload_de_guardar(self):
        self.abrir()
        self.service.toggle_mark("21", "oclusal")
        self.service.update_details({"dni": "30111222", "balance": "45.5"})
        self.repo.update.return_value = _paciente(dni="30111222")

        assert self.service.save_details() is True

        args, kwargs = self.repo.update.call_args
        assert args == (7,)
        assert kwargs["fullName"] == "Ana Pérez"
        assert kwargs["dni"] == "30111222"
        assert "phone" not in kwargs
        assert kwargs["balance"] == 45.5
        assert json.loads(kwargs["odontograma"]) == {
            "11": {"surfaces": {"mesial": "red"}},
            "21": {"surfaces": {"oclusal": "blue"}},
        }
        assert json.loads(kwargs["treatmentPlanItems"])[0]["id"] == "p1"
        assert [e["id"] for e in json.loads(kwargs["historyEntries"])] == ["h1", "h2"]
        assert "payments" not in kwargs
        assert self.service.screen.message == "Datos guardados"

    def test_plan_vacio_no_se_envia(self):
        self.abrir(treatmentPlanItems="")

        payload = self.service.build_save_payload()

        assert "treatmentPlanItems" not in payload
        assert payload["odontograma"]

    def test_plan_vaciado_se_envia_vacio(self):
        """Test: si se eliminan todos los ítems guardados, el PATCH los borra"""
        self.abrir()
        self.service.remove_plan_item("p1")

        payload = self.service.build_save_payload()

        assert payload["treatmentPlanItems"] == ""

    def test_notas_del_plan_no_se_pisan(self):
        self.abrir(treatmentPlanItems="Extraer 38 en marzo")

        assert "treatmentPlanItems" not in self.service.build_save_payload()

    def test_error_al_guardar(self):
        self.abrir()
        self.repo.update.side_effect = ApiError("", 500)

        assert self.service.save_details() is False
        assert self.service.screen.status == Estado.ERROR
        assert self.service.screen.message == "No se pudo actualizar"

    def test_solicitud_en_curso(self):
        """Test: mientras hay un guardado en vuelo no se acepta otro igual"""
        self.abrir()
        cache.add(self.service._lock_key("details"), True)

        with pytest.raises(ActionInProgress):
            self.service.save_details()

        self.repo.update.assert_not_called()
        assert "details" in self.service.in_flight()

    def test_accion_tomada_por_quien_llama(self):
        """Test: con la acción ya tomada por la vista, el servicio no se bloquea a sí mismo"""
        self.abrir()
        service = PatientScreenService(self.service.screen, self.repo, owner="s1", held=["details"])

        with action_in_flight("s1", 7, "details"):
            assert service.save_details() is True

        self.repo.update.assert_called_once()


class TestFichaTomada:

    def test_segunda_solicitud_espera_y_se_rechaza(self):
        with screen_lock("s1", 7):
            with pytest.raises(ActionInProgress):
                with screen_lock("s1", 7, wait=0):
                    pass

    def test_se_libera_al_terminar(self):
        with screen_lock("s1", 7):
            pass

        with screen_lock("s1", 7, wait=0):
            assert cache.get("patient_screen:s1:7:lock")

        assert cache.get("patient_screen:s1:7:lock") is None

    def test_se_libera_aunque_falle(self):
        with pytest.raises(ValueError):
            with screen_lock("s1", 7):
                raise ValueError("fallo")

        with screen_lock("s1", 7, wait=0):
            pass

    def test_otra_ficha_no_espera(self):
        with screen_lock("s1", 7):
            with screen_lock("s1", 8, wait=0):
                pass
            with screen_lock("s2", 7, wait=0):
                pass

    def test_no_libera_un_bloqueo_ajeno(self):
        """Test: si el bloqueo venció y lo tomó otra solicitud, sigue siendo de esa"""
        with screen_lock("s1", 7):
            cache.set("patient_screen:s1:7:lock", "otra")

        assert cache.get("patient_screen:s1:7:lock") == "otra"


class TestPagos(BaseScreenTest):

    def test_alta_de_punta_a_punta(self):
        """Test: alta sobre libro vacío envía pagos y saldo juntos"""
        self.abrir()
        self.repo.update.return_value = _paciente(balance=30)

        assert self.service.add_payment(50, 80, "cash") is True

        screen = self.service.screen
        assert len(screen.payments) == 1
        assert screen.details["balance"] == "30"
        assert screen.payment_status == Estado.SUCCESS
        assert screen.payment_message == "Pago agregado"
        args, kwargs = self.repo.update.call_args
        assert args == (7,)
        assert set(kwargs) == {"payments", "balance"}
        assert kwargs["balance"] == 30
        assert kwargs["payments"][0]["amount"] == 50
        assert kwargs["payments"][0]["serviceAmount"] == 80
        assert screen.patient["payments"] == kwargs["payments"]

    def test_validacion_no_llama_a_la_api(self):
        self.abrir()

        assert self.service.add_payment("50", "80", "") is False

        self.repo.update.assert_not_called()
        assert self.service.screen.payment_message == "Metodo es obligatorio"

    def test_error_de_api_conserva_el_libro(self):
        self.abrir()
        self.repo.update.side_effect = ApiError("", 502)

        assert self.service.add_payment("50", "80", "cash") is False

        assert self.service.screen.payments == []
        assert self.service.screen.details["balance"] == "0"
        assert self.service.screen.payment_message == "No se pudo registrar el pago"

    def test_baja_con_confirmacion(self):
        """Test: pedir la baja no cambia nada; confirmar borra y recalcula"""
        self.abrir(payments=[
            {"amount": 40, "serviceAmount": 100, "method": "cash", "date": "2024-01-01T00:00:00.000Z"},
            {"amount": 50, "serviceAmount": 50, "method": "card", "date": "2024-02-01T00:00:00.000Z"},
        ])
        antes = list(self.service.screen.payments)

        assert self.service.request_delete_payment(0) is True

        assert self.service.screen.payments == antes
        assert self.service.screen.modal == Modal.CONFIRMAR_ELIMINAR_PAGO
        self.repo.update.assert_not_called()

        self.repo.update.return_value = None
        assert self.service.confirm_delete_payment() is True

        screen = self.service.screen
        assert screen.payments == antes[1:]
        assert screen.details["balance"] == "0"
        assert screen.confirm_index is None
        assert screen.modal == Modal.NINGUNO
        assert screen.payment_message == "Pago eliminado"
        assert self.repo.update.call_args.kwargs["balance"] == 0

    def test_cancelar_baja(self):
        self.abrir(payments=[{"amount": 40, "method": "cash", "date": ""}])
        self.service.request_delete_payment(0)

        self.service.cancel_delete_payment()

        assert self.service.screen.confirm_index is None
        assert self.service.screen.modal == Modal.NINGUNO
        assert len(self.service.screen.payments) == 1

    def test_baja_del_pago_en_edicion_cierra_la_edicion(self):
        self.abrir(payments=[{"amount": 40, "method": "cash", "date": "2024-01-01T00:00:00.000Z"}])
        self.service.start_edit_payment(0)
        self.service.request_delete_payment(0)

        self.service.confirm_delete_payment()

        assert self.service.screen.payment_edit is None
        assert self.service.screen.modal == Modal.NINGUNO

    def test_confirmacion_se_limpia_aunque_falle(self):
        self.abrir(payments=[{"amount": 40, "method": "cash", "date": ""}])
        self.service.request_delete_payment(0)
        self.repo.update.side_effect = ApiError("Sin conexión", None)

        assert self.service.confirm_delete_payment() is False

        assert self.service.screen.confirm_index is None
        assert len(self.service.screen.payments) == 1
        assert self.service.screen.payment_message == "Sin conexión"

    def test_edicion_con_borrador(self):
        self.abrir(payments=[
            {"amount": 40, "serviceAmount": 100, "method": "cash", "date": "2024-01-01T09:30:00.000Z", "note": "x"},
        ])
        self.repo.update.return_value = None

        assert self.service.start_edit_payment(0) is True
        borrador = self.service.screen.payment_edit
        assert borrador["date"] == "2024-01-01"
        assert borrador["amount"] == "40"

        assert self.service.save_edit_payment({"amount": "100", "date": "2024-01-15"}) is True

        pago = self.service.screen.payments[0]
        assert pago.amount == 100
        assert pago.date == "2024-01-15T00:00:00.000Z"
        assert pago.note == "x"
        assert self.service.screen.details["balance"] == "0"
        assert self.service.screen.payment_edit is None
        assert self.service.screen.payment_message == "Pago actualizado"

    def test_recibo(self):
        self.abrir(payments=[{"amount": 40, "serviceAmount": 100, "method": "cash", "date": "2024-01-01T12:00:00.000Z"}])

        recibo = self.service.invoice(0)

        assert recibo["title"] == "Factura / Recibo #1"
        assert recibo["patient_name"] == "Ana Pérez"
        assert recibo["balance"] == "$60.00"
        assert self.service.invoice(3) is None


class TestVistaYModales(BaseScreenTest):

    def test_un_solo_modal(self):
        """Test: abrir la historia sobre la edición de un pago y volver"""
        self.abrir(payments=[{"amount": 40, "method": "cash", "date": ""}])
        self.service.start_edit_payment(0)

        self.service.open_history()
        assert self.service.screen.modal == Modal.HISTORIA

        self.service.close_history()
        assert self.service.screen.modal == Modal.EDITAR_PAGO

    def test_guardar_historia_actualiza_filtro(self):
        self.abrir()
        self.service.open_history()
        self.service.update_history_draft({"date": "2024-01-15", "title": "Limpieza"})

        assert self.service.save_history() is True

        screen = self.service.screen
        assert [e.date for e in screen.history_entries] == ["2024-02-01", "2024-01-15", "2024-01-01"]
        assert screen.history_filter == "2024-01-15"
        assert screen.modal == Modal.NINGUNO

    def test_formulario_del_plan(self):
        self.abrir()
        self.service.set_plan_form(piece="12", prestation="Sellado")
        self.service.toggle_plan_face("distal")
        self.service.toggle_plan_face("mesial")

        result = self.service.submit_plan_item()

        assert result.ok
        assert self.service.screen.plan_items[-1].faces == ["mesial", "distal"]
        assert self.service.screen.plan_form == {"piece": "", "faces": [], "prestation": ""}

    def test_formulario_del_plan_incompleto(self):
        self.abrir()
        self.service.set_plan_form(piece="12")

        result = self.service.submit_plan_item()

        assert not result
        assert self.service.screen.plan_error == "Pieza y prestacion son obligatorias."
        assert len(self.service.screen.plan_items) == 1

    def test_editar_y_eliminar_item_del_plan(self):
        self.abrir()
        assert self.service.start_edit_plan_item("p1") is True
        assert self.service.screen.plan_form["piece"] == "11"

        self.service.remove_plan_item("p1")

        assert self.service.screen.plan_items == []
        assert self.service.screen.editing_plan_id is None

    def test_estado_en_cache(self):
        """Test: la ficha se guarda y se recupera igual, separada por sesión y paciente"""
        self.abrir(payments=[{"amount": 40, "method": "cash", "date": "2024-01-01T00:00:00.000Z", "extra": 1}])
        self.service.open_history()

        self.service.screen.save("s1")
        recuperada = PatientScreen.load("s1", 7)

        assert recuperada.to_state() == self.service.screen.to_state()
        assert PatientScreen.load("s1", 8) is None
        assert PatientScreen.load("s2", 7) is None

    def test_representacion(self):
        self.abrir()

        data = self.service.to_representation()

        assert data["patient"] == {"id": 7, "fullName": "Ana Pérez"}
        assert data["plan"]["items"][0]["facesLabel"] == "M"
        assert [e["id"] for e in data["history"]["entries"]] == ["h1"]
        assert data["payments"]["summary"]["status_label"] == "Saldo a favor"
        assert data["in_flight"] == []
