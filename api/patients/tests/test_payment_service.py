# api/patients/tests/test_payment_service.py

import re

import pytest

from api.patients.services.payment_service import (
    MENSAJE_EDICION_OBLIGATORIOS,
    MENSAJE_METODO_OBLIGATORIO,
    MENSAJE_PAGO_INEXISTENTE,
    MENSAJE_PAGO_OBLIGATORIO,
    PaymentLedgerService,
)
from api.patients.types import PaymentRecord


def _pago(amount, service_amount=0, date="2024-01-01T10:00:00.000Z", method="cash", note=None):
    return PaymentRecord(amount=amount, method=method, date=date, note=note, service_amount=service_amount)


class TestSaldo:

    def test_formula(self):
        """Test: saldo = Σ (servicio - pagado)"""
        pagos = [_pago(40, 100), _pago(50, 50)]

        assert PaymentLedgerService.compute_balance(pagos) == 60

    def test_libro_vacio(self):
        assert PaymentLedgerService.compute_balance([]) == 0

    def test_saldo_a_favor(self):
        assert PaymentLedgerService.compute_balance([_pago(150, 100)]) == -50

    def test_decimales(self):
        assert PaymentLedgerService.compute_balance([_pago(10.5, 20)]) == pytest.approx(9.5)


class TestAlta:

    def test_alta(self):
        pagos, saldo, result = PaymentLedgerService.add_payment([], "50", "80", "cash")

        assert result.ok
        assert saldo == 30
        assert len(pagos) == 1
        assert pagos[0].amount == 50
        assert pagos[0].service_amount == 80
        assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", pagos[0].date)

    def test_metodo_obligatorio(self):
        pagos, saldo, result = PaymentLedgerService.add_payment([_pago(10, 30)], "50", "80", "   ")

        assert result.message == MENSAJE_METODO_OBLIGATORIO
        assert len(pagos) == 1
        assert saldo == 20

    def test_pago_no_numerico(self):
        _, _, result = PaymentLedgerService.add_payment([], "abc", "80", "cash")

        assert result.message == MENSAJE_PAGO_OBLIGATORIO

    def test_importe_de_servicio_vacio_es_cero(self):
        pagos, saldo, _ = PaymentLedgerService.add_payment([], "20", "", "card", note="seña")

        assert pagos[0].service_amount == 0
        assert pagos[0].note == "seña"
        assert saldo == -20


class TestEdicionYBaja:

    def setup_method(self):
        self.pagos = [
            _pago(10, 10, date="2024-01-01T10:00:00.000Z"),
            _pago(20, 40, date="2024-02-01T10:00:00.000Z", method="card"),
            _pago(30, 30, date="2024-03-01T10:00:00.000Z"),
        ]

    def test_edita_solo_la_posicion(self):
        """Test: editar el índice 1 no toca los demás y el último pago se recalcula por fecha"""
        assert PaymentLedgerService.last_payment(self.pagos) is self.pagos[2]

        pagos, saldo, result = PaymentLedgerService.edit_payment(
            self.pagos, 1, "25", "60", "transfer", "ajuste", "2024-05-10"
        )

        assert result.ok
        assert pagos[0] == self.pagos[0]
        assert pagos[2] == self.pagos[2]
        assert pagos[1].amount == 25
        assert pagos[1].method == "transfer"
        assert pagos[1].date == "2024-05-10T00:00:00.000Z"
        assert saldo == 35
        assert PaymentLedgerService.last_payment(pagos) is pagos[1]

    def test_fecha_vacia_conserva_la_original(self):
        pagos, _, _ = PaymentLedgerService.edit_payment(self.pagos, 0, "15", "10", "cash", None, "")

        assert pagos[0].date == "2024-01-01T10:00:00.000Z"

    @pytest.mark.parametrize("amount, method", [("", "cash"), ("0", "cash"), ("abc", "cash"), ("10", "")])
    def test_edicion_requiere_pago_y_metodo(self, amount, method):
        pagos, _, result = PaymentLedgerService.edit_payment(self.pagos, 0, amount, "10", method)

        assert result.message == MENSAJE_EDICION_OBLIGATORIOS
        assert pagos is self.pagos

    def test_indice_fuera_de_rango(self):
        _, _, result = PaymentLedgerService.edit_payment(self.pagos, 5, "10", "10", "cash")

        assert result.message == MENSAJE_PAGO_INEXISTENTE

    def test_baja(self):
        pagos, saldo, result = PaymentLedgerService.delete_payment(self.pagos, 0)

        assert result.ok
        assert pagos == self.pagos[1:]
        assert saldo == 20


class TestResumenYRecibo:

    def test_resumen_con_deuda(self):
        pagos = [_pago(40, 100, date="2024-01-05T12:00:00.000Z")]

        resumen = PaymentLedgerService.balance_summary(pagos, "60")

        assert resumen["has_debt"] is True
        assert resumen["status_label"] == "Deuda pendiente"
        assert resumen["balance_label"] == "60.00"
        assert resumen["total_paid"] == 40
        assert resumen["last_payment"]["amount"] == "$40.00"

    def test_resumen_sin_pagos(self):
        resumen = PaymentLedgerService.balance_summary([], "0")

        assert resumen["has_debt"] is False
        assert resumen["status_label"] == "Saldo a favor"
        assert resumen["last_payment"] is None

    def test_recibo(self):
        pago = _pago(40, 100, date="2024-01-05T12:00:00.000Z", note="primera cuota")

        recibo = PaymentLedgerService.format_invoice(pago, "", "60", number=3)

        assert recibo["title"] == "Factura / Recibo #3"
        assert recibo["patient_name"] == "Paciente"
        assert recibo["amount"] == "$40.00"
        assert recibo["service_amount"] == "$100.00"
        assert recibo["balance"] == "$60.00"
        assert recibo["note"] == "primera cuota"
        assert recibo["method"] == "cash"
