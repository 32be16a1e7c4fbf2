# api/patients/services/payment_service.py

"""
Libro de pagos del paciente y cálculo de saldo.

saldo = Σ (importe del servicio - pago recibido)
Saldo positivo: el paciente debe. Cero o negativo: al día o con saldo a favor.

Los pagos no tienen id propio; editar y eliminar se hace por posición en la
lista vigente al momento de la acción.
"""

from typing import Any, Dict, List, Optional, Tuple

from api.patients.types import PaymentRecord, ValidationResult
from api.patients.utils import (
    amount_or_zero,
    clean_number,
    format_date,
    format_money,
    iso_from_day,
    iso_timestamp,
    is_nan,
    to_number,
)

MENSAJE_METODO_OBLIGATORIO = "Metodo es obligatorio"
MENSAJE_PAGO_OBLIGATORIO = "Pago recibido es obligatorio"
MENSAJE_EDICION_OBLIGATORIOS = "Pago recibido y metodo son obligatorios"
MENSAJE_PAGO_INEXISTENTE = "El pago ya no existe"
MENSAJE_FECHA_INVALIDA = "La fecha del pago no es valida"


class PaymentLedgerService:

    @staticmethod
    def compute_balance(payments: List[PaymentRecord]):
        total = 0
        for payment in payments or []:
            total += amount_or_zero(payment.service_amount) - amount_or_zero(payment.amount)
        return clean_number(total)

    @staticmethod
    def total_paid(payments: List[PaymentRecord]):
        return clean_number(sum(amount_or_zero(p.amount) for p in payments or []))

    @staticmethod
    def last_payment(payments: List[PaymentRecord]) -> Optional[PaymentRecord]:
        """Pago con la fecha ISO más reciente (comparación de texto)"""
        if not payments:
            return None
        return max(payments, key=lambda p: p.date or "")

    @staticmethod
    def add_payment(
        payments: List[PaymentRecord],
        amount,
        service_amount,
        method: str,
        note: Optional[str] = None,
    ) -> Tuple[List[PaymentRecord], Any, ValidationResult]:
        """Devuelve (pagos, nuevo saldo, resultado). Si no valida, los pagos no cambian."""
        amount_value = to_number(amount)
        service_value = to_number(service_amount or 0)

        if not (method or "").strip():
            return payments, PaymentLedgerService.compute_balance(payments), \
                ValidationResult.invalid(MENSAJE_METODO_OBLIGATORIO)
        if is_nan(amount_value):
            return payments, PaymentLedgerService.compute_balance(payments), \
                ValidationResult.invalid(MENSAJE_PAGO_OBLIGATORIO)

        record = PaymentRecord(
            amount=clean_number(amount_value),
            method=method,
            date=iso_timestamp(),
            note=note or None,
            service_amount=0 if is_nan(service_value) else clean_number(service_value),
        )
        updated = list(payments) + [record]
        return updated, PaymentLedgerService.compute_balance(updated), ValidationResult.valid()

    @staticmethod
    def edit_payment(
        payments: List[PaymentRecord],
        index: int,
        amount,
        service_amount,
        method: str,
        note: Optional[str] = None,
        date: Optional[str] = None,
    ) -> Tuple[List[PaymentRecord], Any, ValidationResult]:
        """
        Reemplaza el pago en la posición index. date es YYYY-MM-DD;
        si viene vacía se conserva la fecha original.
        """
        amount_value = to_number(amount)
        service_value = to_number(service_amount or 0)
        balance = PaymentLedgerService.compute_balance(payments)

        if is_nan(amount_value) or not amount_value or not (method or "").strip():
            return payments, balance, ValidationResult.invalid(MENSAJE_EDICION_OBLIGATORIOS)
        if index is None or not 0 <= index < len(payments):
            return payments, balance, ValidationResult.invalid(MENSAJE_PAGO_INEXISTENTE)

        original = payments[index]
        new_date = original.date
        if date:
            new_date = iso_from_day(date)
            if new_date is None:
                return payments, balance, ValidationResult.invalid(MENSAJE_FECHA_INVALIDA)

        updated = list(payments)
        updated[index] = PaymentRecord(
            amount=clean_number(amount_value),
            method=method,
            date=new_date,
            note=note or None,
            service_amount=0 if is_nan(service_value) else clean_number(service_value),
            extra=dict(original.extra),
        )
        return updated, PaymentLedgerService.compute_balance(updated), ValidationResult.valid()

    @staticmethod
    def delete_payment(
        payments: List[PaymentRecord],
        index: int,
    ) -> Tuple[List[PaymentRecord], Any, ValidationResult]:
        if index is None or not 0 <= index < len(payments):
            return payments, PaymentLedgerService.compute_balance(payments), \
                ValidationResult.invalid(MENSAJE_PAGO_INEXISTENTE)
        updated = payments[:index] + payments[index + 1:]
        return updated, PaymentLedgerService.compute_balance(updated), ValidationResult.valid()

    @staticmethod
    def serialize(payments: List[PaymentRecord]) -> List[Dict[str, Any]]:
        """payments viaja como lista JSON estructurada, no como texto"""
        return [payment.to_dict() for payment in payments]

    @staticmethod
    def balance_summary(payments: List[PaymentRecord], balance) -> Dict[str, Any]:
        """Resumen de la pestaña de pagos"""
        value = to_number(balance)
        if is_nan(value):
            value = 0
        last = PaymentLedgerService.last_payment(payments)
        return {
            "balance": clean_number(value),
            "balance_label": f"{value:.2f}",
            "has_debt": value > 0,
            "status_label": "Deuda pendiente" if value > 0 else "Saldo a favor",
            "total_paid": PaymentLedgerService.total_paid(payments),
            "last_payment": {
                "date": format_date(last.date),
                "amount": format_money(last.amount),
            } if last else None,
        }

    @staticmethod
    def format_invoice(
        payment: PaymentRecord,
        patient_name: str,
        current_balance,
        number: int = 1,
    ) -> Dict[str, Any]:
        """Datos del recibo imprimible de un pago"""
        return {
            "title": f"Factura / Recibo #{number}",
            "patient_name": patient_name or "Paciente",
            "date": format_date(payment.date) if payment.date else format_date(iso_timestamp()),
            "method": payment.method or "-",
            "service_amount": format_money(payment.service_amount),
            "amount": format_money(payment.amount),
            "note": payment.note or "",
            "balance": format_money(current_balance),
        }
