# api/patients/types.py

"""
Estructuras de la ficha clínica del paciente.

Son objetos en memoria: se construyen a partir de los campos codificados del
paciente (ver decoders.py) y se vuelven a codificar con to_dict() al guardar.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ToothMark:
    """Marcas de una pieza: caras pintadas (red/blue) y/o extracción"""

    surfaces: Dict[str, str] = field(default_factory=dict)
    extraction: bool = False

    def is_empty(self) -> bool:
        return not self.extraction and not self.surfaces

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"surfaces": dict(self.surfaces)}
        if self.extraction:
            data["extraction"] = True
        return data


@dataclass
class TreatmentPlanItem:
    id: str
    piece: str
    faces: List[str]
    prestation: str
    created_at: str  # MM/YYYY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "piece": self.piece,
            "faces": list(self.faces),
            "prestation": self.prestation,
            "createdAt": self.created_at,
        }


@dataclass
class PaymentRecord:
    """
    Un pago del paciente.

    amount es el pago recibido y service_amount el importe del servicio
    facturado. No existe id estable: los pagos se direccionan por posición.
    """

    amount: float
    method: str
    date: str  # ISO 8601
    note: Optional[str] = None
    service_amount: float = 0
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data["amount"] = self.amount
        data["method"] = self.method
        data["date"] = self.date
        if self.note:
            data["note"] = self.note
        else:
            data.pop("note", None)
        data["serviceAmount"] = self.service_amount
        return data


@dataclass
class HistoryEntry:
    id: str
    date: str  # YYYY-MM-DD
    title: str = ""
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "date": self.date, "title": self.title, "notes": self.notes}


@dataclass
class TreatmentPlan:
    """Resultado de decodificar el plan: notas heredadas + ítems"""

    notes: str = ""
    items: List[TreatmentPlanItem] = field(default_factory=list)


@dataclass
class Appointment:
    id: Any
    start_at: str
    end_at: str
    status: str
    reason: Optional[str] = None
    dentist_id: Any = None
    dentist_email: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Appointment":
        dentist = data.get("dentist") or {}
        user = dentist.get("user") or {}
        return cls(
            id=data.get("id"),
            start_at=data.get("startAt") or "",
            end_at=data.get("endAt") or "",
            status=data.get("status") or "",
            reason=data.get("reason"),
            dentist_id=data.get("dentistId"),
            dentist_email=user.get("email"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startAt": self.start_at,
            "endAt": self.end_at,
            "status": self.status,
            "reason": self.reason,
            "dentistId": self.dentist_id,
            "dentistEmail": self.dentist_email,
        }


@dataclass
class ValidationResult:
    """Fallo de validación local: se devuelve, nunca se lanza"""

    ok: bool
    message: str = ""

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def invalid(cls, message: str) -> "ValidationResult":
        return cls(ok=False, message=message)

    def __bool__(self):
        return self.ok
