# api/patients/decoders.py

"""
Decodificación de los campos codificados del paciente.

Cada campo guardado pudo haberse escrito con distintas versiones del sistema.
Primero se identifica la forma del dato (detectar_forma_*), luego se aplica
el decodificador registrado para esa forma. Las formas desconocidas o el
JSON corrupto caen en la variante "vacía": nunca se lanza una excepción al
llamador, porque se trata de datos heredados y no de un error del usuario.

Formas conocidas:
  odontograma       objeto {pieza: {surfaces, extraction}}  (actual)
                    objeto {pieza: ["mesial", ...]}         (heredado, todo rojo)
  treatmentPlan     lista de ítems | {notes, items} | texto libre heredado
  historyEntries    lista | texto JSON de una lista
  payments          lista | texto JSON de una lista
"""

import json
import logging
from typing import Any, Dict, List

from api.patients.constants import Herramienta
from api.patients.types import (
    HistoryEntry,
    PaymentRecord,
    ToothMark,
    TreatmentPlan,
    TreatmentPlanItem,
)
from api.patients.utils import amount_or_zero, month_year, timestamp_ms

logger = logging.getLogger(__name__)

_INVALIDO = object()


def _cargar_json(raw):
    """Texto JSON -> objeto; estructuras ya decodificadas pasan tal cual"""
    if not isinstance(raw, (str, bytes)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.debug(f"JSON inválido descartado: {e}")
        return _INVALIDO


# ============================================================================
# ODONTOGRAMA
# ============================================================================

def detectar_forma_pieza(value) -> str:
    if isinstance(value, list):
        return "lista_heredada"
    if isinstance(value, dict):
        return "marca"
    return "desconocida"


def _pieza_desde_lista(value) -> ToothMark:
    # El formato viejo no distinguía planificado de realizado
    return ToothMark(surfaces={cara: Herramienta.ROJO for cara in value if isinstance(cara, str)})


def _pieza_desde_marca(value) -> ToothMark:
    mark = ToothMark()
    surfaces = value.get("surfaces")
    if isinstance(surfaces, dict):
        for cara, color in surfaces.items():
            if color in Herramienta.COLORES:
                mark.surfaces[cara] = color
            elif color and not isinstance(color, str):
                mark.surfaces[cara] = Herramienta.ROJO
    if value.get("extraction"):
        mark.extraction = True
    return mark


_DECODIFICADORES_PIEZA = {
    "lista_heredada": _pieza_desde_lista,
    "marca": _pieza_desde_marca,
    "desconocida": lambda value: ToothMark(),
}


def decode_odontogram(raw) -> Dict[str, ToothMark]:
    if not raw:
        return {}
    parsed = _cargar_json(raw)
    if not isinstance(parsed, dict):
        return {}

    result = {}
    for tooth, value in parsed.items():
        mark = _DECODIFICADORES_PIEZA[detectar_forma_pieza(value)](value)
        if not mark.is_empty():
            result[str(tooth)] = mark
    return result


# ============================================================================
# PLAN DE TRATAMIENTO
# ============================================================================

def detectar_forma_plan(parsed) -> str:
    if parsed is _INVALIDO:
        return "texto_libre"
    if isinstance(parsed, list):
        return "lista"
    if isinstance(parsed, dict):
        return "objeto"
    return "texto_libre"


def normalize_plan_items(raw_items) -> List[TreatmentPlanItem]:
    """
    Normaliza ítems de cualquier versión (prestacion/pi -> prestation/piece).
    Descarta los que no tienen ni pieza ni prestación.
    """
    items = []
    for idx, item in enumerate(raw_items or []):
        if not isinstance(item, dict):
            continue
        faces = item.get("faces")
        created_at = item.get("createdAt")
        normalized = TreatmentPlanItem(
            id=item["id"] if isinstance(item.get("id"), str) else f"{timestamp_ms()}-{idx}",
            piece=str(item.get("piece") or item.get("pi") or ""),
            faces=[f for f in faces if isinstance(f, str)] if isinstance(faces, list) else [],
            prestation=str(item.get("prestation") or item.get("prestacion") or ""),
            created_at=created_at if isinstance(created_at, str) and created_at else month_year(),
        )
        if normalized.piece or normalized.prestation:
            items.append(normalized)
    return items


def decode_treatment_plan(raw) -> TreatmentPlan:
    if not raw:
        return TreatmentPlan()
    parsed = _cargar_json(raw)
    forma = detectar_forma_plan(parsed)

    if forma == "lista":
        return TreatmentPlan(items=normalize_plan_items(parsed))
    if forma == "objeto":
        notes = parsed.get("notes")
        items = parsed.get("items")
        return TreatmentPlan(
            notes=notes if isinstance(notes, str) else "",
            items=normalize_plan_items(items if isinstance(items, list) else []),
        )
    # Notas de tratamiento en texto plano (versiones anteriores)
    return TreatmentPlan(notes=raw if isinstance(raw, str) else "")


# ============================================================================
# HISTORIA CLÍNICA Y PAGOS
# ============================================================================

def _lista_o_vacia(raw) -> List[Any]:
    if not raw:
        return []
    parsed = _cargar_json(raw)
    return parsed if isinstance(parsed, list) else []


def decode_history_entries(raw) -> List[HistoryEntry]:
    entries = []
    for idx, item in enumerate(_lista_o_vacia(raw)):
        if not isinstance(item, dict):
            continue
        entry_id = item.get("id")
        entries.append(HistoryEntry(
            id=str(entry_id) if entry_id not in (None, "") else f"{timestamp_ms()}-{idx}",
            date=str(item.get("date") or ""),
            title=str(item.get("title") or ""),
            notes=str(item.get("notes") or ""),
        ))
    return entries


_CAMPOS_PAGO = {"amount", "method", "date", "note", "serviceAmount"}


def decode_payments(raw) -> List[PaymentRecord]:
    payments = []
    for item in _lista_o_vacia(raw):
        if not isinstance(item, dict):
            continue
        note = item.get("note")
        payments.append(PaymentRecord(
            amount=amount_or_zero(item.get("amount")),
            method=str(item.get("method") or ""),
            date=str(item.get("date") or ""),
            note=str(note) if note else None,
            service_amount=amount_or_zero(item.get("serviceAmount")),
            extra={k: v for k, v in item.items() if k not in _CAMPOS_PAGO},
        ))
    return payments
