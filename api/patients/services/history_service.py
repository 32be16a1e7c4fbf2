# api/patients/services/history_service.py

import json
from typing import Any, Dict, List, Optional

from api.patients.constants import HISTORY_PREVIEW_LENGTH
from api.patients.decoders import decode_history_entries
from api.patients.types import HistoryEntry
from api.patients.utils import timestamp_ms, today_iso


class HistoryService:
    """
    Entradas fechadas de la historia clínica.

    Solo existen alta y edición; las entradas no se eliminan desde la ficha.
    La colección se mantiene ordenada por fecha descendente.
    """

    @staticmethod
    def open_entry(existing: Optional[HistoryEntry] = None) -> HistoryEntry:
        """Borrador para el modal: copia de la entrada o una nueva con fecha de hoy"""
        if existing is not None:
            return HistoryEntry(id=existing.id, date=existing.date, title=existing.title, notes=existing.notes)
        return HistoryEntry(id=str(timestamp_ms()), date=today_iso())

    @staticmethod
    def save_entry(entries: List[HistoryEntry], draft: HistoryEntry) -> List[HistoryEntry]:
        """Alta o reemplazo por id y reordenamiento por fecha descendente"""
        if any(entry.id == draft.id for entry in entries):
            merged = [draft if entry.id == draft.id else entry for entry in entries]
        else:
            merged = list(entries) + [draft]
        return sorted(merged, key=lambda entry: entry.date, reverse=True)

    @staticmethod
    def filter_by_date(entries: List[HistoryEntry], date: str = "") -> List[HistoryEntry]:
        if not date:
            return list(entries)
        return [entry for entry in entries if entry.date == date]

    @staticmethod
    def distinct_dates(entries: List[HistoryEntry]) -> List[str]:
        return sorted({entry.date for entry in entries}, reverse=True)

    @staticmethod
    def find(entries: List[HistoryEntry], entry_id: str) -> Optional[HistoryEntry]:
        return next((entry for entry in entries if entry.id == entry_id), None)

    @staticmethod
    def serialize(entries: List[HistoryEntry]) -> str:
        return json.dumps([entry.to_dict() for entry in entries], separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def parse(raw) -> List[HistoryEntry]:
        return decode_history_entries(raw)

    @staticmethod
    def preview(entry: HistoryEntry) -> Dict[str, Any]:
        """Fila del listado"""
        return {
            "id": entry.id,
            "date": entry.date,
            "title": entry.title or "Sin título",
            "notes": entry.notes[:HISTORY_PREVIEW_LENGTH] or "Sin notas",
        }
