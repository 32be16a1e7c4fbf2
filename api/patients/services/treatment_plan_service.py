# api/patients/services/treatment_plan_service.py

import json
import uuid
from typing import List, Optional, Tuple

from api.patients.constants import FACE_CODES, FACE_KEYS
from api.patients.decoders import decode_treatment_plan, normalize_plan_items
from api.patients.types import TreatmentPlan, TreatmentPlanItem, ValidationResult
from api.patients.utils import month_year

MENSAJE_CAMPOS_OBLIGATORIOS = "Pieza y prestacion son obligatorias."


class TreatmentPlanService:
    """Ítems del plan de tratamiento: pieza, caras y prestación"""

    @staticmethod
    def canonical_faces(faces) -> List[str]:
        """Conserva solo caras válidas, en el orden fijo de FACE_OPTIONS"""
        selected = set(faces or [])
        return [key for key in FACE_KEYS if key in selected]

    @staticmethod
    def toggle_face(faces: List[str], face: str) -> List[str]:
        """Selección de caras en el formulario (orden de click)"""
        if face in faces:
            return [f for f in faces if f != face]
        return list(faces) + [face]

    @staticmethod
    def add_or_update(
        items: List[TreatmentPlanItem],
        piece: str,
        faces: List[str],
        prestation: str,
        editing_id: Optional[str] = None,
    ) -> Tuple[List[TreatmentPlanItem], ValidationResult]:
        """
        Crea un ítem nuevo o reemplaza en su lugar el que se está editando.
        Al editar se conserva la fecha de creación original.
        """
        piece = (piece or "").strip()
        prestation = (prestation or "").strip()
        if not piece or not prestation:
            return items, ValidationResult.invalid(MENSAJE_CAMPOS_OBLIGATORIOS)

        if editing_id:
            original = next((item for item in items if item.id == editing_id), None)
            created_at = original.created_at if original and original.created_at else month_year()
        else:
            created_at = month_year()

        new_item = TreatmentPlanItem(
            id=editing_id or str(uuid.uuid4()),
            piece=piece,
            faces=TreatmentPlanService.canonical_faces(faces),
            prestation=prestation,
            created_at=created_at,
        )

        if not editing_id:
            return list(items) + [new_item], ValidationResult.valid()
        return [new_item if item.id == editing_id else item for item in items], ValidationResult.valid()

    @staticmethod
    def remove(
        items: List[TreatmentPlanItem],
        item_id: str,
        editing_id: Optional[str] = None,
    ) -> Tuple[List[TreatmentPlanItem], Optional[str]]:
        """Quita el ítem; si era el que se estaba editando, cancela la edición"""
        remaining = [item for item in items if item.id != item_id]
        return remaining, (None if editing_id == item_id else editing_id)

    @staticmethod
    def find(items: List[TreatmentPlanItem], item_id: str) -> Optional[TreatmentPlanItem]:
        return next((item for item in items if item.id == item_id), None)

    @staticmethod
    def serialize(items: List[TreatmentPlanItem]) -> str:
        # Plan vacío se guarda como "" (así lo representan los datos anteriores)
        if not items:
            return ""
        return json.dumps([item.to_dict() for item in items], separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def parse(raw) -> TreatmentPlan:
        return decode_treatment_plan(raw)

    @staticmethod
    def normalize(raw_items) -> List[TreatmentPlanItem]:
        return normalize_plan_items(raw_items)

    @staticmethod
    def format_faces(faces: List[str]) -> str:
        """['mesial', 'distal'] -> 'MD'"""
        codes = "".join(FACE_CODES[face] for face in faces or [] if face in FACE_CODES)
        return codes or "-"
