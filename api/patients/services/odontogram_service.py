# api/patients/services/odontogram_service.py

import json
from typing import Any, Dict, List, Optional

from api.patients.constants import FDIConstants, Herramienta
from api.patients.decoders import decode_odontogram
from api.patients.types import ToothMark


class OdontogramService:
    """
    Marcas del odontograma por pieza.

    Las operaciones no modifican el mapa recibido: devuelven uno nuevo.
    Una pieza solo figura en el mapa si tiene al menos una cara pintada o
    está marcada para extracción.
    """

    @staticmethod
    def toggle_mark(
        odontograma: Dict[str, ToothMark],
        tooth: str,
        surface: Optional[str] = None,
        tool: str = Herramienta.DEFAULT,
    ) -> Dict[str, ToothMark]:
        """
        Click sobre una cara (surface) o sobre el cuerpo de la pieza (sin surface).

        - Herramienta extracción o click en el cuerpo: invierte la extracción;
          al activarla se borran las caras.
        - Cara con rojo/azul: quita la extracción; si la cara ya tiene el color
          de la herramienta se despinta, si no se pinta con ese color.
        """
        current = odontograma.get(tooth) or ToothMark()
        mark = ToothMark(surfaces=dict(current.surfaces), extraction=current.extraction)

        if tool == Herramienta.EXTRACCION or surface is None:
            mark.extraction = not current.extraction
            if mark.extraction:
                mark.surfaces = {}
        else:
            mark.extraction = False
            if mark.surfaces.get(surface) == tool:
                del mark.surfaces[surface]
            else:
                mark.surfaces[surface] = tool

        updated = dict(odontograma)
        if mark.is_empty():
            updated.pop(tooth, None)
        else:
            updated[tooth] = mark
        return updated

    @staticmethod
    def clear() -> Dict[str, ToothMark]:
        return {}

    @staticmethod
    def serialize(odontograma: Dict[str, ToothMark]) -> str:
        """Formato guardado: {"11": {"surfaces": {"mesial": "red"}, "extraction": true}}"""
        data = {
            tooth: mark.to_dict()
            for tooth, mark in odontograma.items()
            if not mark.is_empty()
        }
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def parse(raw) -> Dict[str, ToothMark]:
        return decode_odontogram(raw)

    @staticmethod
    def grid(odontograma: Dict[str, ToothMark]) -> List[List[Dict[str, Any]]]:
        """Filas FDI listas para dibujar, con la marca de cada pieza"""
        rows = []
        for fila in FDIConstants.FILAS_DIENTES:
            row = []
            for tooth in fila:
                mark = odontograma.get(tooth)
                row.append({
                    "tooth": tooth,
                    "surfaces": dict(mark.surfaces) if mark else {},
                    "extraction": bool(mark and mark.extraction),
                })
            rows.append(row)
        return rows
