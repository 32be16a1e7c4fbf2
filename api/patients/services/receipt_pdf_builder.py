# api/patients/services/receipt_pdf_builder.py
"""
Recibo de un pago en PDF.

Recibe los mismos datos que la plantilla patients/recibo.html
(ver PaymentLedgerService.format_invoice):

    pdf_bytes = ReceiptPDFBuilder.generar(datos)
"""
import io
from typing import Any, Dict

from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

COLOR_TEXTO = colors.HexColor('#0B1D3A')
COLOR_ETIQUETA = colors.HexColor('#5C647A')
COLOR_BORDE = colors.HexColor('#DFE3ED')
COLOR_DESTACADO = colors.HexColor('#1F6BFF')


def _estilos() -> dict:
    base = getSampleStyleSheet()

    def ps(name, **kwargs) -> ParagraphStyle:
        return ParagraphStyle(name, parent=base['Normal'], **kwargs)

    return {
        'titulo': ps('ReciboTitulo', fontSize=14, fontName='Helvetica-Bold', textColor=COLOR_TEXTO, spaceAfter=6),
        'etiqueta': ps('ReciboEtiqueta', fontSize=8, fontName='Helvetica', textColor=COLOR_ETIQUETA),
        'valor': ps('ReciboValor', fontSize=10, fontName='Helvetica-Bold', textColor=COLOR_TEXTO),
        'destacado': ps('ReciboDestacado', fontSize=11, fontName='Helvetica-Bold', textColor=COLOR_DESTACADO),
    }


class ReceiptPDFBuilder:

    @classmethod
    def generar(cls, datos: Dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A5,
            leftMargin=15 * mm,
            rightMargin=15 * mm,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=datos.get('title') or 'Factura / Recibo',
        )
        doc.build(cls._construir_story(datos))
        buffer.seek(0)
        return buffer.read()

    @classmethod
    def _construir_story(cls, datos: Dict[str, Any]) -> list:
        estilos = _estilos()

        filas = [
            ('Paciente', datos.get('patient_name'), 'valor'),
            ('Fecha pago', datos.get('date'), 'valor'),
            ('Metodo', datos.get('method'), 'valor'),
            ('Importe servicio', datos.get('service_amount'), 'valor'),
            ('Importe', datos.get('amount'), 'destacado'),
        ]
        if datos.get('note'):
            filas.append(('Nota', datos['note'], 'valor'))

        story = [Paragraph(cls._escapar(datos.get('title')), estilos['titulo'])]
        story.append(cls._tabla(filas, estilos))
        story.append(Spacer(1, 4 * mm))
        story.append(HRFlowable(width='100%', thickness=0.5, color=COLOR_BORDE))
        story.append(Spacer(1, 2 * mm))
        story.append(cls._tabla([('Saldo del paciente', datos.get('balance'), 'valor')], estilos))
        return story

    @staticmethod
    def _tabla(filas, estilos) -> Table:
        data = [
            [
                Paragraph(etiqueta.upper(), estilos['etiqueta']),
                Paragraph(ReceiptPDFBuilder._escapar(valor), estilos[estilo]),
            ]
            for etiqueta, valor, estilo in filas
        ]
        tabla = Table(data, colWidths=[40 * mm, 78 * mm])
        tabla.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]))
        return tabla

    @staticmethod
    def _escapar(valor) -> str:
        # Paragraph interpreta marcado XML
        texto = '' if valor is None else str(valor)
        return texto.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
