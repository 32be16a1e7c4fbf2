# api/patients/serializers.py

from rest_framework import serializers

from api.patients.constants import DETAIL_FIELDS, FACE_KEYS, FDIConstants, Herramienta, Panel


class PanelSerializer(serializers.Serializer):
    panel = serializers.ChoiceField(
        choices=Panel.TODOS,
        error_messages={'invalid_choice': 'Panel desconocido: {input}'}
    )


class DetailsSerializer(serializers.Serializer):
    """Campos del formulario de datos; todos opcionales, texto tal cual se escribe"""

    fullName = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    email = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    dni = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    phone = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    obraSocial = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    obraSocialNumero = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    historialClinico = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    treatmentPlan = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    studies = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    balance = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError(
                f"Debe enviar al menos un campo: {', '.join(DETAIL_FIELDS + ['balance'])}"
            )
        return attrs


# ============================================================================
# ODONTOGRAMA
# ============================================================================

class ToolSerializer(serializers.Serializer):
    tool = serializers.ChoiceField(choices=Herramienta.TODAS)


class ToothToggleSerializer(serializers.Serializer):
    """Click en una cara; sin surface es click en el cuerpo de la pieza"""

    tooth = serializers.CharField()
    surface = serializers.ChoiceField(choices=FACE_KEYS, required=False, allow_null=True)

    def validate_tooth(self, value):
        if not FDIConstants.es_valido(value):
            raise serializers.ValidationError(f"Código FDI inválido: {value}")
        return value


# ============================================================================
# PLAN DE TRATAMIENTO
# ============================================================================

class PlanFormSerializer(serializers.Serializer):
    piece = serializers.CharField(required=False, allow_blank=True)
    prestation = serializers.CharField(required=False, allow_blank=True)
    faces = serializers.ListField(
        child=serializers.ChoiceField(choices=FACE_KEYS),
        required=False,
    )


class PlanFaceSerializer(serializers.Serializer):
    face = serializers.ChoiceField(choices=FACE_KEYS)


class PlanItemSerializer(serializers.Serializer):
    item_id = serializers.CharField()


# ============================================================================
# PAGOS
# ============================================================================

class PaymentSerializer(serializers.Serializer):
    """
    Importes como texto de formulario: la validación de negocio
    (método y pago obligatorios) la hace el libro de pagos.
    """

    amount = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    serviceAmount = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")
    method = serializers.CharField(required=False, allow_blank=True, default="")
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class PaymentEditSerializer(serializers.Serializer):
    amount = serializers.CharField(required=False, allow_blank=True)
    serviceAmount = serializers.CharField(required=False, allow_blank=True)
    method = serializers.CharField(required=False, allow_blank=True)
    note = serializers.CharField(required=False, allow_blank=True)
    date = serializers.CharField(required=False, allow_blank=True)


class PaymentIndexSerializer(serializers.Serializer):
    index = serializers.IntegerField(min_value=0)


# ============================================================================
# HISTORIA CLÍNICA
# ============================================================================

class HistoryOpenSerializer(serializers.Serializer):
    entry_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class HistoryDraftSerializer(serializers.Serializer):
    date = serializers.DateField(required=False, format='%Y-%m-%d', input_formats=['%Y-%m-%d'])
    title = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    notes = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)

    def validate_date(self, value):
        return value.isoformat()


class HistoryFilterSerializer(serializers.Serializer):
    date = serializers.CharField(required=False, allow_blank=True, default="")
