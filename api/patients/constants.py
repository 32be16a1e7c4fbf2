# api/patients/constants.py

"""
Constantes de la ficha del paciente: odontograma, plan de tratamiento,
paneles de la pantalla y roles clínicos.
"""


class FDIConstants:
    """Piezas dentales en notación FDI tal como se dibujan en el odontograma"""

    # Filas del odontograma: 2 permanentes y 2 temporales
    FILAS_DIENTES = [
        ["18", "17", "16", "15", "14", "13", "12", "11", "21", "22", "23", "24", "25", "26", "27", "28"],
        ["48", "47", "46", "45", "44", "43", "42", "41", "31", "32", "33", "34", "35", "36", "37", "38"],
        ["55", "54", "53", "52", "51", "61", "62", "63", "64", "65"],
        ["85", "84", "83", "82", "81", "71", "72", "73", "74", "75"],
    ]

    DIENTES = [codigo for fila in FILAS_DIENTES for codigo in fila]

    @classmethod
    def es_valido(cls, codigo_fdi):
        return codigo_fdi in cls.DIENTES


# Orden canónico de caras: (key, label, código)
FACE_OPTIONS = [
    ("mesial", "Mesial", "M"),
    ("distal", "Distal", "D"),
    ("oclusal", "Oclusal", "O"),
    ("vestibular", "Vestibular", "V"),
    ("lingual", "Lingual", "L"),
    ("palatino", "Palatino", "P"),
    ("incisal", "Incisal", "I"),
    ("gingival", "Gingival", "G"),
]

FACE_KEYS = [key for key, _, _ in FACE_OPTIONS]
FACE_CODES = {key: code for key, _, code in FACE_OPTIONS}


class Herramienta:
    """Herramientas del odontograma"""
    ROJO = "red"        # trabajo realizado
    AZUL = "blue"       # planificado
    EXTRACCION = "extract"

    COLORES = (ROJO, AZUL)
    TODAS = (ROJO, AZUL, EXTRACCION)
    DEFAULT = AZUL


class Panel:
    DATOS = "datos"
    HISTORIA = "historia"
    ODONTOGRAMA = "odontograma"
    PLAN = "plan"
    ESTUDIOS = "estudios"
    PAGOS = "pagos"
    TURNOS = "turnos"

    TODOS = (DATOS, HISTORIA, ODONTOGRAMA, PLAN, ESTUDIOS, PAGOS, TURNOS)


class Modal:
    """Solo un modal abierto a la vez"""
    NINGUNO = "none"
    HISTORIA = "history"
    EDITAR_PAGO = "edit_payment"
    CONFIRMAR_ELIMINAR_PAGO = "confirm_delete_payment"


class Estado:
    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"
    ERROR = "error"
    SUCCESS = "success"


# Roles habilitados para la ficha clínica
ROL_ODONTOLOGO = "ODONTOLOGO"
ROL_ADMIN = "ADMIN"
ROLES_CLINICOS = {ROL_ODONTOLOGO, ROL_ADMIN}

# Campos de datos personales que viajan en el PATCH de "guardar"
DETAIL_FIELDS = [
    "fullName",
    "email",
    "dni",
    "phone",
    "obraSocial",
    "obraSocialNumero",
    "historialClinico",
    "treatmentPlan",
    "studies",
]

HISTORY_PREVIEW_LENGTH = 120
