# api/patients/views.py
import logging
from contextlib import contextmanager, nullcontext

from django.http import HttpResponse
from django.template.loader import render_to_string
from rest_framework import renderers, viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.response import Response

from api.patients.exceptions import ScreenNotOpen
from api.patients.repositories.patient_repository import PatientRepository
from api.patients.serializers import (
    DetailsSerializer,
    HistoryDraftSerializer,
    HistoryFilterSerializer,
    HistoryOpenSerializer,
    PanelSerializer,
    PaymentEditSerializer,
    PaymentIndexSerializer,
    PaymentSerializer,
    PlanFaceSerializer,
    PlanFormSerializer,
    PlanItemSerializer,
    ToolSerializer,
    ToothToggleSerializer,
)
from api.patients.services.patient_screen_service import (
    PatientScreen,
    PatientScreenService,
    action_in_flight,
    screen_lock,
)
from api.patients.services.receipt_pdf_builder import ReceiptPDFBuilder
from api.utils.renderers import PDFRenderer
from authentication.permissions import IsClinicalStaff

logger = logging.getLogger(__name__)


class PatientScreenViewSet(viewsets.ViewSet):
    """
    Ficha clínica del paciente.

    GET /api/patients/{id}/ abre (o recarga) la ficha.
    El resto de las acciones trabajan sobre esa ficha en memoria; solo
    "save" y las acciones de pagos llaman a la API externa.
    Todas devuelven el estado completo de la ficha en data.screen.
    """
    permission_classes = [IsClinicalStaff]
    lookup_value_regex = r'[^/.]+'

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_repository(self, request):
        return PatientRepository(request.auth)

    def get_owner(self, request):
        return request.session.session_key or ''

    def load_screen(self, request, pk):
        """Solo lectura: no toma la ficha"""
        screen = PatientScreen.load(self.get_owner(request), pk)
        if screen is None:
            raise ScreenNotOpen()
        return PatientScreenService(screen, self.get_repository(request), owner=self.get_owner(request))

    @contextmanager
    def editing(self, request, pk, accion=None, new=False):
        """
        Carga, modifica y guarda la ficha con la ficha tomada.
        `accion` además rechaza la misma acción repetida mientras sigue en vuelo.
        """
        owner = self.get_owner(request)
        guard = action_in_flight(owner, pk, accion) if accion else nullcontext()
        with guard, screen_lock(owner, pk):
            screen = PatientScreen(patient_id=pk) if new else PatientScreen.load(owner, pk)
            if screen is None:
                raise ScreenNotOpen()
            service = PatientScreenService(
                screen,
                self.get_repository(request),
                owner=owner,
                held=[accion] if accion else [],
            )
            yield service
            screen.save(owner)

    def validated(self, serializer_class, request):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def respond(self, service, message=None):
        return Response({
            'screen': service.to_representation(),
            'message': message,
        }, status=status.HTTP_200_OK)

    def respond_payments(self, service):
        return self.respond(service, service.screen.payment_message)

    # ------------------------------------------------------------------
    # Ficha
    # ------------------------------------------------------------------

    def retrieve(self, request, pk=None):
        """Carga paciente y turnos; un error de la API queda en status/message"""
        with self.editing(request, pk, accion='load', new=True) as service:
            service.load()
        logger.info(f"Ficha del paciente {pk} abierta ({service.screen.status})")
        return self.respond(service, service.screen.message)

    @action(detail=True, methods=['get'])
    def state(self, request, pk=None):
        return self.respond(self.load_screen(request, pk))

    @action(detail=True, methods=['post'])
    def panel(self, request, pk=None):
        data = self.validated(PanelSerializer, request)
        with self.editing(request, pk) as service:
            service.set_panel(data['panel'])
        return self.respond(service)

    @action(detail=True, methods=['patch'])
    def details(self, request, pk=None):
        data = self.validated(DetailsSerializer, request)
        with self.editing(request, pk) as service:
            service.update_details(data)
        return self.respond(service)

    @action(detail=True, methods=['post'])
    def save(self, request, pk=None):
        """Un solo PATCH con datos, odontograma, plan e historia"""
        with self.editing(request, pk, accion='details') as service:
            service.save_details()
        return self.respond(service, service.screen.message)

    # ------------------------------------------------------------------
    # Odontograma
    # ------------------------------------------------------------------

    @action(detail=True, methods=['post'], url_path='odontogram/tool')
    def odontogram_tool(self, request, pk=None):
        data = self.validated(ToolSerializer, request)
        with self.editing(request, pk) as service:
            service.select_tool(data['tool'])
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='odontogram/toggle')
    def odontogram_toggle(self, request, pk=None):
        data = self.validated(ToothToggleSerializer, request)
        with self.editing(request, pk) as service:
            service.toggle_mark(data['tooth'], data.get('surface'))
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='odontogram/clear')
    def odontogram_clear(self, request, pk=None):
        with self.editing(request, pk) as service:
            service.clear_odontogram()
        return self.respond(service)

    # ------------------------------------------------------------------
    # Plan de tratamiento
    # ------------------------------------------------------------------

    @action(detail=True, methods=['patch'], url_path='plan/form')
    def plan_form(self, request, pk=None):
        data = self.validated(PlanFormSerializer, request)
        with self.editing(request, pk) as service:
            service.set_plan_form(
                piece=data.get('piece'),
                prestation=data.get('prestation'),
                faces=data.get('faces'),
            )
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='plan/face')
    def plan_face(self, request, pk=None):
        data = self.validated(PlanFaceSerializer, request)
        with self.editing(request, pk) as service:
            service.toggle_plan_face(data['face'])
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='plan/submit')
    def plan_submit(self, request, pk=None):
        """Agrega el ítem del formulario o guarda el que se está editando"""
        with self.editing(request, pk) as service:
            result = service.submit_plan_item()
        return self.respond(service, result.message)

    @action(detail=True, methods=['post'], url_path='plan/edit')
    def plan_edit(self, request, pk=None):
        data = self.validated(PlanItemSerializer, request)
        with self.editing(request, pk) as service:
            if not service.start_edit_plan_item(data['item_id']):
                raise NotFound('El ítem del plan no existe')
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='plan/cancel')
    def plan_cancel(self, request, pk=None):
        with self.editing(request, pk) as service:
            service.cancel_edit_plan_item()
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='plan/remove')
    def plan_remove(self, request, pk=None):
        data = self.validated(PlanItemSerializer, request)
        with self.editing(request, pk) as service:
            service.remove_plan_item(data['item_id'])
        return self.respond(service)

    # ------------------------------------------------------------------
    # Pagos
    # ------------------------------------------------------------------

    @action(detail=True, methods=['post'])
    def payments(self, request, pk=None):
        data = self.validated(PaymentSerializer, request)
        with self.editing(request, pk, accion='payments') as service:
            service.add_payment(data.get('amount'), data.get('serviceAmount'), data.get('method'), data.get('note'))
        return self.respond_payments(service)

    @action(detail=True, methods=['post'], url_path='payments/edit/start')
    def payment_edit_start(self, request, pk=None):
        data = self.validated(PaymentIndexSerializer, request)
        with self.editing(request, pk) as service:
            if not service.start_edit_payment(data['index']):
                raise NotFound('El pago no existe')
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='payments/edit')
    def payment_edit_save(self, request, pk=None):
        """Guarda el borrador abierto, con los cambios que vengan en el body"""
        data = self.validated(PaymentEditSerializer, request)
        with self.editing(request, pk, accion='payments') as service:
            if service.screen.payment_edit is None:
                raise NotFound('No hay un pago en edición')
            service.save_edit_payment(data)
        return self.respond_payments(service)

    @action(detail=True, methods=['post'], url_path='payments/edit/cancel')
    def payment_edit_cancel(self, request, pk=None):
        with self.editing(request, pk) as service:
            service.cancel_edit_payment()
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='payments/delete')
    def payment_delete(self, request, pk=None):
        """Solo abre la confirmación"""
        data = self.validated(PaymentIndexSerializer, request)
        with self.editing(request, pk) as service:
            if not service.request_delete_payment(data['index']):
                raise NotFound('El pago no existe')
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='payments/delete/confirm')
    def payment_delete_confirm(self, request, pk=None):
        with self.editing(request, pk, accion='payments') as service:
            if service.screen.confirm_index is None:
                raise NotFound('No hay un pago para eliminar')
            service.confirm_delete_payment()
        return self.respond_payments(service)

    @action(detail=True, methods=['post'], url_path='payments/delete/cancel')
    def payment_delete_cancel(self, request, pk=None):
        with self.editing(request, pk) as service:
            service.cancel_delete_payment()
        return self.respond(service)

    def invoice_data(self, request, pk, index):
        screen = PatientScreen.load(self.get_owner(request), pk)
        if screen is None:
            return None, HttpResponse(
                '{"detail": "La ficha del paciente no está abierta"}',
                content_type="application/json",
                status=409,
            )
        datos = PatientScreenService(screen, None).invoice(int(index))
        if datos is None:
            return None, HttpResponse(
                '{"detail": "El pago no existe"}',
                content_type="application/json",
                status=404,
            )
        return datos, None

    @action(
        detail=True,
        methods=['get'],
        url_path=r'payments/(?P<index>\d+)/invoice',
        renderer_classes=[renderers.StaticHTMLRenderer],
    )
    def invoice(self, request, pk=None, index=None):
        """Recibo imprimible en HTML"""
        datos, error = self.invoice_data(request, pk, index)
        if error is not None:
            return error
        html = render_to_string('patients/recibo.html', datos)
        return HttpResponse(html, content_type='text/html; charset=utf-8')

    @action(
        detail=True,
        methods=['get'],
        url_path=r'payments/(?P<index>\d+)/invoice/pdf',
        renderer_classes=[PDFRenderer],
    )
    def invoice_pdf(self, request, pk=None, index=None):
        """
        Mismo recibo en PDF.
        ?descarga=true fuerza la descarga; si no, abre en el navegador.
        """
        datos, error = self.invoice_data(request, pk, index)
        if error is not None:
            return error

        try:
            pdf_bytes = ReceiptPDFBuilder.generar(datos)
        except Exception as e:
            logger.error(f"Error generando el recibo {index} del paciente {pk}: {e}", exc_info=True)
            return HttpResponse(
                '{"detail": "Error al generar el PDF"}',
                content_type="application/json",
                status=500,
            )

        descarga = request.query_params.get("descarga", "false").lower() == "true"
        disposicion = "attachment" if descarga else "inline"
        response = HttpResponse(pdf_bytes, content_type="application/pdf")
        response["Content-Disposition"] = f'{disposicion}; filename="recibo_{pk}_{int(index) + 1}.pdf"'
        return response

    # ------------------------------------------------------------------
    # Historia clínica
    # ------------------------------------------------------------------

    @action(detail=True, methods=['post'], url_path='history/open')
    def history_open(self, request, pk=None):
        """Sin entry_id abre una entrada nueva con la fecha de hoy"""
        data = self.validated(HistoryOpenSerializer, request)
        with self.editing(request, pk) as service:
            if not service.open_history(data.get('entry_id')):
                raise NotFound('La entrada no existe')
        return self.respond(service)

    @action(detail=True, methods=['patch'], url_path='history/draft')
    def history_draft(self, request, pk=None):
        data = self.validated(HistoryDraftSerializer, request)
        with self.editing(request, pk) as service:
            if not service.update_history_draft(data):
                raise NotFound('No hay una entrada abierta')
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='history/save')
    def history_save(self, request, pk=None):
        with self.editing(request, pk) as service:
            if not service.save_history():
                raise NotFound('No hay una entrada abierta')
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='history/close')
    def history_close(self, request, pk=None):
        with self.editing(request, pk) as service:
            service.close_history()
        return self.respond(service)

    @action(detail=True, methods=['post'], url_path='history/filter')
    def history_filter(self, request, pk=None):
        data = self.validated(HistoryFilterSerializer, request)
        with self.editing(request, pk) as service:
            service.set_history_filter(data.get('date'))
        return self.respond(service)
