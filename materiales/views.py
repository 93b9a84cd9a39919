from django.utils.dateparse import parse_datetime
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, permissions, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .models import Alerta, ControlMaterial, Material, MovimientoInventario, SolicitudMaterial, StockTecnico
from .serializers import (
    AjusteRequestSerializer,
    AlertaSerializer,
    AprobacionRequestSerializer,
    AsignacionRequestSerializer,
    ControlMaterialSerializer,
    DevolucionRequestSerializer,
    EntradaRequestSerializer,
    EntregaRequestSerializer,
    MaterialSerializer,
    MovimientoInventarioSerializer,
    ObservacionesSerializer,
    RechazoRequestSerializer,
    SolicitudMaterialSerializer,
    SolicitudRequestSerializer,
    StockTecnicoSerializer,
)
from .services import alertas, conciliacion, controles, distribucion, movimientos, solicitudes, stock
from .utils import normalizar_id


class IsAuthenticatedOrReadOnly(permissions.IsAuthenticatedOrReadOnly):
    """
    Catálogo: lectura abierta, escritura autenticada.
    Los permisos por rol (bodeguero / técnico / analista) los aplica el sistema que nos integra.
    """
    pass


def _usuario(request):
    return request.user if request.user.is_authenticated else None


def _tecnico_param(request):
    valor = request.query_params.get("tecnico")
    return normalizar_id(valor, "Técnico") if valor else None


class MaterialViewSet(viewsets.ModelViewSet):
    queryset = Material.objects.all()
    serializer_class = MaterialSerializer
    permission_classes = [IsAuthenticatedOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["activo", "categoria"]
    search_fields = ["nombre", "descripcion", "categoria"]
    ordering_fields = ["nombre", "costo_unitario"]


class StockTecnicoViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockTecnico.objects.all().select_related("material", "tecnico")
    serializer_class = StockTecnicoSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["tecnico", "material"]
    ordering_fields = ["cantidad_disponible", "ultimo_movimiento"]
    ordering = ["tecnico_id", "material__nombre"]

    @action(detail=False, methods=["get"], url_path="bajo-umbral")
    def bajo_umbral(self, request):
        """
        GET /api/stock-tecnicos/bajo-umbral/?tecnico=<id>
        """
        tecnico_id = _tecnico_param(request)
        qs = stock.saldos_bajo_umbral(tecnico_id=tecnico_id)
        return Response(self.get_serializer(qs, many=True).data)


class MovimientoInventarioViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Ledger de solo lectura. Las escrituras son comandos (entrada, ajuste)
    o efectos de operar un control.
    """

    queryset = MovimientoInventario.objects.all().select_related("material")
    serializer_class = MovimientoInventarioSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["tecnico", "material", "tipo", "origen", "control", "visible_para_analistas"]

    def get_queryset(self):
        return super().get_queryset().order_by("fecha", "id")

    @action(detail=False, methods=["post"], url_path="entrada")
    def entrada(self, request):
        serializer = EntradaRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        movimiento = movimientos.registrar_entrada(
            tecnico_id=data["tecnico_id"],
            material_id=data["material_id"],
            cantidad=data["cantidad"],
            usuario=_usuario(request),
            motivo=data.get("motivo", ""),
            referencia_origen=data.get("referencia_origen", ""),
        )
        return Response(
            MovimientoInventarioSerializer(movimiento).data,
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=["post"], url_path="ajuste")
    def ajuste(self, request):
        serializer = AjusteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        movimiento = movimientos.registrar_ajuste(
            tecnico_id=data["tecnico_id"],
            material_id=data["material_id"],
            cantidad=data["cantidad"],
            motivo=data["motivo"],
            usuario=_usuario(request),
            control_id=data.get("control_id"),
            visible_para_analistas=data.get("visible_para_analistas", True),
        )
        return Response(
            MovimientoInventarioSerializer(movimiento).data,
            status=status.HTTP_201_CREATED,
        )


class ControlMaterialViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Controles de materiales. POST /api/controles/ asigna; el resto de los
    cambios son acciones sobre un control.
    """

    queryset = (
        ControlMaterial.objects.all()
        .select_related("tecnico", "bodeguero_asigno", "analista_supervisa")
        .prefetch_related("lineas__material")
    )
    serializer_class = ControlMaterialSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["tecnico", "estado_general", "tiene_descuadre", "descuadre_resuelto"]
    search_fields = ["orden_trabajo_id"]
    ordering_fields = ["fecha_asignacion", "valor_descuadre"]

    def _responder(self, control, status_code=status.HTTP_200_OK):
        control = self.get_queryset().get(pk=control.pk)
        return Response(ControlMaterialSerializer(control).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = AsignacionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        control = distribucion.asignar_materiales(
            tecnico_id=data["tecnico_id"],
            bodeguero=request.user,
            lineas=data["lineas"],
            orden_trabajo_id=data.get("orden_trabajo_id"),
            observaciones=data.get("observaciones", ""),
        )
        return self._responder(control, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="iniciar-trabajo")
    def iniciar_trabajo(self, request, pk=None):
        control = distribucion.iniciar_trabajo(self.get_object().pk)
        return self._responder(control)

    @action(detail=True, methods=["post"], url_path="completar-trabajo")
    def completar_trabajo(self, request, pk=None):
        serializer = ObservacionesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        control = distribucion.completar_trabajo(
            self.get_object().pk,
            observaciones=serializer.validated_data["observaciones"],
        )
        return self._responder(control)

    @action(detail=True, methods=["post"], url_path="devolucion")
    def devolucion(self, request, pk=None):
        """
        POST /api/controles/<id>/devolucion/
        {"reportes": [{"material_id", "cantidad_utilizada", "cantidad_devuelta",
                       "cantidad_perdida", "motivo_perdida"}], "observaciones": "..."}
        """
        serializer = DevolucionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        control = conciliacion.registrar_devolucion(
            control_id=self.get_object().pk,
            reportes=data["reportes"],
            observaciones=data["observaciones"],
        )
        return self._responder(control)

    @action(detail=True, methods=["post"], url_path="resolver-descuadre")
    def resolver_descuadre(self, request, pk=None):
        serializer = ObservacionesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        control = conciliacion.resolver_descuadre(
            self.get_object().pk,
            analista=request.user,
            observaciones=serializer.validated_data["observaciones"],
        )
        return self._responder(control)

    @action(detail=True, methods=["post"], url_path="cerrar")
    def cerrar(self, request, pk=None):
        control = conciliacion.cerrar_control(self.get_object().pk, analista=request.user)
        return self._responder(control)

    @action(detail=False, methods=["get"], url_path="pendientes")
    def pendientes(self, request):
        qs = controles.controles_pendientes(tecnico_id=_tecnico_param(request))
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=False, methods=["get"], url_path="mis-asignaciones")
    def mis_asignaciones(self, request):
        qs = controles.controles_por_tecnico(request.user.pk)
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=False, methods=["get"], url_path="descuadres")
    def descuadres(self, request):
        resueltos = request.query_params.get("resueltos", "false").lower() in ("1", "true", "si")
        qs = controles.controles_con_descuadre(resueltos=resueltos)
        return Response(self.get_serializer(qs, many=True).data)


class AlertaViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Alerta.objects.all().select_related("tecnico", "material", "control")
    serializer_class = AlertaSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["tipo", "resuelta", "tecnico", "control"]

    @action(detail=False, methods=["get"], url_path="pendientes")
    def pendientes(self, request):
        """
        GET /api/alertas/pendientes/?desde=<iso8601>&tipo=<tipo>
        """
        desde = request.query_params.get("desde")
        fecha_desde = None
        if desde:
            fecha_desde = parse_datetime(desde)
            if fecha_desde is None:
                raise serializers.ValidationError({"desde": "Fecha inválida, use ISO 8601."})
        qs = alertas.alertas_pendientes(desde=fecha_desde, tipo=request.query_params.get("tipo"))
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=True, methods=["post"], url_path="resolver")
    def resolver(self, request, pk=None):
        alerta = alertas.resolver_alerta(self.get_object().pk, usuario=request.user)
        return Response(AlertaSerializer(alerta).data)


class SolicitudMaterialViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Pedidos de materiales. El técnico autenticado crea la solicitud con
    POST /api/solicitudes/; bodega la aprueba, rechaza o entrega.
    """

    queryset = (
        SolicitudMaterial.objects.all()
        .select_related("tecnico", "aprobado_por")
        .prefetch_related("lineas__material")
    )
    serializer_class = SolicitudMaterialSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["tecnico", "estado"]
    ordering_fields = ["fecha_solicitud"]

    def _responder(self, solicitud, status_code=status.HTTP_200_OK):
        solicitud = self.get_queryset().get(pk=solicitud.pk)
        return Response(SolicitudMaterialSerializer(solicitud).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = SolicitudRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        solicitud = solicitudes.crear_solicitud(
            tecnico_id=request.user.pk,
            lineas=data["lineas"],
            observaciones=data["observaciones"],
        )
        return self._responder(solicitud, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="aprobar")
    def aprobar(self, request, pk=None):
        """
        POST /api/solicitudes/<id>/aprobar/
        {"ajustes": [{"material_id": 1, "cantidad_aprobada": "3"}]}  (opcional)
        """
        serializer = AprobacionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        solicitud = solicitudes.aprobar_solicitud(
            self.get_object().pk,
            aprobado_por=request.user,
            ajustes=serializer.validated_data.get("ajustes"),
        )
        return self._responder(solicitud)

    @action(detail=True, methods=["post"], url_path="rechazar")
    def rechazar(self, request, pk=None):
        serializer = RechazoRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        solicitud = solicitudes.rechazar_solicitud(
            self.get_object().pk,
            usuario=request.user,
            motivo=serializer.validated_data["motivo"],
        )
        return self._responder(solicitud)

    @action(detail=True, methods=["post"], url_path="entregar")
    def entregar(self, request, pk=None):
        serializer = EntregaRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        solicitud = solicitudes.entregar_solicitud(
            self.get_object().pk,
            bodeguero=request.user,
            orden_trabajo_id=data.get("orden_trabajo_id"),
            observaciones=data["observaciones"],
        )
        return self._responder(solicitud)

    @action(detail=False, methods=["get"], url_path="pendientes")
    def pendientes(self, request):
        qs = solicitudes.solicitudes_pendientes()
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=False, methods=["get"], url_path="mis-solicitudes")
    def mis_solicitudes(self, request):
        """
        GET /api/solicitudes/mis-solicitudes/?limite=20
        """
        limite = request.query_params.get("limite")
        try:
            limite = int(limite) if limite else solicitudes.LIMITE_SOLICITUDES_TECNICO
        except ValueError:
            raise serializers.ValidationError({"limite": "Debe ser un número entero."})
        if limite <= 0:
            raise serializers.ValidationError({"limite": "Debe ser mayor que 0."})
        qs = solicitudes.solicitudes_por_tecnico(request.user.pk, limite=limite)
        return Response(self.get_serializer(qs, many=True).data)
