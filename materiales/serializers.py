from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import (
    Alerta,
    ControlMaterial,
    MaterialAsignado,
    Material,
    MaterialSolicitado,
    MovimientoInventario,
    SolicitudMaterial,
    StockTecnico,
)

User = get_user_model()


class MaterialSerializer(serializers.ModelSerializer):
    class Meta:
        model = Material
        fields = [
            "id",
            "nombre",
            "descripcion",
            "unidad_medida",
            "categoria",
            "costo_unitario",
            "stock_minimo",
            "activo",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_costo_unitario(self, value):
        if value < 0:
            raise serializers.ValidationError("El costo unitario no puede ser negativo.")
        return value

    def validate_stock_minimo(self, value):
        if value < 0:
            raise serializers.ValidationError("El stock mínimo no puede ser negativo.")
        return value


class StockTecnicoSerializer(serializers.ModelSerializer):
    """
    Saldo de solo lectura; solo cambia a través del ledger.
    """

    material_detalle = MaterialSerializer(source="material", read_only=True)
    tecnico_username = serializers.CharField(source="tecnico.username", read_only=True)
    bajo_umbral = serializers.SerializerMethodField()

    class Meta:
        model = StockTecnico
        fields = [
            "id",
            "tecnico",
            "tecnico_username",
            "material",
            "material_detalle",
            "cantidad_actual",
            "cantidad_apartada",
            "cantidad_disponible",
            "bajo_umbral",
            "ultimo_movimiento",
            "version",
        ]
        read_only_fields = fields

    def get_bajo_umbral(self, obj):
        return obj.bajo_umbral


class MovimientoInventarioSerializer(serializers.ModelSerializer):
    material_nombre = serializers.CharField(source="material.nombre", read_only=True)

    class Meta:
        model = MovimientoInventario
        fields = [
            "id",
            "tecnico",
            "material",
            "material_nombre",
            "tipo",
            "cantidad",
            "motivo",
            "usuario_responsable",
            "origen",
            "referencia_origen",
            "control",
            "visible_para_analistas",
            "fecha",
        ]
        read_only_fields = fields


class MaterialAsignadoSerializer(serializers.ModelSerializer):
    material_nombre = serializers.CharField(source="material.nombre", read_only=True)

    class Meta:
        model = MaterialAsignado
        fields = [
            "id",
            "material",
            "material_nombre",
            "cantidad_asignada",
            "cantidad_utilizada",
            "cantidad_devuelta",
            "cantidad_perdida",
            "motivo_perdida",
            "costo_unitario",
            "valor_perdida",
            "estado",
        ]
        read_only_fields = fields


class ControlMaterialSerializer(serializers.ModelSerializer):
    lineas = MaterialAsignadoSerializer(many=True, read_only=True)

    class Meta:
        model = ControlMaterial
        fields = [
            "id",
            "tecnico",
            "orden_trabajo_id",
            "bodeguero_asigno",
            "analista_supervisa",
            "estado_general",
            "fecha_asignacion",
            "fecha_inicio_trabajo",
            "fecha_fin_trabajo",
            "fecha_devolucion",
            "fecha_resolucion_descuadre",
            "fecha_cierre",
            "tiene_descuadre",
            "valor_descuadre",
            "motivo_descuadre",
            "descuadre_resuelto",
            "observaciones_bodeguero",
            "observaciones_tecnico",
            "observaciones_analista",
            "lineas",
            "version",
        ]
        read_only_fields = fields


class AlertaSerializer(serializers.ModelSerializer):
    class Meta:
        model = Alerta
        fields = [
            "id",
            "tipo",
            "descripcion",
            "tecnico",
            "material",
            "control",
            "visible_para_analistas",
            "resuelta",
            "fecha_resolucion",
            "resuelta_por",
            "created_at",
        ]
        read_only_fields = fields


class MaterialSolicitadoSerializer(serializers.ModelSerializer):
    material_nombre = serializers.CharField(source="material.nombre", read_only=True)
    unidad_medida = serializers.CharField(source="material.unidad_medida", read_only=True)

    class Meta:
        model = MaterialSolicitado
        fields = [
            "id",
            "material",
            "material_nombre",
            "unidad_medida",
            "cantidad_solicitada",
            "cantidad_aprobada",
            "motivo",
            "tipo_trabajo_estimado",
        ]
        read_only_fields = fields


class SolicitudMaterialSerializer(serializers.ModelSerializer):
    lineas = MaterialSolicitadoSerializer(many=True, read_only=True)
    tecnico_username = serializers.CharField(source="tecnico.username", read_only=True)

    class Meta:
        model = SolicitudMaterial
        fields = [
            "id",
            "tecnico",
            "tecnico_username",
            "fecha_solicitud",
            "estado",
            "observaciones",
            "aprobado_por",
            "fecha_aprobacion",
            "fecha_entrega",
            "fecha_rechazo",
            "motivo_rechazo",
            "control",
            "lineas",
        ]
        read_only_fields = fields


# --- Payloads de comandos ---
#
# Solo validan forma (tipos, campos presentes). Las reglas de negocio
# (stock, cuadre, estados) viven en los servicios.


class LineaAsignacionSerializer(serializers.Serializer):
    material_id = serializers.IntegerField()
    cantidad = serializers.DecimalField(max_digits=14, decimal_places=3)


class AsignacionRequestSerializer(serializers.Serializer):
    """
    Payload de POST /api/controles/
    {
      "tecnico_id": 7,
      "orden_trabajo_id": "OT-1234",
      "observaciones": "...",
      "lineas": [{"material_id": 1, "cantidad": "10"}, ...]
    }
    """

    tecnico_id = serializers.IntegerField()
    orden_trabajo_id = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )
    observaciones = serializers.CharField(required=False, allow_blank=True)
    lineas = LineaAsignacionSerializer(many=True, allow_empty=True)


class ReporteDevolucionSerializer(serializers.Serializer):
    material_id = serializers.IntegerField()
    cantidad_utilizada = serializers.DecimalField(max_digits=14, decimal_places=3, default=0)
    cantidad_devuelta = serializers.DecimalField(max_digits=14, decimal_places=3, default=0)
    cantidad_perdida = serializers.DecimalField(max_digits=14, decimal_places=3, default=0)
    motivo_perdida = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )


class DevolucionRequestSerializer(serializers.Serializer):
    reportes = ReporteDevolucionSerializer(many=True, allow_empty=True)
    observaciones = serializers.CharField(required=False, allow_blank=True, default="")


class ObservacionesSerializer(serializers.Serializer):
    observaciones = serializers.CharField(required=False, allow_blank=True, default="")


class EntradaRequestSerializer(serializers.Serializer):
    tecnico_id = serializers.IntegerField()
    material_id = serializers.IntegerField()
    cantidad = serializers.DecimalField(max_digits=14, decimal_places=3)
    motivo = serializers.CharField(required=False, allow_blank=True, default="")
    referencia_origen = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )


class AjusteRequestSerializer(serializers.Serializer):
    tecnico_id = serializers.IntegerField()
    material_id = serializers.IntegerField()
    cantidad = serializers.DecimalField(max_digits=14, decimal_places=3)
    motivo = serializers.CharField()
    control_id = serializers.IntegerField(required=False, allow_null=True)
    visible_para_analistas = serializers.BooleanField(required=False, default=True)


class LineaSolicitudSerializer(serializers.Serializer):
    material_id = serializers.IntegerField()
    cantidad_solicitada = serializers.DecimalField(max_digits=14, decimal_places=3)
    motivo = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    tipo_trabajo_estimado = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )


class SolicitudRequestSerializer(serializers.Serializer):
    """
    Payload de POST /api/solicitudes/
    {"lineas": [{"material_id": 1, "cantidad_solicitada": "5", "motivo": "..."}], "observaciones": "..."}
    """

    lineas = LineaSolicitudSerializer(many=True, allow_empty=True)
    observaciones = serializers.CharField(required=False, allow_blank=True, default="")


class AjusteAprobacionSerializer(serializers.Serializer):
    material_id = serializers.IntegerField()
    cantidad_aprobada = serializers.DecimalField(max_digits=14, decimal_places=3)


class AprobacionRequestSerializer(serializers.Serializer):
    ajustes = AjusteAprobacionSerializer(many=True, required=False)


class EntregaRequestSerializer(serializers.Serializer):
    orden_trabajo_id = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )
    observaciones = serializers.CharField(required=False, allow_blank=True, default="")


class RechazoRequestSerializer(serializers.Serializer):
    motivo = serializers.CharField(required=False, allow_blank=True, default="")
