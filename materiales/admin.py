from django.contrib import admin, messages

from .exceptions import ControlMaterialesError
from .models import (
    Alerta,
    ControlMaterial,
    EstadoControl,
    MaterialAsignado,
    Material,
    MaterialSolicitado,
    MovimientoInventario,
    SolicitudMaterial,
    StockCentral,
    StockTecnico,
)
from .services.conciliacion import cerrar_control

admin.site.site_header = "Administración de Control de Materiales"
admin.site.site_title = "Control de Materiales"


@admin.register(Material)
class MaterialAdmin(admin.ModelAdmin):
    list_display = ("nombre", "unidad_medida", "categoria", "costo_unitario", "stock_minimo", "activo")
    list_filter = ("activo", "categoria")
    search_fields = ("nombre", "descripcion")
    ordering = ("nombre",)


@admin.register(StockCentral)
class StockCentralAdmin(admin.ModelAdmin):
    list_display = ("material", "cantidad_disponible", "version", "updated_at")
    search_fields = ("material__nombre",)
    readonly_fields = ("cantidad_disponible", "version", "created_at", "updated_at")


@admin.register(StockTecnico)
class StockTecnicoAdmin(admin.ModelAdmin):
    """
    Proyección del ledger: se consulta, no se edita.
    """

    list_display = (
        "tecnico",
        "material",
        "cantidad_actual",
        "cantidad_apartada",
        "cantidad_disponible",
        "ultimo_movimiento",
    )
    list_filter = ("material",)
    search_fields = ("tecnico__username", "material__nombre")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(MovimientoInventario)
class MovimientoInventarioAdmin(admin.ModelAdmin):
    list_display = (
        "fecha",
        "tipo",
        "tecnico",
        "material",
        "cantidad",
        "origen",
        "referencia_origen",
        "control",
        "usuario_responsable",
    )
    list_filter = ("tipo", "origen", "visible_para_analistas")
    search_fields = ("tecnico__username", "material__nombre", "referencia_origen", "motivo")
    date_hierarchy = "fecha"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class MaterialAsignadoInline(admin.TabularInline):
    model = MaterialAsignado
    extra = 0
    can_delete = False
    fields = (
        "material",
        "cantidad_asignada",
        "cantidad_utilizada",
        "cantidad_devuelta",
        "cantidad_perdida",
        "motivo_perdida",
        "valor_perdida",
        "estado",
    )
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.action(description="Cerrar controles seleccionados")
def cerrar_controles(modeladmin, request, queryset):
    """
    Acción admin: cierra los controles que cumplen las condiciones de cierre.
    """
    cerrados = 0
    rechazados = 0

    for control in queryset:
        try:
            cerrar_control(control.pk, analista=request.user)
        except ControlMaterialesError as exc:
            rechazados += 1
            messages.warning(request, f"Control #{control.pk}: {exc.mensaje}")
            continue
        cerrados += 1

    if cerrados:
        messages.success(request, f"{cerrados} controles cerrados correctamente.")
    if rechazados:
        messages.warning(request, f"{rechazados} controles no se pudieron cerrar.")


@admin.register(ControlMaterial)
class ControlMaterialAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "tecnico",
        "orden_trabajo_id",
        "estado_general",
        "fecha_asignacion",
        "tiene_descuadre",
        "valor_descuadre",
        "descuadre_resuelto",
    )
    list_filter = ("estado_general", "tiene_descuadre", "descuadre_resuelto")
    search_fields = ("orden_trabajo_id", "tecnico__username")
    inlines = [MaterialAsignadoInline]
    actions = [cerrar_controles]
    readonly_fields = (
        "tecnico",
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
        "version",
    )

    def has_add_permission(self, request):
        # Los controles nacen de asignar_materiales, no del admin.
        return False

    def has_change_permission(self, request, obj=None):
        if obj is not None and obj.estado_general == EstadoControl.CERRADO:
            return False
        return super().has_change_permission(request, obj)


@admin.register(Alerta)
class AlertaAdmin(admin.ModelAdmin):
    list_display = ("created_at", "tipo", "tecnico", "material", "control", "resuelta")
    list_filter = ("tipo", "resuelta")
    search_fields = ("descripcion", "tecnico__username")
    readonly_fields = ("created_at", "updated_at", "fecha_resolucion", "resuelta_por")


class MaterialSolicitadoInline(admin.TabularInline):
    model = MaterialSolicitado
    extra = 0
    can_delete = False
    fields = ("material", "cantidad_solicitada", "cantidad_aprobada", "motivo", "tipo_trabajo_estimado")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SolicitudMaterial)
class SolicitudMaterialAdmin(admin.ModelAdmin):
    """
    Solo consulta: aprobar, rechazar y entregar pasan por la API.
    """

    list_display = ("id", "tecnico", "fecha_solicitud", "estado", "aprobado_por", "control")
    list_filter = ("estado",)
    search_fields = ("tecnico__username", "observaciones")
    date_hierarchy = "fecha_solicitud"
    inlines = [MaterialSolicitadoInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
