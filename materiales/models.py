from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from .conf import obtener_config
from .exceptions import LedgerInmutableError, TransicionEstadoError

CERO = Decimal("0")


class TimeStampedModel(models.Model):
    """
    Modelo base abstracto con timestamps estándar.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Material(TimeStampedModel):
    """
    Catálogo de materiales. Para el control de materiales es de solo lectura:
    el costo_unitario se usa únicamente para valorizar descuadres.
    """
    nombre = models.CharField(max_length=150, unique=True)
    descripcion = models.TextField(blank=True)
    unidad_medida = models.CharField(
        max_length=30,
        help_text="Unidad en la que se entrega y devuelve (ej: unidad, metro, rollo).",
    )
    categoria = models.CharField(max_length=100, blank=True)
    costo_unitario = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        default=0,
        help_text="Costo por unidad, usado para calcular el valor de las pérdidas.",
    )
    stock_minimo = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=0,
        help_text=(
            "Disponible mínimo por técnico antes de alertar. "
            "Si es 0 se usa el umbral global MATERIALES['UMBRAL_STOCK_BAJO']."
        ),
    )
    activo = models.BooleanField(default=True)

    class Meta:
        ordering = ["nombre"]

    def __str__(self):
        return self.nombre

    @property
    def umbral_stock_bajo(self) -> Decimal:
        if self.stock_minimo and self.stock_minimo > 0:
            return self.stock_minimo
        return Decimal(str(obtener_config("UMBRAL_STOCK_BAJO")))


class StockCentral(TimeStampedModel):
    """
    Pool compartido de bodega por material. Solo se descuenta al asignar
    cuando MATERIALES['DESCONTAR_STOCK_CENTRAL'] está activo.
    """
    material = models.OneToOneField(
        Material,
        on_delete=models.PROTECT,
        related_name="stock_central",
    )
    cantidad_disponible = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=0,
    )
    version = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "Stock central"
        verbose_name_plural = "Stock central"

    def __str__(self):
        return f"{self.material} (bodega): {self.cantidad_disponible}"


class StockTecnico(TimeStampedModel):
    """
    Saldo de un material en poder de un técnico.

    Es una proyección del ledger (MovimientoInventario): solo cambia al
    aplicar un movimiento, y siempre se puede reconstruir plegando el ledger.
    cantidad_disponible = cantidad_actual - cantidad_apartada.
    """
    tecnico = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="stock_materiales",
    )
    material = models.ForeignKey(
        Material,
        on_delete=models.PROTECT,
        related_name="stocks_tecnicos",
    )
    cantidad_actual = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=0,
        help_text="Cantidad que el técnico tiene en su poder (libre + apartada).",
    )
    cantidad_apartada = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=0,
        help_text="Cantidad reservada para controles asignados aún no iniciados.",
    )
    cantidad_disponible = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=0,
    )
    ultimo_movimiento = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "Stock de técnico"
        verbose_name_plural = "Stocks de técnicos"
        unique_together = ("tecnico", "material")

    def __str__(self):
        return f"{self.material} @ {self.tecnico}: {self.cantidad_disponible} disp."

    @property
    def bajo_umbral(self) -> bool:
        return (self.cantidad_disponible or CERO) < self.material.umbral_stock_bajo


class MovimientoQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise LedgerInmutableError("Los movimientos de inventario no se pueden modificar.")

    def delete(self):
        raise LedgerInmutableError("Los movimientos de inventario no se pueden eliminar.")


class MovimientoInventario(models.Model):
    """
    Entrada del ledger de materiales por técnico. Solo se agrega, nunca se
    edita ni se elimina: las correcciones son movimientos de ajuste nuevos.

    Efecto de cada tipo sobre (cantidad_actual, cantidad_apartada):
    - entrada:    (+q, 0)
    - apartado:   (0, +q)     reserva para un control
    - salida:     (-q, -q)    lo apartado sale al trabajo
    - devolucion: (+q, 0)
    - ajuste:     (±q, 0)     única cantidad con signo
    """

    TIPO_ENTRADA = "entrada"
    TIPO_SALIDA = "salida"
    TIPO_APARTADO = "apartado"
    TIPO_DEVOLUCION = "devolucion"
    TIPO_AJUSTE = "ajuste"

    TIPO_CHOICES = [
        (TIPO_ENTRADA, "Entrada"),
        (TIPO_SALIDA, "Salida"),
        (TIPO_APARTADO, "Apartado"),
        (TIPO_DEVOLUCION, "Devolución"),
        (TIPO_AJUSTE, "Ajuste"),
    ]

    ORIGEN_ORDEN = "orden"
    ORIGEN_MANUAL = "manual"

    ORIGEN_CHOICES = [
        (ORIGEN_ORDEN, "Orden de trabajo"),
        (ORIGEN_MANUAL, "Manual"),
    ]

    tecnico = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="movimientos_materiales",
    )
    material = models.ForeignKey(
        Material,
        on_delete=models.PROTECT,
        related_name="movimientos",
    )
    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES)
    cantidad = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        help_text="Siempre positiva, salvo en ajustes (positivo suma, negativo resta).",
    )
    motivo = models.TextField(blank=True)
    usuario_responsable = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="movimientos_materiales_registrados",
    )
    origen = models.CharField(
        max_length=20,
        choices=ORIGEN_CHOICES,
        default=ORIGEN_MANUAL,
    )
    referencia_origen = models.CharField(
        max_length=100,
        blank=True,
        help_text="Referencia externa, ej. id de la orden de trabajo.",
    )
    control = models.ForeignKey(
        "ControlMaterial",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="movimientos",
    )
    visible_para_analistas = models.BooleanField(default=True)
    fecha = models.DateTimeField(default=timezone.now)

    objects = MovimientoQuerySet.as_manager()

    class Meta:
        verbose_name = "Movimiento de inventario"
        verbose_name_plural = "Movimientos de inventario"
        ordering = ["fecha", "id"]
        indexes = [
            models.Index(fields=["tecnico", "fecha"], name="mat_mov_tecnico_fecha_idx"),
            models.Index(fields=["origen", "referencia_origen"], name="mat_mov_origen_ref_idx"),
        ]

    def __str__(self):
        return f"{self.tipo} - {self.material} @ {self.tecnico} ({self.cantidad})"

    @classmethod
    def efecto(cls, tipo: str, cantidad: Decimal) -> tuple[Decimal, Decimal]:
        """
        Devuelve (delta_actual, delta_apartada) de un movimiento.
        """
        if tipo in (cls.TIPO_ENTRADA, cls.TIPO_DEVOLUCION, cls.TIPO_AJUSTE):
            return cantidad, CERO
        if tipo == cls.TIPO_APARTADO:
            return CERO, cantidad
        if tipo == cls.TIPO_SALIDA:
            return -cantidad, -cantidad
        raise ValueError(f"Tipo de movimiento desconocido: {tipo}")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerInmutableError(
                f"El movimiento #{self.pk} ya fue registrado y no se puede modificar."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerInmutableError(
            f"El movimiento #{self.pk} no se puede eliminar; registre un ajuste."
        )


class EstadoControl(models.TextChoices):
    ASIGNADO = "asignado", "Asignado"
    EN_TRABAJO = "en_trabajo", "En trabajo"
    TRABAJO_COMPLETADO = "trabajo_completado", "Trabajo completado"
    DEVOLUCION_PENDIENTE = "devolucion_pendiente", "Devolución pendiente"
    DEVOLUCION_COMPLETADA = "devolucion_completada", "Devolución completada"
    CERRADO = "cerrado", "Cerrado"


# Ningún estado vuelve a uno anterior. DEVOLUCION_PENDIENTE admite nuevas
# devoluciones parciales sin cambiar de estado.
TRANSICIONES_CONTROL = {
    EstadoControl.ASIGNADO: {EstadoControl.EN_TRABAJO},
    EstadoControl.EN_TRABAJO: {EstadoControl.TRABAJO_COMPLETADO},
    EstadoControl.TRABAJO_COMPLETADO: {
        EstadoControl.DEVOLUCION_PENDIENTE,
        EstadoControl.DEVOLUCION_COMPLETADA,
    },
    EstadoControl.DEVOLUCION_PENDIENTE: {
        EstadoControl.DEVOLUCION_PENDIENTE,
        EstadoControl.DEVOLUCION_COMPLETADA,
    },
    EstadoControl.DEVOLUCION_COMPLETADA: {EstadoControl.CERRADO},
    EstadoControl.CERRADO: set(),
}

ESTADOS_ABIERTOS = [
    EstadoControl.ASIGNADO,
    EstadoControl.EN_TRABAJO,
    EstadoControl.TRABAJO_COMPLETADO,
    EstadoControl.DEVOLUCION_PENDIENTE,
]

# Lo único que un save() directo (ej: el admin) puede tocar de un control existente.
CAMPOS_EDITABLES_CONTROL = [
    "orden_trabajo_id",
    "observaciones_bodeguero",
    "observaciones_tecnico",
    "observaciones_analista",
    "updated_at",
]


class EstadoLinea(models.TextChoices):
    PENDIENTE = "pendiente", "Pendiente"
    EN_USO = "en_uso", "En uso"
    DEVUELTO_PARCIAL = "devuelto_parcial", "Devuelto parcial"
    DEVUELTO_TOTAL = "devuelto_total", "Devuelto total"
    COMPLETADO = "completado", "Completado"


ESTADOS_LINEA_TERMINALES = {
    EstadoLinea.DEVUELTO_PARCIAL,
    EstadoLinea.DEVUELTO_TOTAL,
    EstadoLinea.COMPLETADO,
}


class ControlMaterial(TimeStampedModel):
    """
    Registro de una asignación de materiales a un técnico, opcionalmente
    asociada a una orden de trabajo (OT).

    Lo crea el bodeguero, lo mueve el técnico (inicio/fin de trabajo,
    devolución) y lo cierra el analista. Cerrado es terminal e inmutable.
    """

    tecnico = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="controles_materiales",
    )
    orden_trabajo_id = models.CharField(
        max_length=100,
        blank=True,
        help_text="Referencia opaca a la orden de trabajo (OT).",
    )
    bodeguero_asigno = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="controles_asignados",
    )
    analista_supervisa = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="controles_supervisados",
    )

    estado_general = models.CharField(
        max_length=30,
        choices=EstadoControl.choices,
        default=EstadoControl.ASIGNADO,
    )

    fecha_asignacion = models.DateTimeField(default=timezone.now)
    fecha_inicio_trabajo = models.DateTimeField(null=True, blank=True)
    fecha_fin_trabajo = models.DateTimeField(null=True, blank=True)
    fecha_devolucion = models.DateTimeField(null=True, blank=True)
    fecha_resolucion_descuadre = models.DateTimeField(null=True, blank=True)
    fecha_cierre = models.DateTimeField(null=True, blank=True)

    # Descuadre
    tiene_descuadre = models.BooleanField(default=False)
    valor_descuadre = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=0,
        help_text="Suma de cantidad_perdida * costo_unitario de las líneas.",
    )
    motivo_descuadre = models.TextField(blank=True)
    descuadre_resuelto = models.BooleanField(default=False)

    observaciones_bodeguero = models.TextField(blank=True)
    observaciones_tecnico = models.TextField(blank=True)
    observaciones_analista = models.TextField(blank=True)

    version = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "Control de materiales"
        verbose_name_plural = "Controles de materiales"
        ordering = ["-fecha_asignacion", "-id"]
        indexes = [
            models.Index(fields=["tecnico", "fecha_asignacion"], name="mat_ctrl_tecnico_fecha_idx"),
            models.Index(fields=["estado_general"], name="mat_ctrl_estado_idx"),
            models.Index(
                fields=["tiene_descuadre", "descuadre_resuelto"],
                name="mat_ctrl_descuadre_idx",
            ),
        ]

    def __str__(self):
        ot = f" OT {self.orden_trabajo_id}" if self.orden_trabajo_id else ""
        return f"Control #{self.pk}{ot} - {self.tecnico} ({self.estado_general})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            if _control_cerrado(self.pk):
                raise TransicionEstadoError(
                    f"El control #{self.pk} está cerrado; las correcciones se hacen con un ajuste."
                )
            # Estado, versión, fechas y descuadre solo cambian vía actualizar_control.
            update_fields = kwargs.get("update_fields")
            if update_fields is None:
                kwargs["update_fields"] = CAMPOS_EDITABLES_CONTROL
            elif not set(update_fields) <= set(CAMPOS_EDITABLES_CONTROL):
                raise TransicionEstadoError(
                    f"El control #{self.pk} solo cambia de estado mediante sus operaciones."
                )
        super().save(*args, **kwargs)

    def puede_transicionar(self, nuevo_estado: str) -> bool:
        return nuevo_estado in TRANSICIONES_CONTROL[EstadoControl(self.estado_general)]

    @property
    def esta_abierto(self) -> bool:
        return self.estado_general in ESTADOS_ABIERTOS

    @property
    def puede_cerrarse(self) -> bool:
        """
        Se puede cerrar con la devolución completa y sin descuadre,
        o con el descuadre ya resuelto por un analista.
        """
        if self.estado_general != EstadoControl.DEVOLUCION_COMPLETADA:
            return False
        return (not self.tiene_descuadre) or self.descuadre_resuelto


def _control_cerrado(control_id) -> bool:
    return ControlMaterial.objects.filter(
        pk=control_id,
        estado_general=EstadoControl.CERRADO,
    ).exists()


class MaterialAsignado(TimeStampedModel):
    """
    Línea de un control: un material con sus cantidades asignada,
    utilizada, devuelta y perdida.
    """
    control = models.ForeignKey(
        ControlMaterial,
        on_delete=models.CASCADE,
        related_name="lineas",
    )
    material = models.ForeignKey(
        Material,
        on_delete=models.PROTECT,
        related_name="asignaciones",
    )
    cantidad_asignada = models.DecimalField(max_digits=14, decimal_places=3)
    cantidad_utilizada = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    cantidad_devuelta = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    cantidad_perdida = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    motivo_perdida = models.CharField(max_length=255, blank=True)

    # Snapshot del costo al registrar la devolución
    costo_unitario = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        null=True,
        blank=True,
    )
    valor_perdida = models.DecimalField(max_digits=14, decimal_places=4, default=0)

    estado = models.CharField(
        max_length=20,
        choices=EstadoLinea.choices,
        default=EstadoLinea.PENDIENTE,
    )

    class Meta:
        verbose_name = "Material asignado"
        verbose_name_plural = "Materiales asignados"
        unique_together = ("control", "material")
        ordering = ["control", "id"]

    def __str__(self):
        return f"{self.cantidad_asignada} x {self.material} (control #{self.control_id})"

    def save(self, *args, **kwargs):
        if self.control_id and _control_cerrado(self.control_id):
            raise TransicionEstadoError(
                f"El control #{self.control_id} está cerrado; sus líneas no se modifican."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if _control_cerrado(self.control_id):
            raise TransicionEstadoError(
                f"El control #{self.control_id} está cerrado; sus líneas no se eliminan."
            )
        return super().delete(*args, **kwargs)

    @property
    def total_reportado(self) -> Decimal:
        return (
            (self.cantidad_utilizada or CERO)
            + (self.cantidad_devuelta or CERO)
            + (self.cantidad_perdida or CERO)
        )

    @property
    def cuadra(self) -> bool:
        return self.total_reportado == self.cantidad_asignada

    @property
    def es_terminal(self) -> bool:
        return self.estado in ESTADOS_LINEA_TERMINALES


class Alerta(TimeStampedModel):
    """
    Evento para el emisor de alertas externo: stock bajo de un técnico o
    descuadre nuevo en un control. El core solo los registra.
    """

    TIPO_STOCK_CRITICO = "stock_critico"
    TIPO_DESCUADRE = "descuadre_material"

    TIPO_CHOICES = [
        (TIPO_STOCK_CRITICO, "Stock crítico"),
        (TIPO_DESCUADRE, "Descuadre de materiales"),
    ]

    tipo = models.CharField(max_length=30, choices=TIPO_CHOICES)
    descripcion = models.TextField()
    tecnico = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="alertas_materiales",
    )
    material = models.ForeignKey(
        Material,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="alertas",
    )
    control = models.ForeignKey(
        ControlMaterial,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="alertas",
    )
    visible_para_analistas = models.BooleanField(default=True)
    resuelta = models.BooleanField(default=False)
    fecha_resolucion = models.DateTimeField(null=True, blank=True)
    resuelta_por = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="alertas_materiales_resueltas",
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["tipo", "resuelta"], name="mat_alerta_tipo_resuelta_idx"),
        ]

    def __str__(self):
        return f"{self.get_tipo_display()}: {self.descripcion[:60]}"


class EstadoSolicitud(models.TextChoices):
    PENDIENTE = "pendiente", "Pendiente"
    APROBADA = "aprobada", "Aprobada"
    ENTREGADA = "entregada", "Entregada"
    RECHAZADA = "rechazada", "Rechazada"


TRANSICIONES_SOLICITUD = {
    EstadoSolicitud.PENDIENTE: {EstadoSolicitud.APROBADA, EstadoSolicitud.RECHAZADA},
    EstadoSolicitud.APROBADA: {EstadoSolicitud.ENTREGADA},
    EstadoSolicitud.ENTREGADA: set(),
    EstadoSolicitud.RECHAZADA: set(),
}


class SolicitudMaterial(TimeStampedModel):
    """
    Pedido de materiales de un técnico a bodega.

    No mueve stock: al entregarse, las cantidades aprobadas se asignan con
    un ControlMaterial normal y la solicitud queda enlazada a ese control.
    """
    tecnico = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="solicitudes_materiales",
    )
    fecha_solicitud = models.DateTimeField(default=timezone.now)
    estado = models.CharField(
        max_length=20,
        choices=EstadoSolicitud.choices,
        default=EstadoSolicitud.PENDIENTE,
    )
    observaciones = models.TextField(blank=True)

    aprobado_por = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="solicitudes_materiales_revisadas",
    )
    fecha_aprobacion = models.DateTimeField(null=True, blank=True)
    fecha_entrega = models.DateTimeField(null=True, blank=True)
    fecha_rechazo = models.DateTimeField(null=True, blank=True)
    motivo_rechazo = models.TextField(blank=True)

    control = models.OneToOneField(
        ControlMaterial,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="solicitud",
    )

    class Meta:
        verbose_name = "Solicitud de materiales"
        verbose_name_plural = "Solicitudes de materiales"
        ordering = ["-fecha_solicitud", "-id"]
        indexes = [
            models.Index(fields=["estado", "fecha_solicitud"], name="mat_sol_estado_fecha_idx"),
            models.Index(fields=["tecnico", "fecha_solicitud"], name="mat_sol_tecnico_fecha_idx"),
        ]

    def __str__(self):
        return f"Solicitud #{self.pk} - {self.tecnico} ({self.estado})"

    def puede_transicionar(self, nuevo_estado: str) -> bool:
        return nuevo_estado in TRANSICIONES_SOLICITUD[EstadoSolicitud(self.estado)]


class MaterialSolicitado(models.Model):
    solicitud = models.ForeignKey(
        SolicitudMaterial,
        on_delete=models.CASCADE,
        related_name="lineas",
    )
    material = models.ForeignKey(
        Material,
        on_delete=models.PROTECT,
        related_name="solicitudes",
    )
    cantidad_solicitada = models.DecimalField(max_digits=14, decimal_places=3)
    cantidad_aprobada = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    motivo = models.CharField(max_length=255, blank=True, help_text="Para qué necesita el material.")
    tipo_trabajo_estimado = models.CharField(max_length=100, blank=True)

    class Meta:
        verbose_name = "Material solicitado"
        verbose_name_plural = "Materiales solicitados"
        unique_together = ("solicitud", "material")
        ordering = ["solicitud", "id"]

    def __str__(self):
        return f"{self.cantidad_solicitada} x {self.material} (solicitud #{self.solicitud_id})"
