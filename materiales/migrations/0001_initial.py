import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Material",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("nombre", models.CharField(max_length=150, unique=True)),
                ("descripcion", models.TextField(blank=True)),
                (
                    "unidad_medida",
                    models.CharField(
                        help_text="Unidad en la que se entrega y devuelve (ej: unidad, metro, rollo).",
                        max_length=30,
                    ),
                ),
                ("categoria", models.CharField(blank=True, max_length=100)),
                (
                    "costo_unitario",
                    models.DecimalField(
                        decimal_places=4,
                        default=0,
                        help_text="Costo por unidad, usado para calcular el valor de las pérdidas.",
                        max_digits=12,
                    ),
                ),
                (
                    "stock_minimo",
                    models.DecimalField(
                        decimal_places=3,
                        default=0,
                        help_text=(
                            "Disponible mínimo por técnico antes de alertar. "
                            "Si es 0 se usa el umbral global MATERIALES['UMBRAL_STOCK_BAJO']."
                        ),
                        max_digits=14,
                    ),
                ),
                ("activo", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["nombre"],
            },
        ),
        migrations.CreateModel(
            name="ControlMaterial",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "orden_trabajo_id",
                    models.CharField(
                        blank=True,
                        help_text="Referencia opaca a la orden de trabajo (OT).",
                        max_length=100,
                    ),
                ),
                (
                    "estado_general",
                    models.CharField(
                        choices=[
                            ("asignado", "Asignado"),
                            ("en_trabajo", "En trabajo"),
                            ("trabajo_completado", "Trabajo completado"),
                            ("devolucion_pendiente", "Devolución pendiente"),
                            ("devolucion_completada", "Devolución completada"),
                            ("cerrado", "Cerrado"),
                        ],
                        default="asignado",
                        max_length=30,
                    ),
                ),
                ("fecha_asignacion", models.DateTimeField(default=django.utils.timezone.now)),
                ("fecha_inicio_trabajo", models.DateTimeField(blank=True, null=True)),
                ("fecha_fin_trabajo", models.DateTimeField(blank=True, null=True)),
                ("fecha_devolucion", models.DateTimeField(blank=True, null=True)),
                ("fecha_resolucion_descuadre", models.DateTimeField(blank=True, null=True)),
                ("fecha_cierre", models.DateTimeField(blank=True, null=True)),
                ("tiene_descuadre", models.BooleanField(default=False)),
                (
                    "valor_descuadre",
                    models.DecimalField(
                        decimal_places=4,
                        default=0,
                        help_text="Suma de cantidad_perdida * costo_unitario de las líneas.",
                        max_digits=14,
                    ),
                ),
                ("motivo_descuadre", models.TextField(blank=True)),
                ("descuadre_resuelto", models.BooleanField(default=False)),
                ("observaciones_bodeguero", models.TextField(blank=True)),
                ("observaciones_tecnico", models.TextField(blank=True)),
                ("observaciones_analista", models.TextField(blank=True)),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "analista_supervisa",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="controles_supervisados",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "bodeguero_asigno",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="controles_asignados",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "tecnico",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="controles_materiales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Control de materiales",
                "verbose_name_plural": "Controles de materiales",
                "ordering": ["-fecha_asignacion", "-id"],
                "indexes": [
                    models.Index(fields=["tecnico", "fecha_asignacion"], name="mat_ctrl_tecnico_fecha_idx"),
                    models.Index(fields=["estado_general"], name="mat_ctrl_estado_idx"),
                    models.Index(
                        fields=["tiene_descuadre", "descuadre_resuelto"],
                        name="mat_ctrl_descuadre_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Alerta",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tipo",
                    models.CharField(
                        choices=[
                            ("stock_critico", "Stock crítico"),
                            ("descuadre_material", "Descuadre de materiales"),
                        ],
                        max_length=30,
                    ),
                ),
                ("descripcion", models.TextField()),
                ("visible_para_analistas", models.BooleanField(default=True)),
                ("resuelta", models.BooleanField(default=False)),
                ("fecha_resolucion", models.DateTimeField(blank=True, null=True)),
                (
                    "resuelta_por",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="alertas_materiales_resueltas",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "tecnico",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="alertas_materiales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "control",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="alertas",
                        to="materiales.controlmaterial",
                    ),
                ),
                (
                    "material",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="alertas",
                        to="materiales.material",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["tipo", "resuelta"], name="mat_alerta_tipo_resuelta_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MaterialAsignado",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("cantidad_asignada", models.DecimalField(decimal_places=3, max_digits=14)),
                ("cantidad_utilizada", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("cantidad_devuelta", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("cantidad_perdida", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("motivo_perdida", models.CharField(blank=True, max_length=255)),
                ("costo_unitario", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("valor_perdida", models.DecimalField(decimal_places=4, default=0, max_digits=14)),
                (
                    "estado",
                    models.CharField(
                        choices=[
                            ("pendiente", "Pendiente"),
                            ("en_uso", "En uso"),
                            ("devuelto_parcial", "Devuelto parcial"),
                            ("devuelto_total", "Devuelto total"),
                            ("completado", "Completado"),
                        ],
                        default="pendiente",
                        max_length=20,
                    ),
                ),
                (
                    "control",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lineas",
                        to="materiales.controlmaterial",
                    ),
                ),
                (
                    "material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="asignaciones",
                        to="materiales.material",
                    ),
                ),
            ],
            options={
                "verbose_name": "Material asignado",
                "verbose_name_plural": "Materiales asignados",
                "ordering": ["control", "id"],
                "unique_together": {("control", "material")},
            },
        ),
        migrations.CreateModel(
            name="MovimientoInventario",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "tipo",
                    models.CharField(
                        choices=[
                            ("entrada", "Entrada"),
                            ("salida", "Salida"),
                            ("apartado", "Apartado"),
                            ("devolucion", "Devolución"),
                            ("ajuste", "Ajuste"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "cantidad",
                    models.DecimalField(
                        decimal_places=3,
                        help_text="Siempre positiva, salvo en ajustes (positivo suma, negativo resta).",
                        max_digits=14,
                    ),
                ),
                ("motivo", models.TextField(blank=True)),
                (
                    "origen",
                    models.CharField(
                        choices=[("orden", "Orden de trabajo"), ("manual", "Manual")],
                        default="manual",
                        max_length=20,
                    ),
                ),
                (
                    "referencia_origen",
                    models.CharField(
                        blank=True,
                        help_text="Referencia externa, ej. id de la orden de trabajo.",
                        max_length=100,
                    ),
                ),
                ("visible_para_analistas", models.BooleanField(default=True)),
                ("fecha", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "control",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movimientos",
                        to="materiales.controlmaterial",
                    ),
                ),
                (
                    "material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movimientos",
                        to="materiales.material",
                    ),
                ),
                (
                    "tecnico",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movimientos_materiales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "usuario_responsable",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movimientos_materiales_registrados",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Movimiento de inventario",
                "verbose_name_plural": "Movimientos de inventario",
                "ordering": ["fecha", "id"],
                "indexes": [
                    models.Index(fields=["tecnico", "fecha"], name="mat_mov_tecnico_fecha_idx"),
                    models.Index(fields=["origen", "referencia_origen"], name="mat_mov_origen_ref_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockCentral",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("cantidad_disponible", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "material",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_central",
                        to="materiales.material",
                    ),
                ),
            ],
            options={
                "verbose_name": "Stock central",
                "verbose_name_plural": "Stock central",
            },
        ),
        migrations.CreateModel(
            name="StockTecnico",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "cantidad_actual",
                    models.DecimalField(
                        decimal_places=3,
                        default=0,
                        help_text="Cantidad que el técnico tiene en su poder (libre + apartada).",
                        max_digits=14,
                    ),
                ),
                (
                    "cantidad_apartada",
                    models.DecimalField(
                        decimal_places=3,
                        default=0,
                        help_text="Cantidad reservada para controles asignados aún no iniciados.",
                        max_digits=14,
                    ),
                ),
                ("cantidad_disponible", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("ultimo_movimiento", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stocks_tecnicos",
                        to="materiales.material",
                    ),
                ),
                (
                    "tecnico",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_materiales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Stock de técnico",
                "verbose_name_plural": "Stocks de técnicos",
                "unique_together": {("tecnico", "material")},
            },
        ),
    ]
