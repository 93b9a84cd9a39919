import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("materiales", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SolicitudMaterial",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("fecha_solicitud", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "estado",
                    models.CharField(
                        choices=[
                            ("pendiente", "Pendiente"),
                            ("aprobada", "Aprobada"),
                            ("entregada", "Entregada"),
                            ("rechazada", "Rechazada"),
                        ],
                        default="pendiente",
                        max_length=20,
                    ),
                ),
                ("observaciones", models.TextField(blank=True)),
                ("fecha_aprobacion", models.DateTimeField(blank=True, null=True)),
                ("fecha_entrega", models.DateTimeField(blank=True, null=True)),
                ("fecha_rechazo", models.DateTimeField(blank=True, null=True)),
                ("motivo_rechazo", models.TextField(blank=True)),
                (
                    "aprobado_por",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="solicitudes_materiales_revisadas",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "control",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="solicitud",
                        to="materiales.controlmaterial",
                    ),
                ),
                (
                    "tecnico",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="solicitudes_materiales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Solicitud de materiales",
                "verbose_name_plural": "Solicitudes de materiales",
                "ordering": ["-fecha_solicitud", "-id"],
                "indexes": [
                    models.Index(fields=["estado", "fecha_solicitud"], name="mat_sol_estado_fecha_idx"),
                    models.Index(fields=["tecnico", "fecha_solicitud"], name="mat_sol_tecnico_fecha_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MaterialSolicitado",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("cantidad_solicitada", models.DecimalField(decimal_places=3, max_digits=14)),
                ("cantidad_aprobada", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                (
                    "motivo",
                    models.CharField(blank=True, help_text="Para qué necesita el material.", max_length=255),
                ),
                ("tipo_trabajo_estimado", models.CharField(blank=True, max_length=100)),
                (
                    "material",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="solicitudes",
                        to="materiales.material",
                    ),
                ),
                (
                    "solicitud",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lineas",
                        to="materiales.solicitudmaterial",
                    ),
                ),
            ],
            options={
                "verbose_name": "Material solicitado",
                "verbose_name_plural": "Materiales solicitados",
                "ordering": ["solicitud", "id"],
                "unique_together": {("solicitud", "material")},
            },
        ),
    ]
