from django.core.management.base import BaseCommand, CommandError

from materiales.models import StockTecnico
from materiales.services.stock import reconstruir_saldo, saldo_consistente


class Command(BaseCommand):
    help = (
        "Recalcula cada saldo de técnico plegando el ledger de movimientos "
        "y reporta los que no coinciden con lo guardado."
    )

    def add_arguments(self, parser):
        parser.add_argument("--tecnico", type=int, help="Solo verificar este técnico (id).")
        parser.add_argument(
            "--fallar",
            action="store_true",
            help="Terminar con error si hay saldos descuadrados.",
        )

    def handle(self, *args, **options):
        qs = StockTecnico.objects.select_related("tecnico", "material").order_by("tecnico_id", "material_id")
        if options.get("tecnico"):
            qs = qs.filter(tecnico_id=options["tecnico"])

        revisados = 0
        inconsistentes = 0
        for saldo in qs.iterator():
            revisados += 1
            if saldo_consistente(saldo):
                continue

            actual, apartada = reconstruir_saldo(saldo.tecnico_id, saldo.material_id)
            inconsistentes += 1
            self.stdout.write(
                self.style.WARNING(
                    f"{saldo.tecnico} / {saldo.material}: guardado "
                    f"actual={saldo.cantidad_actual} apartada={saldo.cantidad_apartada} "
                    f"disponible={saldo.cantidad_disponible}; ledger "
                    f"actual={actual} apartada={apartada} disponible={actual - apartada}"
                )
            )

        resumen = f"{revisados} saldos revisados, {inconsistentes} inconsistentes."
        if inconsistentes and options.get("fallar"):
            raise CommandError(resumen)
        if inconsistentes:
            self.stdout.write(self.style.WARNING(resumen))
        else:
            self.stdout.write(self.style.SUCCESS(resumen))
