from django.apps import AppConfig


class MaterialesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "materiales"
    verbose_name = "Control de materiales"
