from django.apps import AppConfig


class AidSystemConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'aid_system'
    verbose_name = 'Aid Distribution'
