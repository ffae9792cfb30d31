from django.apps import AppConfig


class MicrofinanceConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'microfinance'
    verbose_name = 'Microfinance Back Office'

    def ready(self):
        # Connects the change-feed receivers
        from microfinance import signals  # noqa: F401
