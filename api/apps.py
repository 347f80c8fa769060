from django.apps import AppConfig


class ApiConfig(AppConfig):
    name = 'api'
    default_auto_field = 'django.db.models.AutoField'

    def ready(self):
        from .firebase_config import initialize_firebase
        initialize_firebase()
