from django.apps import AppConfig
from django.conf import settings


class PostsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "posts"

    def ready(self):
        # Imported here because services imports the models.
        from .services import InteractionEngine, PostStore

        using = getattr(settings, "BLOG_DATABASE", "default")
        self.post_store = PostStore(using=using)
        self.interaction_engine = InteractionEngine(using=using)
