from __future__ import annotations

import atexit
import sys

from django.apps import AppConfig


class DeltasConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "deltas"

    def ready(self) -> None:
        """Load the rule set at startup so a malformed rules file refuses to boot."""
        # Avoid side effects during migrations/collectstatic/tests.
        argv = " ".join(sys.argv).lower()
        if any(token in argv for token in ["makemigrations", "migrate", "collectstatic", "pytest", " test", "check_delta_rules"]):
            return

        from .dispatcher import get_engine, shutdown_engine

        get_engine()
        atexit.register(shutdown_engine)
