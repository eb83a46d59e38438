# finder/services.py
from utils.config import Settings
from utils.mailer import Mailer
from .aggregator import Aggregator
from .connectors import build_connectors
from .db import Store


class Services:
    """Process-wide collaborators, created at startup and closed at shutdown."""

    def __init__(self, settings, store, aggregator, mailer):
        self.settings = settings
        self.store = store
        self.aggregator = aggregator
        self.mailer = mailer

    @classmethod
    def create(cls, settings=None):
        settings = settings or Settings.from_env()
        return cls(
            settings,
            Store.connect(settings),
            Aggregator(build_connectors(settings)),
            Mailer.from_settings(settings),
        )

    async def aclose(self):
        await self.aggregator.close()
        self.store.close()
