"""Process-wide stores shared by the HTTP layer."""

from .config import load_settings, load_weights
from .config_store import ConfigStore
from .pipeline.alerts import AlertStore

settings = load_settings()
weights = load_weights()

config_store = ConfigStore()
alert_store = AlertStore()


def reset() -> None:
    config_store.clear()
    alert_store.clear()
