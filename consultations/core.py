"""Wiring of the booking core around one shared store."""
from dataclasses import dataclass

from .availability import AvailabilityCalendar
from .config import Settings, get_settings
from .flags import FlagLog
from .ledger import BookingLedger
from .providers import ProviderDirectory
from .store import Store


@dataclass
class Core:
    settings: Settings
    store: Store
    providers: ProviderDirectory
    calendar: AvailabilityCalendar
    ledger: BookingLedger
    flags: FlagLog


def build_core(settings: Settings | None = None, db_path: str | None = None) -> Core:
    """Open the store and build every component on top of it."""
    settings = settings or get_settings()
    store = Store(db_path or settings.database_path)
    store.init_schema()
    providers = ProviderDirectory(store, settings)
    return Core(
        settings=settings,
        store=store,
        providers=providers,
        calendar=AvailabilityCalendar(store, providers, settings),
        ledger=BookingLedger(store),
        flags=FlagLog(store),
    )


# Global instance for the tool and HTTP layers
_core: Core | None = None


def get_core() -> Core:
    """Get or create the shared core."""
    global _core
    if _core is None:
        _core = build_core()
    return _core


def reset_core(db_path: str = ":memory:", settings: Settings | None = None) -> Core:
    """Replace the shared core with a fresh one (for testing)."""
    global _core
    if _core is not None:
        _core.store.close()
    _core = build_core(settings=settings, db_path=db_path)
    return _core
