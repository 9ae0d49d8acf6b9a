import logging
import sys

from core import config
from core.dates import local_date
from core.exceptions import BackendError
from core.logging_setup import setup_logging
from controller.app_controller import AppController
from services.notification_service import PushRelay
from storage.local_store import LocalStore
from storage.supabase import SupabaseClient

logger = logging.getLogger(__name__)


def _print_agenda(controller: AppController) -> None:
    store = controller.store
    tasks, routines = store.todays_duties()
    today = local_date(store.clock(), store.offset_hours)

    print(f"Today {today.isoformat()}")
    for t in tasks:
        print(f"  [ ] {t.title}")
    for r in routines:
        print(f"  [~] {r.title}")
    if not tasks and not routines:
        print("  nothing left for today")

    overdue = store.overdue()
    if overdue:
        print(f"Overdue ({len(overdue)})")
        for t in overdue:
            print(f"  [!] {t.title} ({local_date(t.created_at, store.offset_hours).isoformat()})")

    later = {d: ts for d, ts in store.upcoming().items() if d > today}
    if later:
        print("Upcoming")
        for day, ts in later.items():
            print(f"  {day.isoformat()}: " + ", ".join(t.title for t in ts))


def main() -> int:
    log_file = setup_logging(log_dir=str(config.LOG_DIR),
                             console_level=getattr(logging, config.LOG_LEVEL, logging.INFO))
    logger.debug("Logging to %s", log_file)

    client = SupabaseClient(config.BASE_URL, config.API_KEY, timeout=config.REQUEST_TIMEOUT)
    controller = AppController(client, LocalStore(config.STORAGE_PATH), relay=PushRelay(),
                               push_token=lambda: config.PUSH_TOKEN or None)

    try:
        profile = controller.start()
        if profile is None:
            if not config.IDENTITY or not config.PASSWORD:
                logger.error("No saved session; set DUTY_IDENTITY and DUTY_PASSWORD")
                return 1
            profile = controller.login(config.IDENTITY, config.PASSWORD)
    except BackendError as e:
        logger.error("Login error: %s", e)
        return 1

    logger.info("Signed in as %s", profile.email)
    _print_agenda(controller)
    return 0


if __name__ == "__main__":
    sys.exit(main())
