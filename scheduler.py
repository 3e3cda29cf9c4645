# scheduler.py

import time
import logging

import schedule
import requests

from reviewdesk.config import SYNC_OWNER_IDS, settings

BASE_URL = settings.API_BASE_URL

# Configure structured logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


# ─── Generic API Caller ──────────────────────────────────────────────────────
def call_api(endpoint: str, label: str, owner_id: str) -> bool:
    """
    POSTs BASE_URL + endpoint as `owner_id` and logs success / failure.
    """
    url = f"{BASE_URL}{endpoint}"
    try:
        resp = requests.post(url, headers={"X-User-Id": owner_id}, timeout=120)
    except requests.RequestException as e:
        log.error("%s for %s raised: %s", label, owner_id, e, exc_info=True)
        return False

    if resp.ok:
        log.info("%s for %s succeeded (status %s)", label, owner_id, resp.status_code)
        return True
    log.warning("%s for %s returned %s: %s", label, owner_id, resp.status_code, resp.text[:500])
    return False


def sync_owner(owner_id: str) -> None:
    """Locations first; reviews only make sense once workspaces exist."""
    if call_api("/locations/sync", "Location sync", owner_id):
        call_api("/reviews/sync", "Review sync", owner_id)


def run_all() -> None:
    for owner_id in SYNC_OWNER_IDS:
        sync_owner(owner_id)


# ─── Job Schedule Definitions ────────────────────────────────────────────────
# time_str is HH:MM (24-hour)
SYNC_TIMES = ["06:00", "12:00", "18:00"]


def schedule_jobs():
    for t in SYNC_TIMES:
        schedule.every().day.at(t).do(run_all)
        log.info("Scheduled review sync for %d owners daily at %s", len(SYNC_OWNER_IDS), t)


# ─── Entrypoint ─────────────────────────────────────────────────────────────
def main():
    if not SYNC_OWNER_IDS:
        log.warning("SYNC_OWNER_IDS is empty; nothing will be synced")
    schedule_jobs()
    log.info("Scheduler started. Waiting for jobs…")
    while True:
        schedule.run_pending()
        time.sleep(60)  # wake up every minute and check


if __name__ == "__main__":
    main()
