import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from smartlink.core.database import SessionLocal
from smartlink.core.settings import settings
from smartlink.services.budget_monitor import run_budget_monitor
import smartlink.models  # noqa: F401


def main() -> int:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    db = SessionLocal()
    try:
        result = run_budget_monitor(db)
    finally:
        db.close()
    print(f"warned={result['warned']} deactivated={result['deactivated']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
