import argparse
import pathlib

import duckdb

from tools.admin import clear_financial_plan_data, seed_default_financial_plan
from tools.sql_utils import DB_PATH
from tools.store import FinancialStore, StoreError


def main(argv=None):
    ap = argparse.ArgumentParser(description="Create the finance DuckDB schema; optionally seed or clear it.")
    ap.add_argument("--db", default=DB_PATH, help=f"DuckDB file (default: {DB_PATH})")
    group = ap.add_mutually_exclusive_group()
    group.add_argument("--seed", action="store_true", help="replace all data with the demo plan and sample scenarios")
    group.add_argument("--clear", action="store_true", help="delete every entity and scenario")
    args = ap.parse_args(argv)

    db_path = pathlib.Path(args.db)
    try:
        store = FinancialStore(db_path.as_posix())
    except duckdb.Error as e:
        raise SystemExit(f"Could not open {db_path}: {e}")
    print(f"[OK] Schema ready in {db_path}")

    try:
        if args.seed:
            plan = seed_default_financial_plan(store)
            print(
                f"[OK] Seeded {len(plan.assets)} assets, {len(plan.liabilities)} liabilities, "
                f"{len(plan.incomes)} incomes, {len(plan.expenses)} expenses and {len(store.scenarios.list())} scenarios"
            )
        elif args.clear:
            clear_financial_plan_data(store)
            print("[OK] Cleared all financial plan data")
        else:
            counts = {name: len(getattr(store, name).list())
                      for name in ("assets", "liabilities", "incomes", "expenses", "scenarios")}
            if not any(counts.values()):
                print("[WARN] Store is empty. Run with --seed to load the demo plan.")
            else:
                print("[OK] " + ", ".join(f"{n} {k}" for k, n in counts.items()))
    except StoreError as e:
        raise SystemExit(f"Store error: {e}")
    finally:
        store.close()


if __name__ == "__main__":
    main()
