"""
run_daily_rollover.py

Nightly job that closes out yesterday for every group:
1) Counts each member's breaks inside the group's local day.
2) Upserts that day's loser into daily_stats.
3) Recomputes the month's losses_count in monthly_stats from daily_stats.

Safe to rerun; a rerun overwrites the same rows. Schedule it shortly after
local midnight of STATS_TIMEZONE, e.g.

    5 0 * * *  cd /srv/weaklink && python script/run_daily_rollover.py

Pass --date to close out a specific day instead, or --from/--to to backfill.
"""

import argparse
from datetime import date, timedelta

from weaklink import create_app
from weaklink.aggregation import StatsAggregator
from weaklink.membership import all_group_ids


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Weak Link daily rollover")
    parser.add_argument("--date", help="day to close out (YYYY-MM-DD), default yesterday")
    parser.add_argument("--from", dest="first", help="backfill start (YYYY-MM-DD)")
    parser.add_argument("--to", dest="last", help="backfill end (YYYY-MM-DD), default yesterday")
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        aggregator = StatsAggregator.from_config(app.config)

        if args.first:
            first = date.fromisoformat(args.first)
            last = date.fromisoformat(args.last) if args.last else aggregator.today() - timedelta(days=1)
            backfilled = aggregator.backfill_groups(first, last)
            for group_id, days in sorted(backfilled.items()):
                print(f"[INFO] group {group_id}: {days} loser day(s)")
            skipped = sorted(set(all_group_ids()) - set(backfilled))
            if skipped:
                print(f"[WARN] Skipped groups after repeated conflicts: {skipped}")
            print(f"[INFO] Backfilled {first.isoformat()}..{last.isoformat()}")
            return 0

        as_of = date.fromisoformat(args.date) + timedelta(days=1) if args.date else None
        results = aggregator.rollover(as_of=as_of)

    for group_id, loser in sorted(results.items()):
        print(f"[INFO] group {group_id}: loser={loser if loser is not None else '-'}")
    print("[DONE] Rollover complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
