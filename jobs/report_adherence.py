#!/usr/bin/env python3
import argparse
import json
import logging
import sys
from datetime import date, timedelta

from app.medtrack.aggregate import aggregate, filter_doses
from app.medtrack.config import load_settings
from app.medtrack.db import dsn_from_env
from app.medtrack.reconcile import find_ambiguities, reconcile_all
from app.medtrack.schedule import expand_for_prescriptions
from app.medtrack.snapshot import load_snapshot

logger = logging.getLogger("mt.report")


def build_report(snap, start: date, end: date) -> dict:
    instants = expand_for_prescriptions(snap.prescriptions, snap.schedules, start, end)
    doses = reconcile_all(instants, snap.logs, snap.history)
    # keyed by id: two prescriptions may share a name at different dosages
    per_rx = {}
    for rx in snap.prescriptions:
        if not rx.is_active:
            continue
        entry = {"name": rx.name, "dosage": rx.dosage}
        entry.update(aggregate(filter_doses(doses, prescription_id=rx.id)).to_dict())
        per_rx[rx.id] = entry
    return {
        "user_id": snap.user_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "overall": aggregate(doses).to_dict(),
        "prescriptions": per_rx,
        "ambiguous": len(find_ambiguities(doses)),
    }


def main():
    ap = argparse.ArgumentParser(description="Adherence summary for one user")
    ap.add_argument("--dsn", default=dsn_from_env())
    ap.add_argument("--user-id", required=True)
    ap.add_argument("--start", default=None, help="YYYY-MM-DD (default: 30 days ago)")
    ap.add_argument("--end", default=None, help="YYYY-MM-DD (default: today)")
    ap.add_argument("--format", default="json", choices=["json", "text"])
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    snap = load_snapshot(args.user_id, dsn=args.dsn, tz_name=load_settings().tz_name)

    end = date.fromisoformat(args.end) if args.end else snap.as_of.date()
    start = date.fromisoformat(args.start) if args.start else end - timedelta(days=30)
    if end < start:
        ap.error("--end is before --start")

    report = build_report(snap, start, end)
    logger.info("report user=%s %s..%s", args.user_id, start, end)

    if args.format == "json":
        json.dump(report, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    o = report["overall"]
    print(f"{report['start']} .. {report['end']}  user={report['user_id']}")
    print(
        f"overall  total={o['total']} taken={o['taken']} missed={o['missed']} "
        f"pending={o['pending']} adherence={o['adherence_rate']}% on_time={o['on_time_rate']}%"
    )
    for rx_id, s in sorted(report["prescriptions"].items(), key=lambda kv: (kv[1]["name"], kv[0])):
        label = f"{s['name']} {s['dosage']}".strip()
        print(f"  {label} [{rx_id}]: {s['taken']}/{s['total']} ({s['adherence_rate']}%)")
    if report["ambiguous"]:
        print(f"warning: {report['ambiguous']} doses with duplicate history entries")


if __name__ == "__main__":
    main()
