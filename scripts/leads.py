#!/usr/bin/env python3
"""Operator CLI for the lead database.

Usage:
    python scripts/leads.py list                     # all leads, dashboard order
    python scripts/leads.py list --status calling    # only in-flight calls
    python scripts/leads.py reconcile                # one status check pass
    python scripts/leads.py reconcile --every 60     # check every 60s until Ctrl-C
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from leadcall.config import load_settings, validate_config
from leadcall.display import sort_for_display
from leadcall.feedback import format_duration, normalize
from leadcall.provider import VapiClient
from leadcall.reconciler import StatusReconciler
from leadcall.states import LeadStatus
from leadcall.store import LeadStore


def format_leads(leads: list) -> str:
    if not leads:
        return "Database is empty - no customers found"

    lines = [f"Found {len(leads)} customers:", ""]
    for i, lead in enumerate(leads, start=1):
        lines.append(f"{i}. {lead.name} ({lead.phone})")
        lines.append(f"   Email: {lead.email}")
        lines.append(f"   Status: {lead.status.value}")
        lines.append(f"   Created: {lead.created_at.isoformat()}")
        if lead.has_feedback:
            parsed = normalize(lead.feedback)
            lines.append(f"   Has Feedback: YES ({format_duration(parsed.duration)})")
            for key, answer in parsed.customer_responses.items():
                lines.append(f"     {key}: {answer}")
        else:
            lines.append("   Has Feedback: NO")
        lines.append("")
    return "\n".join(lines).rstrip()


def cmd_list(args, settings) -> int:
    store = LeadStore(settings.db_path)
    try:
        if args.status:
            leads = store.list_by_status(LeadStatus(args.status))
        else:
            leads = store.list_leads()
    finally:
        store.close()
    print(format_leads(sort_for_display(leads)))
    return 0


async def run_reconcile(reconciler: StatusReconciler, every: float | None) -> None:
    while True:
        result = await reconciler.check_status()
        print(f"checked={result.checked} updated={result.updated} errors={result.errors}")
        if not every:
            return
        await asyncio.sleep(every)


def cmd_reconcile(args, settings) -> int:
    validate_config()
    store = LeadStore(settings.db_path)
    provider = VapiClient(
        api_key=settings.vapi_api_key,
        assistant_id=settings.vapi_assistant_id,
        phone_number_id=settings.vapi_phone_number_id,
        base_url=settings.vapi_base_url,
        timeout=settings.provider_timeout,
        declined_end_reasons=settings.declined_end_reasons,
    )

    async def _main():
        try:
            await run_reconcile(StatusReconciler(store, provider), args.every)
        finally:
            await provider.close()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass
    finally:
        store.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Lead database operator tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="Print leads in dashboard order")
    p_list.add_argument("--status", choices=[s.value for s in LeadStatus])

    p_rec = sub.add_parser("reconcile", help="Check in-flight calls for results")
    p_rec.add_argument("--every", type=float, default=None,
                       help="Repeat every N seconds until interrupted")

    args = parser.parse_args(argv)

    load_dotenv()
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "list":
        return cmd_list(args, settings)
    return cmd_reconcile(args, settings)


if __name__ == "__main__":
    sys.exit(main())
