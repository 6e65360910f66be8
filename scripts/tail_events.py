#!/usr/bin/env python3
"""
View recent job events from the report event log.

Provides filtered access to the event log written by batch runs, with options
to filter by report name and event type.
"""

import json

import typer

from figreport.utils.event_logging import REPORT_EVENTS_FILE, get_recent_events
from figreport.utils.timestamp import format_timestamp

app = typer.Typer(
    add_completion=False,
    help="View recent report job events",
)


@app.command()
def main(
    n: int = typer.Option(10, "--num", "-n", help="Number of recent events to show"),
    report: str = typer.Option(None, "--report", "-r", help="Filter to events for this report"),
    event_type: str = typer.Option(
        None, "--event-type", "-e", help="Filter to events of this type (e.g., job_failed)"
    ),
    compact: bool = typer.Option(
        False, "--compact", "-c", help="Print one event per line (no pretty formatting)"
    ),
):
    """
    Show the last n events from the report event log.

    Examples:\n

        $ python scripts/tail_events.py                      # Last 10 events

        $ python scripts/tail_events.py -e job_failed        # Last 10 failures

        $ python scripts/tail_events.py -n 5 -r monthly_maps # Last 5 events for one report
    """
    events = get_recent_events(n=n, report_name=report, event_type=event_type)

    if not events:
        typer.secho(f"No events found in {REPORT_EVENTS_FILE}", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    if not compact:
        filters = []
        if report:
            filters.append(f"report={report}")
        if event_type:
            filters.append(f"type={event_type}")
        suffix = f" [{', '.join(filters)}]" if filters else ""
        typer.secho(f"\nShowing last {len(events)} event(s){suffix}:", fg=typer.colors.BLUE)
        typer.echo("")

    for event in events:
        if compact:
            typer.echo(json.dumps(event))
        else:
            stamp = format_timestamp(event.get("timestamp", ""))
            typer.secho(f"{stamp}  {event['event_type']}", bold=True)
            details = {k: v for k, v in event.items() if k not in ("timestamp", "event_type")}
            typer.echo(json.dumps(details, indent=2))
            typer.echo("")


if __name__ == "__main__":
    app()
