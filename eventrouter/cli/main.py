"""Click entry point.

Every flag mirrors an ``EVENT_ROUTER_*`` environment variable; a flag left
unset falls through to the environment, then to the built-in default.
Durations accept Go-style strings such as ``90s``, ``3m`` or ``1h30m``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import click

from eventrouter import __version__
from eventrouter.config import load_config, parse_duration


class _Duration(click.ParamType):
    name = "duration"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        try:
            parse_duration(str(value))
        except ValueError:
            self.fail(f"{value!r} is not a valid duration", param, ctx)
        return str(value)


DURATION = _Duration()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="eventrouter")
@click.option("--kubeconfig", default=None, help="Absolute path to the kubeconfig file.")
@click.option("--debug/--no-debug", default=None, help="Enable debug logging and HTTP tracing.")
@click.option("--insecure/--no-insecure", default=None, help="Skip TLS verification on notification endpoints.")
@click.option("--namespace", default=None, help="Namespace to watch (default: all namespaces).")
@click.option("--resync-interval", type=DURATION, default=None, help="Informer resync period (default 3m).")
@click.option("--throttle-period", type=DURATION, default=None, help="Ignore events older than this (0 disables).")
@click.option("--sync-timeout", type=DURATION, default=None, help="Deadline for the initial event list (default 60s).")
@click.option(
    "--event-timeout",
    type=DURATION,
    default=None,
    help="Bound on lookup, patch and registration listing per event (default 60s, 0 disables).",
)
@click.option("--accept-groups", default=None, help="Comma-separated API groups to admit (default: all).")
@click.option("--accept-kinds", default=None, help="Comma-separated kinds to admit (default: all).")
@click.option("--reject-kinds", default=None, help="Comma-separated kinds to drop; empty string clears the default list.")
@click.option("--max-owner-depth", type=int, default=None, help="Owner reference hops before giving up (1-64, default 10).")
@click.option("--queue-max-capacity", type=int, default=None, help="Dispatch queue capacity (default 10).")
@click.option("--queue-worker-threads", type=int, default=None, help="Concurrent deliveries (default 50).")
@click.option("--delivery-timeout", type=DURATION, default=None, help="Per-request HTTP timeout (default 40s).")
@click.option("--notification-url", default=None, help="Single fixed endpoint; disables the registration directory.")
@click.option("--registration-namespace", default=None, help="Namespace to read registrations from.")
@click.option("--api-port", type=int, default=None, help="Probe and metrics port (0 disables).")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
def cli(**options: Any) -> None:
    """Route Kubernetes events to registered notification endpoints."""
    from eventrouter.app import main

    try:
        config = load_config(options)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    asyncio.run(main(config))
