import asyncio
import logging
import os
import sys
from typing import Optional

import click
import requests
from pydantic import ValidationError

from .config import load_browsers, load_config, load_credentials, load_sauce_config, parse_browser
from .exceptions import SaucerunError
from .models import Framework, format_platform
from .notifications import (
    JobCompleted,
    JobErrored,
    JobStarted,
    Notification,
    Retrying,
    TestRunCompleted,
    TunnelClosing,
    TunnelLog,
    TunnelOpened,
    TunnelOpening,
)
from .coordinator import run_task
from .sauce_client import SauceClient

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

TUNNEL_LOG_COLORS = {"error": "red", "ok": "green", "debug": "bright_black"}


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=(level or os.getenv("LOG_LEVEL", "WARNING")).upper(), format=LOG_FORMAT)


def report_progress(notification: Notification, verbose: bool = False) -> None:
    """Render one notification on the console."""
    if isinstance(notification, (TunnelOpening, TunnelClosing)):
        click.echo(click.style(notification.describe(), bold=True, reverse=True))
    elif isinstance(notification, TunnelOpened):
        click.echo(click.style(f">> {notification.describe()}", fg="green"))
    elif isinstance(notification, TunnelLog):
        if notification.verbose and not verbose:
            return
        color = TUNNEL_LOG_COLORS.get(notification.channel)
        click.echo(click.style(notification.text, fg=color) if color else notification.text,
                   nl=notification.channel != "write")
    elif isinstance(notification, JobStarted):
        click.echo(f"\n{notification.describe()}")
    elif isinstance(notification, JobCompleted):
        status_color = "green" if notification.passed else "red"
        click.echo(click.style(f"\nTested {notification.url}", underline=True))
        click.echo(f"Platform: {format_platform(notification.platform)}")
        if notification.port_warning:
            click.echo(click.style(
                "Warning: This url might use a port that is not proxied by Sauce Connect.", fg="yellow"))
        click.echo(f"Passed: {click.style(str(notification.passed), fg=status_color)}")
        click.echo(f"Url {click.style(str(notification.job_url), fg='blue')}")
    elif isinstance(notification, JobErrored):
        click.echo(click.style(f"✗ {notification.describe()}", fg="red"), err=True)
    elif isinstance(notification, Retrying):
        click.echo(click.style(notification.describe(), fg="yellow"))
    elif isinstance(notification, TestRunCompleted):
        color = "green" if notification.passed else "red"
        mark = "✓" if notification.passed else "✗"
        click.echo(click.style(f"{mark} {notification.describe()}", fg=color))
    else:
        click.echo(click.style(f"Unexpected notification type: {notification.kind}", fg="red"), err=True)


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to $LOG_LEVEL or WARNING)")
def cli(log_level):
    """Sauce Labs browser test runner - run test pages and report one verdict"""
    configure_logging(log_level)


@cli.command()
@click.option("--framework", required=True,
              type=click.Choice([f.value for f in Framework]),
              help="Test framework used by the page")
@click.option("--url", "urls", multiple=True, required=True, help="Test page URL (repeatable)")
@click.option("--browser", "browsers", multiple=True, help="Platform as OS,browser,version (repeatable)")
@click.option("--browsers-file", type=click.Path(exists=True, dir_okay=False),
              help="JSON list of browser triples or records")
@click.option("--build", help="Build label")
@click.option("--tag", "tags", multiple=True, help="Job tag (repeatable)")
@click.option("--name", "test_name", help="Job display name")
@click.option("--public", help="Job visibility (default: team)")
@click.option("--tunnel/--no-tunnel", "tunneled", default=True, help="Open a Sauce Connect tunnel")
@click.option("--tunnel-identifier", help="Sauce Connect tunnel identifier")
@click.option("--tunnel-arg", "tunnel_args", multiple=True, help="Extra argument for Sauce Connect (repeatable)")
@click.option("--sauce-config", help="JSON object (or path to a JSON file) merged into every job submission")
@click.option("--poll-interval", type=float, help="Seconds between status polls")
@click.option("--status-check-attempts", type=int, help="Status polls per job (<= 0 polls forever)")
@click.option("--max-retries", type=int, help="Whole-run retries after a failed batch")
@click.option("--throttled", type=int, help="Maximum concurrently running jobs")
@click.option("--verbose", "-v", is_flag=True, help="Show verbose tunnel output")
def run(framework, urls, browsers, browsers_file, build, tags, test_name, public, tunneled,
        tunnel_identifier, tunnel_args, sauce_config, poll_interval, status_check_attempts, max_retries,
        throttled, verbose):
    """Run test pages on every requested browser"""
    try:
        browser_specs = [parse_browser(b) for b in browsers]
        if browsers_file:
            browser_specs.extend(load_browsers(browsers_file))

        config = load_config(
            framework=framework,
            urls=list(urls),
            browsers=browser_specs,
            build=build,
            tags=list(tags) if tags else None,
            test_name=test_name,
            public=public,
            tunneled=tunneled,
            tunnel_identifier=tunnel_identifier,
            tunnel_args=list(tunnel_args) if tunnel_args else None,
            sauce_config=load_sauce_config(sauce_config) if sauce_config else None,
            poll_interval=poll_interval,
            status_check_attempts=status_check_attempts,
            max_retries=max_retries,
            throttled=throttled,
        )
    except (ValueError, ValidationError) as e:
        click.echo(click.style(f"✗ Invalid configuration: {e}", fg="red"), err=True)
        sys.exit(1)

    try:
        passed = asyncio.run(run_task(config, lambda n: report_progress(n, verbose)))
    except KeyboardInterrupt:
        click.echo(click.style("\n✗ Run cancelled by user", fg="red"), err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(click.style(f"✗ {type(e).__name__}: {e}", fg="red"), err=True)
        sys.exit(1)

    if not passed:
        sys.exit(1)


def _admin_call(action: str, job_id: str, method: str, path: str, data=None) -> None:
    try:
        username, access_key = load_credentials()
        with SauceClient(username, access_key) as client:
            client.request_sync(method, path, json=data)
        click.echo(click.style(f"✓ Job {job_id} {action}", fg="green"))
    except ValueError as e:
        click.echo(click.style(f"✗ {e}", fg="red"), err=True)
        sys.exit(1)
    except SaucerunError as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)
    except requests.exceptions.Timeout:
        click.echo(click.style("✗ Request timed out", fg="red"), err=True)
        sys.exit(1)
    except requests.exceptions.ConnectionError:
        click.echo(click.style("✗ Cannot connect to the Sauce Labs API", fg="red"), err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(click.style(f"✗ Unexpected error: {e}", fg="red"), err=True)
        sys.exit(1)


@cli.command()
@click.option("--job-id", required=True, help="Sauce Labs job id")
def stop(job_id):
    """Stop a running job"""
    _admin_call("stopped", job_id, "PUT", f"jobs/{job_id}/stop")


@cli.command()
@click.option("--job-id", required=True, help="Sauce Labs job id")
def delete(job_id):
    """Delete a job"""
    _admin_call("deleted", job_id, "DELETE", f"jobs/{job_id}")


@cli.command("set-status")
@click.option("--job-id", required=True, help="Sauce Labs job id")
@click.option("--passed/--failed", default=True, show_default=True, help="Verdict to record")
def set_status(job_id, passed):
    """Override the pass/fail status recorded for a job"""
    _admin_call(f"marked {'passed' if passed else 'failed'}", job_id, "PUT", f"jobs/{job_id}", {"passed": passed})


def main():
    cli()


if __name__ == "__main__":
    main()
