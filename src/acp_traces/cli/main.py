"""acp-traces CLI - OpenTelemetry tracing proxy for the Agent Client Protocol."""

import asyncio
from pathlib import Path
from typing import Any

import click

from acp_traces.config.loader import load_config
from acp_traces.core.errors import AcpTracesError
from acp_traces.core.logging import configure_logging, verbosity_to_level
from acp_traces.proxy.runner import run_proxy


def _overrides(
    otlp_endpoint: str | None,
    otlp_protocol: str | None,
    service_name: str | None,
    record_content: bool,
    verbose: int,
) -> dict[str, Any]:
    """Config kwargs for the options actually given on the command line."""
    telemetry: dict[str, Any] = {}
    if otlp_endpoint is not None:
        telemetry["otlp_endpoint"] = otlp_endpoint
    if otlp_protocol is not None:
        telemetry["otlp_protocol"] = otlp_protocol
    if service_name is not None:
        telemetry["service_name"] = service_name
    if record_content:
        telemetry["record_content"] = True

    overrides: dict[str, Any] = {}
    if telemetry:
        overrides["telemetry"] = telemetry
    if verbose:
        overrides["logging"] = {"level": verbosity_to_level(verbose)}
    return overrides


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.version_option(package_name="acp-traces", prog_name="acp-traces")
@click.option("--otlp-endpoint", default=None, help="OTLP endpoint [default: http://localhost:4317]")
@click.option(
    "--otlp-protocol",
    type=click.Choice(["grpc", "http"]),
    default=None,
    help="OTLP transport [default: grpc]",
)
@click.option("--service-name", default=None, help="OTel service name [default: acp-agent]")
@click.option(
    "--record-content",
    is_flag=True,
    help="Record prompts, agent output and tool payloads (contains sensitive data)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file [default: ~/.config/acp-traces/config.yaml]",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv)")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def cli(
    ctx: click.Context,
    otlp_endpoint: str | None,
    otlp_protocol: str | None,
    service_name: str | None,
    record_content: bool,
    config_path: Path | None,
    verbose: int,
    command: tuple[str, ...],
) -> None:
    """Run COMMAND as an ACP agent and trace the traffic between it and the editor.

    Everything after COMMAND is passed to the agent untouched. Stdin and stdout
    are forwarded byte for byte; logs go to stderr. Exits with the agent's
    exit code.
    """
    try:
        config = load_config(
            config_path,
            **_overrides(otlp_endpoint, otlp_protocol, service_name, record_content, verbose),
        )
    except AcpTracesError as e:
        raise click.ClickException(str(e)) from e

    configure_logging(config=config.logging)

    try:
        code = asyncio.run(run_proxy(list(command), config))
    except AcpTracesError as e:
        raise click.ClickException(str(e)) from e

    ctx.exit(code)


if __name__ == "__main__":
    cli()
