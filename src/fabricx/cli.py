import logging
import os

import click
from rich.logging import RichHandler

from .cancellation import CancellationToken
from .core import FabricXService, console
from .errors import FabricXError
from .grpc_server import serve as serve_grpc
from .models import RuntimeSettings
from .registry import NetworkRegistry
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_NAME = ".fabricx.yml"
CHECK_TIMEOUT = 60.0


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _load_config(config):
    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path
        return ConfigLoader().load(resolved_config)
    except FabricXError as exc:
        raise click.ClickException(str(exc)) from exc


def _configure_logging(verbose: bool, log_file) -> logging.Logger:
    logger = logging.getLogger("fabricx")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)
    return logger


def _compose_command(value):
    if value is None:
        return None
    if isinstance(value, str):
        return value.split()
    return [str(part) for part in value]


def build_settings(config_values, **cli_values) -> RuntimeSettings:
    defaults = RuntimeSettings()
    timeout = _resolve_option(cli_values.get("command_timeout"), config_values, "command_timeout")
    return RuntimeSettings(
        host=str(_resolve_option(cli_values.get("host"), config_values, "host", default=defaults.host)),
        port=int(_resolve_option(cli_values.get("port"), config_values, "port", default=defaults.port)),
        max_workers=int(
            _resolve_option(cli_values.get("max_workers"), config_values, "max_workers", default=defaults.max_workers)
        ),
        work_dir=str(_resolve_option(cli_values.get("work_dir"), config_values, "work_dir", default=defaults.work_dir)),
        tools_image=str(
            _resolve_option(cli_values.get("tools_image"), config_values, "tools_image", default=defaults.tools_image)
        ),
        compose_command=_compose_command(
            _resolve_option(cli_values.get("compose_command"), config_values, "compose_command")
        ),
        command_timeout=float(timeout) if timeout is not None else None,
        readiness_timeout=float(
            _resolve_option(
                cli_values.get("readiness_timeout"),
                config_values,
                "readiness_timeout",
                default=defaults.readiness_timeout,
            )
        ),
        readiness_interval=float(
            _resolve_option(None, config_values, "readiness_interval", default=defaults.readiness_interval)
        ),
        join_settle_seconds=float(
            _resolve_option(None, config_values, "join_settle_seconds", default=defaults.join_settle_seconds)
        ),
        pull_images=bool(
            _resolve_option(cli_values.get("pull_images"), config_values, "pull_images", default=defaults.pull_images)
        ),
        cleanup_on_shutdown=bool(
            _resolve_option(
                cli_values.get("cleanup_on_shutdown"),
                config_values,
                "cleanup_on_shutdown",
                default=defaults.cleanup_on_shutdown,
            )
        ),
    )


@click.group()
def main():
    """Local Hyperledger Fabric network runtime served over gRPC."""


@main.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.",
)
@click.option("--host", required=False, help="Address to bind the gRPC server to (default: 0.0.0.0).")
@click.option("--port", required=False, type=int, default=None, help="gRPC port (default: 50051).")
@click.option("--max-workers", required=False, type=int, default=None, help="Concurrent RPC worker threads.")
@click.option("--work-dir", required=False, type=click.Path(), help="Directory holding network artifacts.")
@click.option("--tools-image", required=False, help="Fabric tools image used for generation and packaging.")
@click.option("--compose-command", required=False, help="Compose command, e.g. 'docker compose'.")
@click.option("--command-timeout", required=False, type=float, default=None, help="Timeout for each external command.")
@click.option("--readiness-timeout", required=False, type=float, default=None, help="Seconds to wait for readiness.")
@click.option("--pull-images", is_flag=True, default=None, help="Pull Fabric images before serving.")
@click.option(
    "--cleanup-on-shutdown",
    is_flag=True,
    default=None,
    help="Remove volumes and artifacts of every network on shutdown.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
def serve(
    config,
    host,
    port,
    max_workers,
    work_dir,
    tools_image,
    compose_command,
    command_timeout,
    readiness_timeout,
    pull_images,
    cleanup_on_shutdown,
    verbose,
    log_file,
):
    """Run the FabricX gRPC server."""
    config_values = _load_config(config)
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    logger = _configure_logging(verbose, log_file)

    settings = build_settings(
        config_values,
        host=host,
        port=port,
        max_workers=max_workers,
        work_dir=work_dir,
        tools_image=tools_image,
        compose_command=compose_command,
        command_timeout=command_timeout,
        readiness_timeout=readiness_timeout,
        pull_images=pull_images,
        cleanup_on_shutdown=cleanup_on_shutdown,
    )

    service = FabricXService(registry=NetworkRegistry(), settings=settings, logger=logger, console=console)
    try:
        service.prepare()
        exit_code = serve_grpc(
            service,
            host=settings.host,
            port=settings.port,
            max_workers=settings.max_workers,
            console=console,
        )
    except FabricXError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(exit_code)


@main.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.",
)
@click.option("--compose-command", required=False, help="Compose command, e.g. 'docker compose'.")
@click.option("--pull-images", is_flag=True, default=None, help="Also pull the Fabric images.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
def check(config, compose_command, pull_images, verbose):
    """Verify that docker and docker compose are usable."""
    config_values = _load_config(config)
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    logger = _configure_logging(verbose, _resolve_option(None, config_values, "log_file"))
    settings = build_settings(config_values, compose_command=compose_command, pull_images=pull_images)

    service = FabricXService(registry=NetworkRegistry(), settings=settings, logger=logger, console=console)
    try:
        service.prepare(CancellationToken.with_timeout(None if settings.pull_images else CHECK_TIMEOUT))
    except FabricXError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print("[bold green]Environment OK.[/bold green]")


if __name__ == "__main__":
    main()
