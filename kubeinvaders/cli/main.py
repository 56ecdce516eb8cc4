"""Click entry point.

Every option is optional; unset options fall back to the KUBEINVADERS_*
environment variables and then to the built-in defaults.
"""

from __future__ import annotations

import asyncio

import click


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Port to serve on [8080].")
@click.option("--host", default=None, help="Address to bind [0.0.0.0].")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level [info].",
)
@click.option(
    "--kubeconfig",
    type=click.Path(dir_okay=False),
    default=None,
    help="Local kubeconfig; in-cluster config is used when the file is absent [~/.kube/config].",
)
@click.option("--namespace", "-n", default=None, help="Only relay pods in this namespace [all].")
@click.option(
    "--static-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Game client bundle served at / [../dist].",
)
@click.version_option(package_name="kubeinvaders")
def cli(
    port: int | None,
    host: str | None,
    log_level: str | None,
    kubeconfig: str | None,
    namespace: str | None,
    static_dir: str | None,
) -> None:
    """Relay Kubernetes pod creations and deletions to the kubeinvaders game."""
    from kubeinvaders.app import main

    try:
        asyncio.run(
            main(
                port=port,
                host=host,
                log_level=log_level,
                kubeconfig=kubeconfig,
                namespace=namespace,
                static_dir=static_dir,
            )
        )
    except ValueError as exc:
        # Invalid KUBEINVADERS_* environment value
        raise click.ClickException(str(exc)) from exc
