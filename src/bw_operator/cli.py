#!/usr/bin/env python
"""Command-line interface for bw-operator.

This module provides the main CLI entry point, which loads the
configuration, connects to the cluster and runs the operator.
Every option can also be given as a ``BW_OPERATOR_<OPTION>``
environment variable.
"""

import sys

import click
import kopf
from icecream import ic

from bw_operator import __version__, console
from bw_operator.cluster import Cluster
from bw_operator.config import ENV_CONFIG_PATH, ENV_PREFIX, OperatorConfig, load_config
from bw_operator.core.context import Context
from bw_operator.core.operator import Operator
from bw_operator.exceptions import ClusterConnectionError, ConfigError, CustomResourceNotFoundError


def build_config(config_path: str | None, overrides: dict) -> OperatorConfig:
    """Load the configuration file and apply command-line overrides.

    Args:
        config_path: Path to the YAML configuration file, if any.
        overrides: Option values; None means the option was not given.

    Returns:
        The effective configuration.

    Raises:
        click.ClickException: If the configuration is invalid.

    """
    try:
        return load_config(config_path).merged(overrides)
    except ConfigError as e:
        raise click.ClickException(str(e)) from None


@click.command(
    help="Synchronize BitwardenSecret resources with Kubernetes secrets",
    context_settings={"auto_envvar_prefix": ENV_PREFIX},
)
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
@click.option(
    "--config", "config_path", required=False, envvar=ENV_CONFIG_PATH, help="path to the YAML configuration file"
)
@click.option("--in-cluster", required=False, is_flag=True, default=False, help="use the pod service account")
@click.option("--context", required=False, help="kubeconfig context to use")
@click.option("--namespace", "-n", required=False, help="namespace to watch (default: all)")
@click.option("--workers", required=False, type=int, help="concurrent reconciliations")
@click.option("--requeue-seconds", required=False, type=float, help="delay between periodic reconciliations")
@click.option("--error-requeue-seconds", required=False, type=float, help="delay before retrying a failure")
@click.option("--server-url", required=False, help="Bitwarden server URL")
@click.option("--client-id", required=False, help="Bitwarden API client id")
@click.option("--client-secret", required=False, help="Bitwarden API client secret")
@click.option("--password", required=False, help="Bitwarden master password")
@click.option("--bw-binary", required=False, help="bw binary name or path")
@click.option("--bw-timeout", required=False, type=float, help="timeout of a single bw call in seconds")
def cli(
    version: bool,
    debug: bool,
    config_path: str | None,
    in_cluster: bool,
    context: str | None,
    namespace: str | None,
    workers: int | None,
    requeue_seconds: float | None,
    error_requeue_seconds: float | None,
    server_url: str | None,
    client_id: str | None,
    client_secret: str | None,
    password: str | None,
    bw_binary: str | None,
    bw_timeout: float | None,
) -> None:
    """Process CLI arguments and run the operator.

    Args:
        version: Print version and exit.
        debug: Enable debug output.
        config_path: Path to the YAML configuration file.
        in_cluster: Use the in-cluster service account.
        context: Kubeconfig context to use.
        namespace: Namespace to watch.
        workers: Number of concurrent reconciliations.
        requeue_seconds: Delay between periodic reconciliations.
        error_requeue_seconds: Delay before retrying a failed reconciliation.
        server_url: Bitwarden server URL.
        client_id: Bitwarden API client id.
        client_secret: Bitwarden API client secret.
        password: Bitwarden master password.
        bw_binary: bw binary name or path.
        bw_timeout: Timeout of a single bw call.

    """
    if not debug:
        ic.disable()

    if version:
        click.echo(__version__)
        return

    kopf.configure(verbose=debug)

    settings = build_config(
        config_path,
        {
            "namespace": namespace,
            "workers": workers,
            "requeue_seconds": requeue_seconds,
            "error_requeue_seconds": error_requeue_seconds,
            "server_url": server_url,
            "client_id": client_id,
            "client_secret": client_secret,
            "password": password,
            "bw_binary": bw_binary,
            "bw_timeout": bw_timeout,
        },
    )
    console.summary_panel(f"bw-operator {__version__}", settings.summary())

    try:
        cluster = Cluster(in_cluster=in_cluster, context=context)
        ic(cluster)
        cluster.ensure_custom_resource()
    except (ClusterConnectionError, CustomResourceNotFoundError) as e:
        console.error(f"Cluster connection failed: {e}")
        sys.exit(1)

    operator = Operator(
        Context.from_config(settings),
        namespace=settings.namespace,
        workers=settings.workers,
    )
    ic(operator)
    operator.run()


if __name__ == "__main__":
    cli()
