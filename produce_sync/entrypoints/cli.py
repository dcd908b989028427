from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from produce_sync.bootstrap.container import AppContainer, build_container
from produce_sync.bootstrap.exception_handler import handle_global_exception, install_asyncio_exception_handler
from produce_sync.bootstrap.logging import configure_logging, install_exception_hook
from produce_sync.bootstrap.settings import SyncSettings, load_settings, resolve_log_dir
from produce_sync.core.metrics import metrics_registry
from produce_sync.domain.models import RemoteConfig
from produce_sync.domain.sync_models import CycleResult
from produce_sync.infrastructure.connectivity_probe import SocketReachabilityProbe
from produce_sync.infrastructure.db import get_connection
from produce_sync.infrastructure.migrations import MigrationRunner
from produce_sync.infrastructure.remote_config import RemoteConfigStore

logger = logging.getLogger("produce_sync.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_OFFLINE = 2
EXIT_UNEXPECTED = 3


def _print_json(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2, default=str) + "\n")


def _cmd_pending(args: argparse.Namespace, settings: SyncSettings) -> int:
    container = build_container(settings)
    try:
        orders = container.offline_queue.list_pending()
        _print_json({"count": len(orders), "orders": [order.to_dict() for order in orders]})
    finally:
        container.close()
    return EXIT_OK


def _cmd_discard(args: argparse.Namespace, settings: SyncSettings) -> int:
    container = build_container(settings)
    try:
        removed = container.order_submission.discard(args.order_id)
    finally:
        container.close()
    if not removed:
        sys.stderr.write(f"Pedido {args.order_id} não está na fila.\n")
        return EXIT_FAILED
    return EXIT_OK


async def _run_sync_cycle(container: AppContainer) -> CycleResult | None:
    install_asyncio_exception_handler(asyncio.get_running_loop())
    return await container.sync_service.sync_now()


def _cmd_sync(args: argparse.Namespace, settings: SyncSettings) -> int:
    remote_config = RemoteConfigStore(settings.data_dir).load()
    probe = SocketReachabilityProbe(remote_config.url if remote_config else None)
    if not probe.check(timeout_seconds=args.timeout):
        _print_json({"online": False})
        return EXIT_OFFLINE

    container = build_container(settings, initially_online=True)
    try:
        result = asyncio.run(_run_sync_cycle(container))
    finally:
        container.close()

    result = result or CycleResult()
    _print_json({"online": True, **result.to_dict(), "metrics": metrics_registry.snapshot()})
    return EXIT_OK if result.errors == 0 else EXIT_FAILED


def _cmd_report(args: argparse.Namespace, settings: SyncSettings) -> int:
    container = build_container(settings)
    try:
        orders = container.offline_queue.list_pending()
        if not orders:
            sys.stderr.write("Nenhum pedido pendente.\n")
            return EXIT_FAILED
        destination = container.pending_orders_report.build_report(orders, Path(args.path))
    finally:
        container.close()
    sys.stdout.write(f"{destination}\n")
    return EXIT_OK


def _cmd_configure(args: argparse.Namespace, settings: SyncSettings) -> int:
    store = RemoteConfigStore(settings.data_dir)
    current = store.load()
    saved = store.save(
        RemoteConfig(url=args.url, anon_key=args.key, device_id=current.device_id if current else "")
    )
    logger.info("Backend configured url=%s device_id=%s", saved.url, saved.device_id)
    sys.stdout.write(f"{store.config_path}\n")
    return EXIT_OK


def _cmd_migrate(args: argparse.Namespace, settings: SyncSettings) -> int:
    connection = get_connection(settings.db_path)
    try:
        runner = MigrationRunner(connection)
        if args.migrate_command == "up":
            _print_json({"applied": runner.apply_all()})
        elif args.migrate_command == "down":
            _print_json({"rolled_back": runner.rollback(args.steps)})
        else:
            for item in runner.status():
                marker = "[x]" if item["applied"] else "[ ]"
                sys.stdout.write(f"{marker} {item['version']:04d} {item['name']}\n")
    finally:
        connection.close()
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="produce_sync", description="Fila offline e sincronização de pedidos")
    parser.add_argument("--db", help="Caminho alternativo para o arquivo SQLite")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pending = subparsers.add_parser("pending", help="Lista pedidos na fila offline")
    pending.set_defaults(handler=_cmd_pending)

    discard = subparsers.add_parser("discard", help="Remove um pedido da fila offline")
    discard.add_argument("order_id")
    discard.set_defaults(handler=_cmd_discard)

    sync = subparsers.add_parser("sync", help="Executa um ciclo de sincronização")
    sync.add_argument("--timeout", type=float, default=3.0, help="Tempo limite do teste de conexão (s)")
    sync.set_defaults(handler=_cmd_sync)

    report = subparsers.add_parser("report", help="Gera PDF dos pedidos pendentes")
    report.add_argument("path")
    report.set_defaults(handler=_cmd_report)

    configure = subparsers.add_parser("configure", help="Configura o backend remoto")
    configure.add_argument("--url", required=True)
    configure.add_argument("--key", required=True)
    configure.set_defaults(handler=_cmd_configure)

    migrate = subparsers.add_parser("migrate", help="Gerencia migrações SQLite")
    migrate.add_argument("migrate_command", choices=["up", "down", "status"])
    migrate.add_argument("--steps", type=int, default=1, help="Número de migrações a reverter")
    migrate.set_defaults(handler=_cmd_migrate)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)

    settings = load_settings()
    if args.db:
        settings = replace(settings, db_path=Path(args.db))
    logger.info("Command started", extra={"extra": {"command": args.command}})
    try:
        return args.handler(args, settings)
    except Exception:
        incident_id = handle_global_exception(*sys.exc_info())
        sys.stderr.write(f"Erro inesperado. Incidente: {incident_id}\n")
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    raise SystemExit(main())
