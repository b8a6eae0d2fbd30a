from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from bomsync.backend import BackendOperationFailed, FileIOFailed
from bomsync.backend.local import LocalBackend
from bomsync.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, default_config, load_config
from bomsync.logging.activity_log import ActivityLogBuffer
from bomsync.logging.init import log_summary, setup_logging
from bomsync.services.orchestrator import ComparisonOrchestrator, PreconditionNotMet
from bomsync.services.progress import ProgressTracker
from bomsync.services.session_store import SessionStore
from bomsync.services.session_sync import SessionSyncBridge
from bomsync.services.summary import render_summary_line
from bomsync.services.workspace import Workspace
from bomsync.storage.adapter import FileStorage
from bomsync.storage.backup import export_backup, import_backup
from bomsync.storage.repository import ProjectRepository
from bomsync.tables.preprocess import PreprocessOptions

"""CLI entrypoint.

Commands:
- compare A B [--report PATH]             diff two part lists (nothing persisted)
- replace A B --output PATH [--project-name NAME]
                                          merge B into A inside a saved project
  (compare / replace: --expand-ref --split-ref --fill-blank --cleanse preprocess
  both datasets after loading)
- projects list|new|delete|rename|favorite
- backup export|import PATH

Exit codes: 0 success / no differences, 2 differences found, 1 fatal.
"""

EXIT_SUCCESS = 0
EXIT_DIFFERENCES = 2
EXIT_FATAL = 1


@dataclass
class SessionContext:
    """Everything one CLI "window" needs, wired together."""
    config: AppConfig
    backend: LocalBackend
    workspace: Workspace
    repository: ProjectRepository
    store: SessionStore
    orchestrator: ComparisonOrchestrator
    bridge: SessionSyncBridge
    activity: ActivityLogBuffer

    def close(self) -> None:
        self.store.close()
        self.bridge.detach()
        self.activity.flush()


def open_session(config: AppConfig) -> SessionContext:
    backend = LocalBackend()
    workspace = Workspace()
    repository = ProjectRepository(FileStorage(config.storage_directory))
    activity = ActivityLogBuffer(config.logs_directory)
    store = SessionStore(
        repository,
        workspace,
        autosave_delay=config.autosave_delay_seconds,
        project_limit=config.project_limit,
        activity=activity,
    )
    orchestrator = ComparisonOrchestrator(backend, workspace, save_session=store.save_project)
    bridge = SessionSyncBridge(store, orchestrator)
    store.initialize()
    return SessionContext(config, backend, workspace, repository, store, orchestrator, bridge, activity)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env (BOMSYNC_STORAGE_DIR etc.) with python-dotenv."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _add_preprocess_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("preprocessing (applied to both datasets)")
    group.add_argument("--expand-ref", action="store_true", help="Expand Ref ranges (C1-C5)")
    group.add_argument("--split-ref", action="store_true", help="One row per comma-separated Ref")
    group.add_argument("--fill-blank", action="store_true", help="Fill blank cells from the row above")
    group.add_argument("--cleanse", action="store_true", help="Drop parentheses, full-width -> half-width")


def _preprocess_options(args: argparse.Namespace) -> PreprocessOptions:
    return PreprocessOptions(
        expand_ref=args.expand_ref,
        split_ref=args.split_ref,
        fill_blank=args.fill_blank,
        cleanse=args.cleanse,
    )


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="bomsync", description="BOM comparison and project sessions")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help="Config file (default: config/bomsync.yml)")
    sub = p.add_subparsers(dest="command", required=True)

    compare = sub.add_parser("compare", help="Compare dataset A with dataset B")
    compare.add_argument("file_a", type=Path)
    compare.add_argument("file_b", type=Path)
    compare.add_argument("--report", type=Path, default=None, help="Write the diff report as CSV")
    _add_preprocess_args(compare)

    replace = sub.add_parser("replace", help="Update A with B and append B's new rows")
    replace.add_argument("file_a", type=Path)
    replace.add_argument("file_b", type=Path)
    replace.add_argument("--output", type=Path, required=True, help="Merged dataset CSV (with status)")
    replace.add_argument("--project-name", default=None)
    _add_preprocess_args(replace)

    projects = sub.add_parser("projects", help="Manage saved projects (tabs)")
    psub = projects.add_subparsers(dest="action", required=True)
    psub.add_parser("list")
    new = psub.add_parser("new")
    new.add_argument("--name", default=None)
    delete = psub.add_parser("delete")
    delete.add_argument("project_id")
    rename = psub.add_parser("rename")
    rename.add_argument("project_id")
    rename.add_argument("name")
    favorite = psub.add_parser("favorite")
    favorite.add_argument("project_id")

    backup = sub.add_parser("backup", help="Export / import every saved project")
    bsub = backup.add_subparsers(dest="action", required=True)
    bexport = bsub.add_parser("export")
    bexport.add_argument("path", type=Path)
    bimport = bsub.add_parser("import")
    bimport.add_argument("path", type=Path)
    return p.parse_args(argv)


def _resolve_config(path: Path | None) -> AppConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _load_pair(
    orchestrator: ComparisonOrchestrator,
    tracker: ProgressTracker,
    args: argparse.Namespace,
) -> None:
    options = _preprocess_options(args)
    for key, path in (("a", args.file_a), ("b", args.file_b)):
        tracker.start_step(path)
        orchestrator.load_file(key, path)
        if options.any_enabled:
            orchestrator.preprocess(key, options)
        tracker.finish_step()


def _emit_summary(orchestrator: ComparisonOrchestrator) -> int:
    counts = orchestrator.status_counts()
    line = render_summary_line(orchestrator.result_mode, orchestrator.result_row_count(), counts)
    # log_summary が "SUMMARY " を付与するので本文のみ渡す
    log_summary(line[len("SUMMARY "):])
    return EXIT_DIFFERENCES if counts.has_differences else EXIT_SUCCESS


def _run_compare(args: argparse.Namespace) -> int:
    orchestrator = ComparisonOrchestrator(LocalBackend(), Workspace())
    with ProgressTracker(3) as tracker:
        _load_pair(orchestrator, tracker, args)
        tracker.start_step("compare")
        orchestrator.compare()
        tracker.finish_step()
    if args.report is not None:
        orchestrator.export_report(args.report)
    return _emit_summary(orchestrator)


def _run_replace(ctx: SessionContext, args: argparse.Namespace) -> int:
    record = ctx.store.create_project(args.project_name)
    with ProgressTracker(3) as tracker:
        _load_pair(ctx.orchestrator, tracker, args)
        tracker.start_step("replace")
        ctx.orchestrator.replace()
        tracker.finish_step()
    ctx.store.save_project()
    ctx.orchestrator.export_report(args.output)
    print(record.id)
    return _emit_summary(ctx.orchestrator)


def _run_projects(ctx: SessionContext, args: argparse.Namespace) -> int:
    logger = setup_logging()
    store = ctx.store
    if args.action == "list":
        for record in store.projects:
            flags = "*" if record.id == store.active_project_id else " "
            flags += "F" if store.is_favorite(record.id) else " "
            print(f"{flags} {record.id}\t{record.display_name}\t{record.updated_at}")
        for project_id in store.favorites:
            if store.get_project(project_id) is None:
                archived = store.archive.get(project_id)
                name = archived.display_name if archived is not None else "?"
                print(f" F {project_id}\t{name}\t(archived)")
        return EXIT_SUCCESS
    if args.action == "new":
        record = store.create_project(args.name)
        print(record.id)
        return EXIT_SUCCESS
    if args.action == "delete":
        if not store.delete_project(args.project_id):
            logger.error(f"project not found: {args.project_id}")
            return EXIT_FATAL
        return EXIT_SUCCESS
    if args.action == "rename":
        if not store.rename_project(args.project_id, args.name):
            logger.error(f"project not found: {args.project_id}")
            return EXIT_FATAL
        return EXIT_SUCCESS
    if args.action == "favorite":
        if store.get_project(args.project_id) is None and args.project_id not in store.archive:
            logger.error(f"project not found: {args.project_id}")
            return EXIT_FATAL
        state = store.toggle_favorite(args.project_id)
        print("favorited" if state else "unfavorited")
        return EXIT_SUCCESS
    return EXIT_FATAL


def _run_backup(ctx: SessionContext, args: argparse.Namespace) -> int:
    if args.action == "export":
        export_backup(ctx.repository, args.path, ctx.backend)
        return EXIT_SUCCESS
    contents = import_backup(ctx.repository, args.path, ctx.backend)
    ctx.activity.record(contents.active_id, "imported", f"imported backup {args.path.name}")
    ctx.store.initialize()
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみ sys.argv を読む (テストで main([]) を呼ぶケース)
    if argv is None:
        argv = sys.argv[1:]
    try:
        args = _parse_args(argv)
    except SystemExit as e:
        return EXIT_SUCCESS if e.code == 0 else EXIT_FATAL

    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = _resolve_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        if args.command == "compare":
            return _run_compare(args)
        ctx = open_session(cfg)
        try:
            if args.command == "replace":
                return _run_replace(ctx, args)
            if args.command == "projects":
                return _run_projects(ctx, args)
            return _run_backup(ctx, args)
        finally:
            ctx.close()
    except PreconditionNotMet as e:
        logger.error(f"precondition: {e}")
    except BackendOperationFailed as e:
        logger.error(f"backend: {e}")
    except FileIOFailed as e:
        logger.error(f"file: {e}")
    except OSError as e:
        logger.error(f"io: {e}")
    return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
