import argparse
import json
import logging
import threading
import time
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Use Rich for better CLI output
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.prompt import Confirm

# Project imports
from ..core.controller import CoreController
from ..core.errors import ScannerError
from ..core.models import AuditRecord, BloatCategory, CleanupResult, DuplicateGroup, FileRecord, SafetyTier, ScanResult
from ..modules.config_manager import ConfigManager # Needed for config command
from ..modules.patterns import RULES, rules_for_category
from ..utils.helpers import human_readable_size

logger = logging.getLogger(__name__)
console = Console()

TIER_STYLES = {
    SafetyTier.SAFE: "green",
    SafetyTier.CAUTION: "yellow",
    SafetyTier.DANGEROUS: "bold red",
}

# --- Display Functions ---

def _tier(tier: SafetyTier) -> str:
    style = TIER_STYLES.get(tier, "white")
    return f"[{style}]{tier.value}[/{style}]"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def print_json(data: Any):
    if is_dataclass(data):
        data = asdict(data)
    elif isinstance(data, list):
        data = [asdict(d) if is_dataclass(d) else d for d in data]
    console.print_json(json.dumps(data, default=_json_default))


def display_scan_footer(result: ScanResult):
    """Status line shared by all scans: outcome, elapsed time, issue count."""
    if result.cancelled:
        console.print(f"[bold yellow]Cancelled[/bold yellow] after {result.elapsed_seconds:.1f}s: results below are partial.")
    else:
        console.print(f"[dim]Scan of {result.root} finished in {result.elapsed_seconds:.1f}s.[/dim]")
    if result.issues:
        console.print(f"[yellow]{result.error_count} path(s) could not be read[/yellow]; see the warnings above.")


def display_large_files(files: List[FileRecord], limit: int):
    if not files:
        console.print("[yellow]No large files found.[/yellow]")
        return

    table = Table(title="Large Files", show_header=True, header_style="bold magenta", expand=True)
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Path", style="green", no_wrap=False, ratio=1)
    table.add_column("Size", style="yellow", justify="right", width=10)
    table.add_column("Modified", style="dim", width=20)

    for i, record in enumerate(files[:limit], start=1):
        table.add_row(
            str(i),
            str(record.path),
            human_readable_size(record.size_bytes),
            time.strftime("%Y-%m-%d %H:%M", time.localtime(record.modified_time)),
        )

    console.print(table)
    if len(files) > limit:
        console.print(f"... and {len(files) - limit} more files.")
    total = sum(r.size_bytes for r in files)
    console.print(f"\nTotal: [bold yellow]{human_readable_size(total)}[/bold yellow] in {len(files)} files")


def display_bloat(categories: List[BloatCategory], limit: int, details: bool):
    if not categories:
        console.print("[yellow]No bloat found.[/yellow]")
        return

    table = Table(title="Bloat by Category", show_header=True, header_style="bold magenta", expand=True)
    table.add_column("Category", style="cyan")
    table.add_column("Name")
    table.add_column("Safety", width=10)
    table.add_column("Entries", justify="right", width=8)
    table.add_column("Size", style="yellow", justify="right", width=10)
    for category in categories:
        table.add_row(
            category.category_id,
            category.display_name,
            _tier(category.safety_tier),
            str(len(category.entries)),
            human_readable_size(category.total_size_bytes),
        )
    console.print(table)

    if details:
        for category in categories:
            sub = Table(title=f"{category.display_name} ({category.category_id})", show_header=True, header_style="bold blue", expand=True)
            sub.add_column("Path", style="green", no_wrap=False, ratio=1)
            sub.add_column("Files", justify="right", width=8)
            sub.add_column("Size", style="yellow", justify="right", width=10)
            for entry in category.entries[:limit]:
                sub.add_row(str(entry.path), str(entry.file_count), human_readable_size(entry.size_bytes))
            console.print(sub)
            if len(category.entries) > limit:
                console.print(f"... and {len(category.entries) - limit} more entries.")

    total = sum(c.total_size_bytes for c in categories)
    console.print(f"\nTotal reclaimable: [bold yellow]{human_readable_size(total)}[/bold yellow]")
    console.print("Run 'clean --root <dir> --category <id>' to remove a whole category.")


def display_duplicates(groups: List[DuplicateGroup], limit: int):
    if not groups:
        console.print("[yellow]No duplicate files found.[/yellow]")
        return

    table = Table(title="Duplicate Files", show_header=True, header_style="bold magenta", expand=True)
    table.add_column("Hash", style="dim", width=14)
    table.add_column("Copies", justify="right", width=7)
    table.add_column("Paths", style="green", no_wrap=False, ratio=1)
    table.add_column("Size", justify="right", width=10)
    table.add_column("Savable", style="yellow", justify="right", width=10)

    for group in groups[:limit]:
        table.add_row(
            group.content_hash[:12],
            str(len(group.entries)),
            "\n".join(str(e.path) for e in group.entries),
            human_readable_size(group.size_bytes),
            human_readable_size(group.savable_space_bytes),
        )

    console.print(table)
    if len(groups) > limit:
        console.print(f"... and {len(groups) - limit} more groups.")
    total = sum(g.savable_space_bytes for g in groups)
    console.print(f"\nSavable by keeping one copy of each: [bold yellow]{human_readable_size(total)}[/bold yellow]")


def display_cleanup_result(result: CleanupResult):
    """Displays the results of a cleanup batch."""
    if result.rejected:
        console.print(f"[bold red]Cleanup rejected:[/bold red] {result.rejection_reason}")
        for issue in result.errors:
            console.print(f"  [red]{issue.path}[/red]: {issue.reason}")
        return

    table = Table(title="Cleanup Results", show_header=True, header_style="bold magenta", expand=True)
    table.add_column("Path", no_wrap=False, ratio=1)
    table.add_column("Outcome", style="bold", width=12)
    table.add_column("Details")

    done_label = "[blue]Dry Run[/blue]" if result.dry_run else "[green]Removed[/green]"
    for path in result.deleted:
        table.add_row(path, done_label, "")
    for path, reason in result.skipped:
        table.add_row(path, "[dim]Skipped[/dim]", reason)
    for issue in result.errors:
        table.add_row(issue.path, "[red]Failed[/red]", f"{issue.kind.value}: {issue.reason}")
    console.print(table)

    if result.dry_run:
        console.print(f"\nSummary: Dry run completed. No changes were made. Would free [bold yellow]{human_readable_size(result.bytes_freed)}[/bold yellow].")
    else:
        console.print(f"\nSummary: {len(result.deleted)} removed, {len(result.skipped)} skipped, {len(result.errors)} failed.")
        console.print(f"Total space freed: [bold yellow]{human_readable_size(result.bytes_freed)}[/bold yellow]")

    for issue in result.audit_failures:
        console.print(f"[bold red]Warning:[/bold red] {issue.path} was removed but not recorded in the deletion history ({issue.reason})")


def display_history(records: List[AuditRecord]):
    if not records:
        console.print("  No deletions recorded.")
        return

    table = Table(show_header=True, header_style="bold blue", expand=True)
    table.add_column("Timestamp (UTC)", style="dim", width=20)
    table.add_column("Outcome", width=8)
    table.add_column("Method", width=9)
    table.add_column("Path", no_wrap=False, ratio=1)
    table.add_column("Size", justify="right", width=10)
    table.add_column("Category", style="cyan")
    for record in records:
        outcome = f"[red]{record.outcome}[/red]" if record.outcome == "failed" else record.outcome
        table.add_row(record.timestamp, outcome, record.method, record.path, human_readable_size(record.size_bytes), record.category or "")
    console.print(table)


def display_history_summary(summary: Dict[str, Dict[str, int]], by_category: Optional[Dict[str, Dict[str, int]]] = None):
    _display_stats("Deletion Summary", "Outcome", summary)
    if by_category:
        _display_stats("Freed by Category", "Category", by_category)


def _display_stats(title: str, label: str, stats: Dict[str, Dict[str, int]]):
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column(label, style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Size", style="yellow", justify="right")
    for key, entry in sorted(stats.items()):
        table.add_row(key, str(entry["count"]), human_readable_size(entry["size_bytes"]))
    console.print(table)


def display_rules(category: Optional[str]):
    rules = rules_for_category(category) if category else list(RULES)
    if not rules:
        console.print(f"[yellow]No rules for category '{category}'.[/yellow]")
        return
    table = Table(title="Bloat Rules", show_header=True, header_style="bold magenta", expand=True)
    table.add_column("ID", style="dim")
    table.add_column("Kind")
    table.add_column("Pattern", style="green")
    table.add_column("Category", style="cyan")
    table.add_column("Safety", width=10)
    table.add_column("Description", no_wrap=False, ratio=1)
    for rule in rules:
        table.add_row(rule.id, rule.match_kind.value, rule.pattern, rule.category_id, _tier(rule.safety_tier), rule.description)
    console.print(table)


# --- Scan runner ---

def run_scan(controller: CoreController, description: str, scan: Callable[[], ScanResult]) -> ScanResult:
    """
    Runs a scan on a background thread behind a spinner.

    Ctrl-C cancels the scan instead of killing the process, so the partial
    result can still be shown.
    """
    outcome: Dict[str, Any] = {}

    def target():
        try:
            outcome["result"] = scan()
        except BaseException as e: # Re-raised on the main thread
            outcome["error"] = e

    worker = threading.Thread(target=target, name="scan", daemon=True)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True # Remove progress display on completion
    ) as progress:
        task = progress.add_task(description, total=None) # Indeterminate task
        worker.start()
        while worker.is_alive():
            try:
                worker.join(0.1)
            except KeyboardInterrupt:
                progress.update(task, description=f"{description} (cancelling...)")
                controller.cancel()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


# --- Command Handlers ---

def handle_large(args: argparse.Namespace, controller: CoreController):
    """Handles the 'large' command."""
    result = run_scan(controller, f"Looking for large files in {args.root}...",
                      lambda: controller.scan_large_files(args.root, min_size=args.min_size, follow_symlinks=args.follow_symlinks))
    if args.json:
        print_json(result.items)
    else:
        display_large_files(result.items, args.limit)
    display_scan_footer(result)


def handle_bloat(args: argparse.Namespace, controller: CoreController):
    """Handles the 'bloat' command."""
    result = run_scan(controller, f"Looking for bloat in {args.root}...",
                      lambda: controller.scan_bloat(args.root, min_size=args.min_size, follow_symlinks=args.follow_symlinks))
    if args.json:
        print_json(result.items)
    else:
        display_bloat(result.items, args.limit, args.details)
    display_scan_footer(result)


def handle_dupes(args: argparse.Namespace, controller: CoreController):
    """Handles the 'dupes' command."""
    result = run_scan(controller, f"Looking for duplicate files in {args.root}...",
                      lambda: controller.scan_duplicates(args.root, min_size=args.min_size, follow_symlinks=args.follow_symlinks))
    if args.json:
        print_json(result.items)
    else:
        display_duplicates(result.items, args.limit)
    display_scan_footer(result)


def handle_clean(args: argparse.Namespace, controller: CoreController) -> int:
    """Handles the 'clean' command, including interactive confirmation."""
    paths: List[str] = list(args.paths)
    if args.category:
        result = run_scan(controller, f"Collecting '{args.category}' bloat in {args.root}...",
                          lambda: controller.scan_bloat(args.root, min_size=0))
        if result.cancelled:
            console.print("[yellow]Scan cancelled; nothing removed.[/yellow]")
            return 1
        category = next((c for c in result.items if c.category_id == args.category), None)
        if category is None:
            console.print(f"[yellow]No '{args.category}' bloat found under {args.root}.[/yellow]")
            return 0
        if category.safety_tier is SafetyTier.DANGEROUS and not args.yes:
            console.print(f"[bold red]Category '{args.category}' is marked dangerous.[/bold red]")
        paths.extend(str(e.path) for e in category.entries)

    if not paths:
        console.print("[yellow]Nothing to clean. Give paths or --category.[/yellow]")
        return 1

    use_trash = False if args.permanent else None
    if args.dry_run:
        console.print("\n[bold blue]--- DRY RUN MODE ---[/bold blue]")
        display_cleanup_result(controller.cleanup(paths, scan_root=args.root, dry_run=True, use_trash=use_trash, confirm_root=args.confirm_root))
        return 0

    # Show exactly what would happen before asking
    preview = controller.cleanup(paths, scan_root=args.root, dry_run=True, use_trash=use_trash, confirm_root=args.confirm_root)
    if preview.rejected or not preview.deleted:
        display_cleanup_result(preview)
        return 1 if preview.rejected else 0

    # Interactive Confirmation (if not --yes)
    if not args.yes:
        verb = "Permanently delete" if args.permanent else "Move to trash"
        console.print("\n[bold]Selected for removal:[/bold]")
        for path in preview.deleted:
            console.print(f"  {path}")
        if not Confirm.ask(f"\n{verb} these {len(preview.deleted)} paths ({human_readable_size(preview.bytes_freed)})?", default=False):
            console.print("Clean cancelled.")
            return 0

    console.print("\nRemoving...")
    result = controller.cleanup(preview.deleted, scan_root=args.root, dry_run=False, use_trash=use_trash, confirm_root=args.confirm_root,
                                category=args.category)
    display_cleanup_result(result)
    return 1 if result.rejected or result.errors or result.audit_failures else 0


def handle_history(args: argparse.Namespace, controller: CoreController):
    """Handles the 'history' command."""
    if args.clear:
        if args.yes or Confirm.ask("Erase the deletion history? This cannot be undone.", default=False):
            controller.clear_history()
            console.print("[green]Deletion history cleared.[/green]")
        return
    if args.summary:
        display_history_summary(controller.deletion_summary(), controller.deletion_category_summary())
        return
    console.print("[bold magenta]Recent Deletions:[/bold magenta]")
    display_history(controller.deletion_history(limit=args.limit))


def handle_config(args: argparse.Namespace, config_manager: ConfigManager):
    """Handles the 'config' command."""
    if args.list:
        console.print("[bold magenta]Current Configuration:[/bold magenta]")
        console.print_json(data=config_manager.config)
    elif args.path:
        console.print(str(config_manager.config_path))
    elif args.key:
        value = config_manager.get(args.key)
        if value is None:
            console.print(f"Key '{args.key}' not found.")
        else:
            console.print(f"{args.key}: {value}")
    else:
        # No args, print help for config command
        console.print("[yellow]Usage: config [--list] [--path] [key][/yellow]")


# --- Main CLI Handler ---

def handle_cli_command(args: argparse.Namespace, controller: CoreController, config_manager: ConfigManager) -> int:
    """Dispatches CLI commands to their respective handlers. Returns the process exit code."""
    command = args.command
    try:
        if command == "large":
            handle_large(args, controller)
        elif command == "bloat":
            handle_bloat(args, controller)
        elif command == "dupes":
            handle_dupes(args, controller)
        elif command == "clean":
            return handle_clean(args, controller)
        elif command == "history":
            handle_history(args, controller)
        elif command == "rules":
            display_rules(args.category)
        elif command == "config":
            handle_config(args, config_manager)
        else:
            # Should be caught by argparse 'required=True'
            console.print(f"[red]Unknown command: {command}[/red]")
            return 1
    except ScannerError as e:
        # Expected failures (bad root, bad config, unwritable audit log): no traceback
        logger.error(f"Command '{command}' failed: {e}")
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    return 0
