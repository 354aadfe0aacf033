"""
Rich console UI for tourney

Draws the dashboard from a DashboardSnapshot: a one-line header with system
status and key hints, an operations panel with progress bars, the recent
events panel and an auto-train footer. The render scheduler decides when to
draw; this module only decides what a frame looks like.
"""

import logging
from typing import Optional, Dict, Any

from rich import box
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from tourney import __version__
from tourney.dashboard.kinds import OperationKind, OperationStatus
from tourney.dashboard.state import DashboardSnapshot, OperationState
from tourney.dashboard.system_info import SystemInfo

logger = logging.getLogger(__name__)

# Retro theme color palette
RETRO_THEME = {
    'primary': 'magenta',
    'secondary': 'cyan',
    'accent': 'bright_magenta',
    'success': 'bright_green',
    'muted': 'dim cyan',
    'warning': 'yellow',
    'error': 'red'
}

EVENT_STYLES = {
    'info': RETRO_THEME['secondary'],
    'success': RETRO_THEME['success'],
    'warning': RETRO_THEME['warning'],
    'error': RETRO_THEME['error'],
}

EVENT_ICONS = {
    'info': 'ℹ',
    'success': '✓',
    'warning': '⚠',
    'error': '✗',
}

STATUS_STYLES = {
    OperationStatus.IDLE: 'dim',
    OperationStatus.RUNNING: f"bold {RETRO_THEME['secondary']}",
    OperationStatus.COMPLETE: RETRO_THEME['success'],
    OperationStatus.FAILED: RETRO_THEME['error'],
}

SPINNER_FRAMES = ['⠋', '⠙', '⠹', '⠸', '⠼', '⠴', '⠦', '⠧', '⠇', '⠏']


def describe_metadata(operation: OperationState) -> str:
    """Format the interesting parts of an operation's metadata on one line."""
    meta = operation.metadata
    parts = []
    if meta.get('file'):
        parts.append(str(meta['file']))
    if meta.get('model'):
        parts.append(str(meta['model']))
    if 'current_mb' in meta and 'total_mb' in meta:
        parts.append(f"{meta['current_mb']:.1f}/{meta['total_mb']:.1f} MB")
    if meta.get('speed_mb'):
        parts.append(f"{meta['speed_mb']:.1f} MB/s")
    if 'epoch' in meta:
        total = meta.get('total_epochs')
        parts.append(f"epoch {meta['epoch']}/{total}" if total else f"epoch {meta['epoch']}")
    if 'loss' in meta:
        parts.append(f"loss {meta['loss']:.4f}")
    if 'rows' in meta:
        total = meta.get('total_rows')
        parts.append(f"{meta['rows']}/{total} rows" if total else f"{meta['rows']} rows")
    if operation.status is OperationStatus.FAILED and operation.last_error is not None:
        parts.append(operation.last_error.message)
    return " | ".join(parts)


def describe_system(info: SystemInfo) -> str:
    """Format a host resource sample for the header."""
    minutes, seconds = divmod(int(info.uptime_seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return (
        f"CPU {info.cpu_percent:.0f}% | "
        f"Mem {info.memory_used_gb:.1f}/{info.memory_total_gb:.1f} GB | "
        f"Up {hours}:{minutes:02d}:{seconds:02d} | "
        f"{info.active_models} model{'s' if info.active_models != 1 else ''}"
    )


class ConsoleUI:
    """
    Rich Live renderer for the dashboard

    Example:
        ui = ConsoleUI(config)
        ui.start()
        scheduler = AdaptiveRenderScheduler(state, ui.render)
        ...
        ui.stop()
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, console: Optional[Console] = None):
        """
        Initialize console UI

        Args:
            config: Configuration dictionary
            console: Rich console (default: a new Console on stdout)
        """
        self.config = config or {}
        self.console = console or Console()
        self.layout = self._create_layout()
        self.live: Optional[Live] = None
        self.spinner_state = 0
        self.frames_rendered = 0

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=1),
            Layout(name="operations", size=len(OperationKind) + 2),
            Layout(name="events", ratio=1),
            Layout(name="footer", size=3)
        )
        return layout

    def start(self) -> None:
        """Start the live display."""
        if self.live is not None:
            return
        self.layout["header"].update(Text(f"tourney v{__version__} | Starting...", style="dim"))
        self.live = Live(
            self.layout,
            console=self.console,
            auto_refresh=False,
            screen=False
        )
        self.live.start()
        logger.debug("Console UI started")

    def stop(self) -> None:
        """Stop the live display, leaving the last frame on screen."""
        if self.live is not None:
            self.live.refresh()
            self.live.stop()
            self.live = None
            logger.debug("Console UI stopped")

    def render(self, snapshot: DashboardSnapshot) -> None:
        """
        Draw one frame

        Args:
            snapshot: Read-only dashboard state
        """
        self.spinner_state = (self.spinner_state + 1) % len(SPINNER_FRAMES)
        self.layout["header"].update(self.build_header(snapshot))
        self.layout["operations"].update(self.build_operations_panel(snapshot))
        self.layout["events"].update(self.build_events_panel(snapshot))
        self.layout["footer"].update(self.build_footer(snapshot))
        if self.live is not None:
            self.live.refresh()
        self.frames_rendered += 1

    # ========================================================================
    # Frame parts
    # ========================================================================

    def build_header(self, snapshot: DashboardSnapshot) -> Text:
        header = Text()
        header.append(f"tourney v{__version__}", style=f"bold {RETRO_THEME['primary']}")
        header.append(" | ", style="dim")

        if not snapshot.running:
            header.append("⏹ Shutting Down...", style=f"bold {RETRO_THEME['warning']}")
            return header

        if snapshot.system_status == "Idle":
            header.append("Idle", style="dim")
        else:
            spinner = SPINNER_FRAMES[self.spinner_state]
            header.append(f"{spinner} {snapshot.system_status}", style=f"bold {RETRO_THEME['secondary']}")

        if snapshot.system is not None:
            header.append(" | ", style="dim")
            header.append(describe_system(snapshot.system), style=RETRO_THEME['primary'])

        header.append(" | ", style="dim")
        modal = snapshot.modal
        if modal.command_mode:
            header.append("/", style=f"bold {RETRO_THEME['accent']}")
            header.append(modal.command_buffer, style="bold")
            header.append("▌", style=RETRO_THEME['accent'])
        elif modal.wizard_active:
            header.append("Model wizard active [Esc] cancel", style=f"bold {RETRO_THEME['warning']}")
        else:
            for key, label in (('D', 'ownload'), ('U', 'pload'), ('T', 'rain'), ('P', 'redict'),
                               ('R', 'efresh'), ('H', 'elp'), ('Q', 'uit')):
                header.append(f"[{key}]", style=f"bold {RETRO_THEME['secondary']}")
                header.append(f"{label} ", style="dim")
        return header

    def build_operations_panel(self, snapshot: DashboardSnapshot) -> Panel:
        table = Table(show_header=False, show_edge=False, padding=(0, 1), box=None, expand=True)
        table.add_column("Operation", style="bold", width=11)
        table.add_column("Status", width=9)
        table.add_column("Progress", ratio=1)
        table.add_column("Pct", justify="right", width=5)
        table.add_column("Details", overflow="ellipsis", ratio=2)

        for kind in OperationKind:
            operation = snapshot.operations[kind]
            status_text = Text(operation.status.value, style=STATUS_STYLES[operation.status])
            bar_style = RETRO_THEME['error'] if operation.status is OperationStatus.FAILED else RETRO_THEME['secondary']
            bar = ProgressBar(
                total=100.0,
                completed=operation.progress,
                complete_style=bar_style,
                finished_style=RETRO_THEME['success']
            )
            table.add_row(
                kind.label,
                status_text,
                bar,
                f"{operation.progress:.0f}%",
                Text(describe_metadata(operation), style="dim")
            )

        return Panel(
            table,
            title="⚡ OPERATIONS",
            border_style=RETRO_THEME['success'],
            box=box.ROUNDED
        )

    def build_events_panel(self, snapshot: DashboardSnapshot) -> Panel:
        if not snapshot.events:
            body = Text("No recent activity", style="dim")
        else:
            lines = []
            for event in snapshot.events:
                line = Text()
                line.append(event.timestamp.strftime('%H:%M:%S'), style="dim")
                line.append(f" {EVENT_ICONS.get(event.kind, '·')} ", style=EVENT_STYLES.get(event.kind, ''))
                line.append(event.message, style=EVENT_STYLES.get(event.kind, ''))
                lines.append(line)
            body = Group(*lines)

        return Panel(
            body,
            title=f"▣ EVENTS ({snapshot.total_events} total)",
            border_style=RETRO_THEME['primary'],
            box=box.ROUNDED
        )

    def build_footer(self, snapshot: DashboardSnapshot) -> Panel:
        footer = Text()
        if not snapshot.required_artifacts:
            footer.append("Auto-train: no required artifacts", style="dim")
        else:
            state = "ON" if snapshot.auto_train_enabled else "OFF"
            style = RETRO_THEME['success'] if snapshot.auto_train_enabled else "dim"
            footer.append(f"Auto-train {state}", style=f"bold {style}")
            footer.append(" | ", style="dim")
            for artifact in sorted(snapshot.required_artifacts):
                done = artifact in snapshot.completed_artifacts
                footer.append("✓ " if done else "· ", style=RETRO_THEME['success'] if done else "dim")
                footer.append(f"{artifact}  ", style="" if done else "dim")
        footer.append(f"| refresh {snapshot.refresh_interval:.1f}s", style="dim")
        return Panel(footer, border_style=RETRO_THEME['muted'], box=box.ROUNDED)
