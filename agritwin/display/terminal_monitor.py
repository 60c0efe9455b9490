"""
Terminal Monitor for the vertical farm
Full-screen terminal interface using Rich.
"""

import logging
import time
from datetime import datetime
from typing import Optional

from rich.align import Align
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agritwin.shared.models import Status
from .data_fetcher import DataFetcher, SensorStatus, SystemStatus

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    Status.NORMAL: "green",
    Status.WARNING: "yellow",
    Status.CRITICAL: "bold red",
}


class TerminalMonitor:
    """Live farm view: header, one table per level, alerts panel"""

    def __init__(
        self,
        data_fetcher: DataFetcher,
        console: Optional[Console] = None,
        refresh_interval: float = 5.0,
        title: str = "AGRITWIN FARM MONITOR",
    ):
        self.data_fetcher = data_fetcher
        self.console = console or Console()
        self.refresh_interval = refresh_interval
        self.title = title

    def run(self) -> None:
        """Refresh until interrupted"""
        with Live(console=self.console, screen=True, auto_refresh=False) as live:
            while True:
                live.update(self.render(), refresh=True)
                time.sleep(self.refresh_interval)

    def render(self) -> Layout:
        return self._create_layout(self.data_fetcher.get_system_status())

    def _create_layout(self, status: SystemStatus) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
        )
        layout["body"].split_row(
            Layout(name="levels", ratio=2),
            Layout(name="alerts", ratio=1),
        )

        layout["header"].update(self._create_header(status))
        layout["levels"].update(self._create_levels_panel(status))
        layout["alerts"].update(self._create_alerts_panel(status))
        return layout

    def _create_header(self, status: SystemStatus) -> Panel:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        db_indicator = "ONLINE" if status.database_connected else "OFFLINE"

        header_text = Text()
        header_text.append(self.title, style="bold cyan")
        header_text.append(f" - {timestamp}", style="white")
        header_text.append(
            f" - DB: {db_indicator}",
            style="green" if status.database_connected else "red",
        )
        header_text.append(
            f" - {status.active_sensors} sensors, {status.unresolved_alerts} open alerts",
            style="white",
        )
        return Panel(Align.center(header_text), style="cyan")

    def _create_level_table(self, level: int, sensors: list) -> Table:
        table = Table(title=f"Level {level}", show_header=True, header_style="bold cyan", box=None)
        table.add_column("Sensor", style="white")
        table.add_column("Value", justify="right")
        table.add_column("Status")

        for sensor in sensors:
            table.add_row(
                f"{'●' if sensor.is_online else '○'} {sensor.label}",
                sensor.status_text,
                sensor.status.value.upper() if sensor.status else "---",
                style=self._sensor_style(sensor),
            )
        return table

    @staticmethod
    def _sensor_style(sensor: SensorStatus) -> str:
        if not sensor.is_online or sensor.status is None:
            return "dim"
        return STATUS_STYLES[sensor.status]

    def _create_levels_panel(self, status: SystemStatus) -> Panel:
        if not status.levels:
            return Panel(Text("No sensor data", style="red"), title="SENSORS", style="cyan")
        tables = [
            self._create_level_table(level, sensors)
            for level, sensors in status.levels.items()
        ]
        return Panel(Group(*tables), title="SENSORS", style="cyan")

    def _create_alerts_panel(self, status: SystemStatus) -> Panel:
        content = Text()
        for message in status.messages:
            content.append(message + "\n", style="bold red")

        if not status.alerts:
            content.append("✓ No open alerts", style="green")
        for i, alert in enumerate(status.alerts):
            if i > 0:
                content.append("\n")
            content.append(alert.created_at.astimezone().strftime("%H:%M:%S "), style="white")
            content.append(alert.text, style=STATUS_STYLES[alert.severity])

        return Panel(content, title="ALERTS", style="cyan")
