"""
Text and XML reports for scan results. Incidents are listed with the most
member windows first; all times are UTC.
"""

import xml.etree.ElementTree as ET

from rich.console import Console
from rich.table import Table

from ..anomaly import AnomalyCollection, AnomalyPair
from ..events import unix_to_iso
from ..log_processor import FileFailure, ScanResult


def _span(pair: AnomalyPair, kind: str, axis: str) -> str:
    if kind == "real":
        start, end = pair.real_interval(axis)
    else:
        start, end = pair.anomaly_interval(axis)
    return f"{unix_to_iso(start)} - {unix_to_iso(end)}"


def _incident_table(index: int, collection: AnomalyCollection) -> Table:
    anchor = collection.anchor
    table = Table(title=f"Anomaly #{index}", show_header=False, title_justify="left")
    table.add_column("Bound", style="bold")
    table.add_column("Range")
    table.add_row("real    (created)", _span(anchor, "real", "created"))
    table.add_row("real    (written)", _span(anchor, "real", "written"))
    table.add_row("anomaly (created)", _span(anchor, "anomaly", "created"))
    table.add_row("anomaly (written)", _span(anchor, "anomaly", "written"))
    table.add_row("logs", "\n".join(log.source.full_path() for log in collection.logs))
    if collection.files:
        table.add_row("files", "\n".join(f.full_path() for f in collection.files))
    return table


def _failure_table(failures: list[FileFailure]) -> Table:
    table = Table(title="Unreadable logs", title_justify="left")
    table.add_column("Log")
    table.add_column("Error", style="red")
    table.add_column("Detail")
    for failure in failures:
        table.add_row(failure.source.full_path(), failure.error_type, failure.message)
    return table


def render_text(result: ScanResult, console: Console | None = None) -> None:
    console = console or Console()
    collections = result.sorted_collections()
    if not collections:
        console.print("[green]No timestamp anomalies found.[/green]")
    for i, collection in enumerate(collections, 1):
        console.print(_incident_table(i, collection))
    if result.failures:
        console.print(_failure_table(result.failures))


def _add_times(parent: ET.Element, pair: AnomalyPair) -> None:
    for tag, value in pair.times().items():
        ET.SubElement(parent, tag).text = unix_to_iso(value)


def build_xml(collections: list[AnomalyCollection]) -> ET.Element:
    root = ET.Element("anomalies")
    for collection in sorted(collections, key=lambda c: len(c.logs), reverse=True):
        node = ET.SubElement(root, "anomaly")
        _add_times(node, collection.anchor)
        logs = ET.SubElement(node, "logs")
        for log in collection.logs:
            log_node = ET.SubElement(logs, "log")
            ET.SubElement(log_node, "path").text = log.source.path
            ET.SubElement(log_node, "name").text = log.source.name
            _add_times(ET.SubElement(log_node, "times"), log.pair)
        if collection.files:
            files = ET.SubElement(node, "files")
            for ref in collection.files:
                file_node = ET.SubElement(files, "file")
                ET.SubElement(file_node, "path").text = ref.path
                ET.SubElement(file_node, "name").text = ref.name
    return root


def render_xml(collections: list[AnomalyCollection]) -> str:
    root = build_xml(collections)
    ET.indent(root, space="  ")
    return '<?xml version="1.0"?>\n' + ET.tostring(root, encoding="unicode") + "\n"
