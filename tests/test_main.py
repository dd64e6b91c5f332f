"""
Tests for the command-line entry point.
"""

import xml.etree.ElementTree as ET

from builders import build_evt, build_evtx
from evlog_anomaly.main import main


def make_image(root):
    config = root / "config"
    config.mkdir(parents=True)
    times = [10000, 10060, 5000, 5060, 20000, 20060]
    (config / "SysEvent.Evt").write_bytes(build_evt([(t, t) for t in times]))
    (config / "System.evtx").write_bytes(build_evtx([[(i + 1, t) for i, t in enumerate(times)]]))
    (config / "Broken.evtx").write_bytes(b"ElfFile\x00" + b"\x00" * 8)
    return root


class TestScanCommand:
    def test_xml_output(self, tmp_path, capsys):
        image = make_image(tmp_path / "image")
        assert main(["scan", "--xml", str(image)]) == 0
        out = capsys.readouterr().out
        root = ET.fromstring(out.split("\n", 1)[1])
        names = sorted(n.text for n in root.iter("name"))
        assert names == ["SysEvent.Evt", "System.evtx"]

    def test_missing_root(self, tmp_path):
        assert main(["scan", str(tmp_path / "nope")]) == 1

    def test_bad_workers(self, tmp_path):
        assert main(["scan", "-w", "0", str(tmp_path)]) == 1

    def test_bad_config(self, tmp_path):
        cfg = tmp_path / "scan.yaml"
        cfg.write_text("colour: blue\n")
        assert main(["scan", "-c", str(cfg), str(tmp_path)]) == 2

    def test_config_file_enables_xml(self, tmp_path, capsys):
        image = make_image(tmp_path / "image")
        cfg = tmp_path / "scan.yaml"
        cfg.write_text("xml: true\nworkers: 2\n")
        assert main(["scan", "-c", str(cfg), str(image)]) == 0
        assert capsys.readouterr().out.startswith('<?xml version="1.0"?>')


class TestSessionsCommand:
    def test_save_and_show(self, tmp_path, capsys):
        image = make_image(tmp_path / "image")
        db = tmp_path / "scans.db"
        assert main(["scan", "--xml", "--save-session", "--db", str(db), "--name", "case", str(image)]) == 0
        scanned = capsys.readouterr().out

        assert main(["sessions", "--db", str(db), "--show", "1", "--xml"]) == 0
        assert capsys.readouterr().out == scanned

    def test_show_unknown(self, tmp_path):
        db = tmp_path / "scans.db"
        assert main(["sessions", "--db", str(db), "--show", "7"]) == 1

    def test_delete(self, tmp_path, capsys):
        image = make_image(tmp_path / "image")
        db = tmp_path / "scans.db"
        main(["scan", "--xml", "--save-session", "--db", str(db), str(image)])
        capsys.readouterr()
        assert main(["sessions", "--db", str(db), "--delete", "1"]) == 0
        assert main(["sessions", "--db", str(db), "--show", "1"]) == 1

    def test_delete_unknown(self, tmp_path):
        db = tmp_path / "scans.db"
        assert main(["sessions", "--db", str(db), "--delete", "3"]) == 1
