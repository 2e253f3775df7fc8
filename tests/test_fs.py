# tests/test_fs.py
from __future__ import annotations

import json
from pathlib import Path

from utils.fs import append_line, atomic_write, ensure_dir, json_dumps_pretty, stream_to_path


def test_atomic_write_text_and_bytes(tmp_path: Path):
    p_txt = tmp_path / "a" / "b" / "meta.json"
    atomic_write(p_txt, '{"name": "Acme ✓"}')
    assert p_txt.read_text(encoding="utf-8") == '{"name": "Acme ✓"}'

    p_bin = tmp_path / "out.bin"
    atomic_write(p_bin, b"\x00\x01\xff")
    assert p_bin.read_bytes() == b"\x00\x01\xff"


def test_atomic_write_replaces_and_leaves_no_temp_files(tmp_path: Path):
    d = tmp_path / "isolated"
    ensure_dir(d)
    target = d / "only.txt"

    atomic_write(target, "one")
    atomic_write(target, "two")

    assert target.read_text(encoding="utf-8") == "two"
    assert [p.name for p in d.iterdir()] == ["only.txt"]


def test_stream_to_path_counts_bytes_and_skips_empty_chunks(tmp_path: Path):
    dest = tmp_path / "rev" / "design.psd"
    written = stream_to_path(iter([b"abc", b"", b"de"]), dest)

    assert written == 5
    assert dest.read_bytes() == b"abcde"
    assert [p.name for p in dest.parent.iterdir()] == ["design.psd"]


def test_append_line_creates_then_appends(tmp_path: Path):
    p = tmp_path / "preview - 1" / "comments.md"
    append_line(p, "1. first\n")
    append_line(p, "  1. reply\n")
    assert p.read_text(encoding="utf-8") == "1. first\n  1. reply\n"


def test_json_dumps_pretty_keeps_payload_order():
    data = {"id": 3, "name": "Acme", "links": {"projects": [1, 2]}}
    dumped = json_dumps_pretty(data)

    assert dumped.endswith("\n")
    assert dumped.index('"id"') < dumped.index('"name"') < dumped.index('"links"')
    assert '\n  "name": "Acme"' in dumped
    assert json.loads(dumped) == data
