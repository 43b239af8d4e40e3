"""Tests for the kernelfetch command line."""

import json
import zlib

import pytest
from click.testing import CliRunner

from kernelfetch import cli


@pytest.fixture(autouse=True)
def logger_levels(monkeypatch):
    levels = []
    monkeypatch.setattr(cli, "setup_logger", lambda level=None: levels.append(level))
    monkeypatch.delenv("KERNELFETCH_DEBUG", raising=False)
    return levels


@pytest.fixture
def source_dir(tmp_path):
    source = tmp_path / "upstream"
    source.mkdir()
    (source / "de440s.bsp").write_bytes(b"spk segments")
    (source / "earth_latest_high_prec.bpc").write_bytes(b"daily orientation")
    return source


def write_manifest(tmp_path, files, **settings) -> str:
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({"files": files, **settings}))
    return str(path)


def test_sync_success(tmp_path, source_dir) -> None:
    bsp = source_dir / "de440s.bsp"
    manifest = write_manifest(
        tmp_path,
        [
            {"uri": bsp.as_uri(), "checksum": zlib.crc32(bsp.read_bytes())},
            {"uri": (source_dir / "earth_latest_high_prec.bpc").as_uri()},
        ],
    )
    out = tmp_path / "kernels"

    result = CliRunner().invoke(cli.main, [manifest, "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert "[完成]" in result.output
    assert "未校验" in result.output
    assert (out / "de440s.bsp").read_bytes() == b"spk segments"
    assert (out / "earth_latest_high_prec.bpc").exists()

    rerun = CliRunner().invoke(cli.main, [manifest, "-o", str(out)])
    assert rerun.exit_code == 0
    assert rerun.output.count("[跳过]") == 2


def test_download_dir_from_manifest(tmp_path, source_dir) -> None:
    out = tmp_path / "from-manifest"
    manifest = write_manifest(
        tmp_path,
        [{"uri": (source_dir / "de440s.bsp").as_uri()}],
        download_dir=str(out),
    )

    result = CliRunner().invoke(cli.main, [manifest])

    assert result.exit_code == 0, result.output
    assert (out / "de440s.bsp").exists()


def test_checksum_mismatch_exits_nonzero(tmp_path, source_dir) -> None:
    manifest = write_manifest(
        tmp_path,
        [
            {"uri": (source_dir / "de440s.bsp").as_uri(), "checksum": "0x12345678"},
            {"uri": (source_dir / "earth_latest_high_prec.bpc").as_uri()},
        ],
    )
    out = tmp_path / "kernels"

    result = CliRunner().invoke(cli.main, [manifest, "-o", str(out)])

    assert result.exit_code == 1
    assert "[失败]" in result.output
    assert "E302" in result.output
    assert not (out / "de440s.bsp").exists()
    assert (out / "earth_latest_high_prec.bpc").exists()


def test_parse_error_aborts_before_fetching(tmp_path, source_dir) -> None:
    manifest = write_manifest(
        tmp_path,
        [
            {"uri": (source_dir / "de440s.bsp").as_uri()},
            {"checksum": 12},
        ],
    )
    out = tmp_path / "kernels"

    result = CliRunner().invoke(cli.main, [manifest, "-o", str(out)])

    assert result.exit_code == 1
    assert "E101" in result.output
    assert not out.exists()


def test_dry_run(tmp_path, source_dir) -> None:
    out = tmp_path / "kernels"
    out.mkdir()
    (out / "de440s.bsp").write_bytes(b"spk segments")
    manifest = write_manifest(
        tmp_path,
        [
            {"uri": (source_dir / "de440s.bsp").as_uri()},
            {"uri": (source_dir / "earth_latest_high_prec.bpc").as_uri()},
        ],
    )

    result = CliRunner().invoke(cli.main, [manifest, "-o", str(out), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "[计划] 跳过" in result.output
    assert "[计划] 下载" in result.output
    assert not (out / "earth_latest_high_prec.bpc").exists()


def test_invalid_option_value(tmp_path, source_dir) -> None:
    manifest = write_manifest(tmp_path, [{"uri": (source_dir / "de440s.bsp").as_uri()}])

    result = CliRunner().invoke(cli.main, [manifest, "-j", "0"])

    assert result.exit_code == 1
    assert "E102" in result.output


@pytest.mark.parametrize(
    "flags, level",
    [([], "INFO"), (["--quiet"], "WARNING"), (["-q", "--debug"], "DEBUG")],
)
def test_log_level_flags(tmp_path, source_dir, logger_levels, flags, level) -> None:
    manifest = write_manifest(tmp_path, [{"uri": (source_dir / "de440s.bsp").as_uri()}])

    result = CliRunner().invoke(
        cli.main, [manifest, "-o", str(tmp_path / "kernels"), "--dry-run", *flags]
    )

    assert result.exit_code == 0, result.output
    assert logger_levels == [level]
