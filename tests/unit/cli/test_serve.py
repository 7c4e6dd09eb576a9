"""Tests for the wasmhttp command line entry point."""

import asyncio
import os
import signal
from pathlib import Path

import pytest

from wasmhttp.cli import serve
from wasmhttp.cli.arg_parser import parse_args
from wasmhttp.cli.serve import _apply_cli_overrides, main, run_host
from wasmhttp.config.schema import Config, ServerConfig

NO_START_GUEST = """
(module
  (func (export "h_rd") (param i32))
  (func (export "h_re")))
"""


class TestArgParser:
    """Tests for parse_args()."""

    def test_defaults(self) -> None:
        args = parse_args(["guest.wasm"])

        assert args.wasm == Path("guest.wasm")
        assert args.verbosity == 0
        assert args.config is None
        assert args.call_start is None

    def test_all_options(self) -> None:
        args = parse_args(["-v", "2", "--config", "host.json", "--no-start", "app.wat"])

        assert args.verbosity == 2
        assert args.config == Path("host.json")
        assert args.call_start is False
        assert args.wasm == Path("app.wat")

    def test_verbosity_out_of_range(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["-v", "3", "guest.wasm"])

        assert exc_info.value.code == 2

    def test_wasm_is_required(self, capsys) -> None:
        with pytest.raises(SystemExit):
            parse_args([])


class TestOverrides:
    """Tests for applying CLI flags on top of the loaded config."""

    def test_no_start_overrides_config(self) -> None:
        config = _apply_cli_overrides(Config(), parse_args(["--no-start", "g.wasm"]))
        assert config.channel.call_start is False

    def test_absent_flag_keeps_config(self) -> None:
        config = Config.model_validate({"channel": {"call_start": False}})
        assert _apply_cli_overrides(config, parse_args(["g.wasm"])) is config


class TestMain:
    """Tests for main() start-up failures."""

    def test_missing_module_exits_1(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)

        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "absent.wasm")])

        assert exc_info.value.code == 1
        assert "Failed to read file" in capsys.readouterr().err

    def test_bad_config_exits_1(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "bad.json"
        config.write_text("not json", encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config), "guest.wasm"])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_trapping_start_exits_1(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        guest = tmp_path / "trap.wat"
        guest.write_text('(module (func (export "_start") unreachable))', encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main([str(guest)])

        assert exc_info.value.code == 1
        assert "Failed to execute '_start'" in capsys.readouterr().err


class TestRunHost:
    """Tests for the serve loop and signal driven shutdown."""

    @pytest.mark.unix_only
    @pytest.mark.asyncio
    @pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM])
    async def test_signal_shuts_down_and_returns_0(
        self, tmp_path: Path, monkeypatch, sig: signal.Signals
    ) -> None:
        guest = tmp_path / "idle.wat"
        guest.write_text(NO_START_GUEST, encoding="utf-8")
        booted = []
        original_boot = serve.boot_guest

        def recording_boot(*args, **kwargs):
            result = original_boot(*args, **kwargs)
            booted.append(result)
            return result

        monkeypatch.setattr(serve, "boot_guest", recording_boot)

        config = Config(server=ServerConfig(host="127.0.0.1"))
        task = asyncio.create_task(run_host(guest, config))
        for _ in range(100):
            if booted:
                break
            await asyncio.sleep(0.01)
        runtime, _engine = booted[0]

        await runtime.listen(0)
        reader, writer = await asyncio.open_connection("127.0.0.1", runtime.servers[0].port)
        writer.write(b"GET /pending HTTP/1.1\r\n\r\n")
        await writer.drain()
        for _ in range(100):
            if len(runtime.registry):
                break
            await asyncio.sleep(0.01)
        assert len(runtime.registry) == 1

        os.kill(os.getpid(), sig)

        assert await asyncio.wait_for(task, timeout=5) == 0
        assert len(runtime.registry) == 0
        assert runtime.servers == []
        assert await asyncio.wait_for(reader.read(), timeout=5) == b""
        writer.close()
