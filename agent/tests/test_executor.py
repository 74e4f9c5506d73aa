"""检查执行器测试：七种检查类型的 pass / fail / error / skipped 语义。"""
import asyncio
import errno
import os
import socket
import sys

import pytest

from bulwark_agent.capabilities import Capability, ProcessEntry, PsutilCapabilities
from bulwark_agent.checks.executor import CheckExecutor
from bulwark_agent.checks.params import CheckStatus, CheckType

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")


class TestDispatch:
    def test_handlers_cover_every_type(self, executor):
        assert set(executor._handlers) == set(CheckType)

    async def test_unknown_type_is_error(self, executor, check_factory):
        outcome = await executor.execute(check_factory("disk_encrypted", path="/"))
        assert outcome.status is CheckStatus.ERROR
        assert "Unknown check type" in outcome.message

    async def test_malformed_parameters_are_error(self, executor, check_factory):
        outcome = await executor.execute(check_factory("port_open", port=70000))
        assert outcome.status is CheckStatus.ERROR
        assert "port" in outcome.message

    async def test_missing_parameters_are_error(self, executor, check_factory):
        outcome = await executor.execute(check_factory("file_content", path="/etc/hosts"))
        assert outcome.status is CheckStatus.ERROR
        assert "pattern" in outcome.message


class TestFileExists:
    async def test_existing_file(self, executor, check_factory, tmp_path):
        target = tmp_path / "present"
        target.write_text("x")
        outcome = await executor.execute(check_factory("file_exists", path=str(target)))
        assert outcome.status is CheckStatus.PASS

    async def test_existing_directory(self, executor, check_factory, tmp_path):
        outcome = await executor.execute(check_factory("file_exists", path=str(tmp_path)))
        assert outcome.status is CheckStatus.PASS

    async def test_missing_file(self, executor, check_factory, tmp_path):
        outcome = await executor.execute(check_factory("file_exists", path=str(tmp_path / "absent")))
        assert outcome.status is CheckStatus.FAIL
        assert "not found" in outcome.message

    async def test_parent_is_a_file(self, executor, check_factory, tmp_path):
        parent = tmp_path / "regular"
        parent.write_text("x")
        outcome = await executor.execute(check_factory("file_exists", path=str(parent / "child")))
        assert outcome.status is CheckStatus.FAIL

    async def test_permission_denied_is_error(self, executor, check_factory, monkeypatch):
        def denied(path, *args, **kwargs):
            raise PermissionError(errno.EACCES, "Permission denied", path)

        monkeypatch.setattr("bulwark_agent.checks.executor.os.stat", denied)
        outcome = await executor.execute(check_factory("file_exists", path="/secret/file"))
        assert outcome.status is CheckStatus.ERROR
        assert "Permission denied" in outcome.message

    @pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0,
                        reason="needs POSIX permissions enforced for the current user")
    async def test_unreadable_parent_is_error(self, executor, check_factory, tmp_path):
        locked = tmp_path / "locked"
        locked.mkdir()
        (locked / "inside").write_text("x")
        locked.chmod(0)
        try:
            outcome = await executor.execute(check_factory("file_exists", path=str(locked / "inside")))
        finally:
            locked.chmod(0o755)
        assert outcome.status is CheckStatus.ERROR


class TestFileContent:
    @pytest.mark.parametrize("pattern,should_match,expected", [
        (r"^PermitRootLogin\s+no$", True, CheckStatus.PASS),
        (r"^PermitRootLogin\s+yes$", True, CheckStatus.FAIL),
        (r"^PermitRootLogin\s+yes$", False, CheckStatus.PASS),
        (r"^PermitRootLogin\s+no$", False, CheckStatus.FAIL),
    ])
    async def test_should_match(self, executor, check_factory, tmp_path, pattern, should_match, expected):
        target = tmp_path / "sshd_config"
        target.write_text("Port 22\nPermitRootLogin no\n")
        # 多行匹配由模式自身的 (?m) 决定
        outcome = await executor.execute(check_factory(
            "file_content", path=str(target), pattern=f"(?m){pattern}", should_match=should_match,
        ))
        assert outcome.status is expected

    async def test_default_should_match(self, executor, check_factory, tmp_path):
        target = tmp_path / "motd"
        target.write_text("Authorized use only")
        outcome = await executor.execute(check_factory("file_content", path=str(target), pattern="Authorized"))
        assert outcome.status is CheckStatus.PASS

    async def test_invalid_regex_is_error(self, executor, check_factory, tmp_path):
        target = tmp_path / "f"
        target.write_text("abc")
        outcome = await executor.execute(check_factory("file_content", path=str(target), pattern="(unclosed"))
        assert outcome.status is CheckStatus.ERROR
        assert "Invalid regex" in outcome.message

    async def test_missing_file_is_error(self, executor, check_factory, tmp_path):
        outcome = await executor.execute(check_factory(
            "file_content", path=str(tmp_path / "absent"), pattern="x",
        ))
        assert outcome.status is CheckStatus.ERROR

    async def test_oversized_file_is_error(self, executor, check_factory, tmp_path):
        target = tmp_path / "big"
        target.write_bytes(b"a" * 2048)  # executor fixture caps reads at 1024 bytes
        outcome = await executor.execute(check_factory("file_content", path=str(target), pattern="a"))
        assert outcome.status is CheckStatus.ERROR
        assert "read limit" in outcome.message

    async def test_file_at_limit_is_read(self, executor, check_factory, tmp_path):
        target = tmp_path / "edge"
        target.write_bytes(b"a" * 1023 + b"Z")
        outcome = await executor.execute(check_factory("file_content", path=str(target), pattern="Z$"))
        assert outcome.status is CheckStatus.PASS


class TestConfigSetting:
    @pytest.mark.parametrize("line", [
        "PermitRootLogin no",
        "PermitRootLogin=no",
        "PermitRootLogin = no",
        "PermitRootLogin: no",
        "  PermitRootLogin\tno  ",
        'PermitRootLogin "no"',
        "PermitRootLogin='no'",
    ])
    async def test_separators_and_quotes(self, executor, check_factory, tmp_path, line):
        target = tmp_path / "conf"
        target.write_text(f"# comment\n{line}\n")
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(target), key="PermitRootLogin", expected="no",
        ))
        assert outcome.status is CheckStatus.PASS, outcome.message

    async def test_comment_lines_ignored(self, executor, check_factory, tmp_path):
        target = tmp_path / "conf"
        target.write_text("#PermitRootLogin no\nPermitRootLogin yes\n")
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(target), key="PermitRootLogin", expected="no",
        ))
        assert outcome.status is CheckStatus.FAIL
        assert "yes" in outcome.message

    async def test_first_active_line_wins(self, executor, check_factory, tmp_path):
        target = tmp_path / "conf"
        target.write_text("MaxAuthTries 3\nMaxAuthTries 6\n")
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(target), key="MaxAuthTries", expected=3,
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_key_prefix_does_not_match(self, executor, check_factory, tmp_path):
        target = tmp_path / "conf"
        target.write_text("PortRange 1000\n")
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(target), key="Port", expected="1000",
        ))
        assert outcome.status is CheckStatus.FAIL
        assert "not found" in outcome.message

    async def test_expected_quotes_stripped(self, executor, check_factory, tmp_path):
        target = tmp_path / "conf"
        target.write_text("LogLevel VERBOSE\n")
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(target), key="LogLevel", expected='"VERBOSE"',
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_missing_key_is_fail(self, executor, check_factory, tmp_path):
        target = tmp_path / "conf"
        target.write_text("Port 22\n")
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(target), key="PermitRootLogin", expected="no",
        ))
        assert outcome.status is CheckStatus.FAIL

    async def test_unreadable_file_is_error(self, executor, check_factory, tmp_path):
        outcome = await executor.execute(check_factory(
            "config_setting", file=str(tmp_path / "absent"), key="a", expected="b",
        ))
        assert outcome.status is CheckStatus.ERROR


class TestRegistryKey:
    async def test_skipped_without_registry_regardless_of_parameters(self, executor, check_factory):
        for params in ({}, {"path": "HKLM\\SOFTWARE\\Bulwark"}, {"bogus": 1}):
            outcome = await executor.execute(check_factory("registry_key", **params))
            assert outcome.status is CheckStatus.SKIPPED

    @pytest.mark.skipif(sys.platform == "win32", reason="registry is available on Windows")
    async def test_skipped_on_real_non_windows_platform(self, check_factory):
        executor = CheckExecutor(PsutilCapabilities())
        outcome = await executor.execute(check_factory("registry_key", path="HKLM\\SOFTWARE"))
        assert outcome.status is CheckStatus.SKIPPED

    @pytest.fixture
    def windows_executor(self, caps_factory):
        caps = caps_factory(
            supported=[Capability.REGISTRY],
            registry={
                "HKLM\\SOFTWARE\\Policies\\Firewall": {"Enabled": "1", "Profile": "Domain"},
            },
        )
        return CheckExecutor(caps)

    async def test_key_exists(self, windows_executor, check_factory):
        outcome = await windows_executor.execute(check_factory(
            "registry_key", path="HKLM\\SOFTWARE\\Policies\\Firewall",
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_value_matches_expected(self, windows_executor, check_factory):
        outcome = await windows_executor.execute(check_factory(
            "registry_key", path="HKLM\\SOFTWARE\\Policies\\Firewall", value_name="Enabled", expected=1,
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_value_mismatch(self, windows_executor, check_factory):
        outcome = await windows_executor.execute(check_factory(
            "registry_key", path="HKLM\\SOFTWARE\\Policies\\Firewall", value_name="Profile", expected="Public",
        ))
        assert outcome.status is CheckStatus.FAIL
        assert "mismatch" in outcome.message

    async def test_missing_key_and_value(self, windows_executor, check_factory):
        missing_key = await windows_executor.execute(check_factory(
            "registry_key", path="HKLM\\SOFTWARE\\Nothing",
        ))
        missing_value = await windows_executor.execute(check_factory(
            "registry_key", path="HKLM\\SOFTWARE\\Policies\\Firewall", value_name="Absent",
        ))
        assert missing_key.status is CheckStatus.FAIL
        assert missing_value.status is CheckStatus.FAIL

    async def test_unknown_hive_is_error(self, windows_executor, check_factory):
        outcome = await windows_executor.execute(check_factory("registry_key", path="HKXX\\SOFTWARE"))
        assert outcome.status is CheckStatus.ERROR


class TestProcessRunning:
    @pytest.fixture
    def process_executor(self, caps_factory):
        caps = caps_factory(processes=[
            ProcessEntry(pid=1, name="systemd", exe="systemd"),
            ProcessEntry(pid=812, name="sshd", exe="sshd"),
            ProcessEntry(pid=950, name="MsMpEng.exe", exe="MsMpEng.exe"),
            ProcessEntry(pid=1200, name="python3.12", exe="python3.12"),
            ProcessEntry(pid=1300, name="worker", exe="nginx"),
        ])
        return CheckExecutor(caps)

    @pytest.mark.parametrize("name", ["sshd", "SSHD", "msmpeng", "MsMpEng.exe", "nginx"])
    async def test_running(self, process_executor, check_factory, name):
        outcome = await process_executor.execute(check_factory("process_running", name=name))
        assert outcome.status is CheckStatus.PASS

    @pytest.mark.parametrize("name", ["ssh", "python", "auditd"])
    async def test_not_running(self, process_executor, check_factory, name):
        outcome = await process_executor.execute(check_factory("process_running", name=name))
        assert outcome.status is CheckStatus.FAIL

    async def test_skipped_without_process_table(self, caps_factory, check_factory):
        executor = CheckExecutor(caps_factory(supported=[]))
        outcome = await executor.execute(check_factory("process_running", name="sshd"))
        assert outcome.status is CheckStatus.SKIPPED

    async def test_current_process_found(self, check_factory):
        import psutil

        executor = CheckExecutor(PsutilCapabilities())
        name = psutil.Process().name()
        outcome = await executor.execute(check_factory("process_running", name=name))
        assert outcome.status is CheckStatus.PASS


class TestPortOpen:
    async def test_listener_flips_result(self, check_factory):
        executor = CheckExecutor(PsutilCapabilities(), port_probe_timeout=0.5)
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        port = listener.getsockname()[1]
        listener.listen(5)
        try:
            opened = await executor.execute(check_factory("port_open", port=port))
        finally:
            listener.close()
        closed = await executor.execute(check_factory("port_open", port=port))

        assert opened.status is CheckStatus.PASS
        assert closed.status is CheckStatus.FAIL

    async def test_listening_table_fallback(self, caps_factory, check_factory):
        executor = CheckExecutor(caps_factory(listening=[8443]))
        outcome = await executor.execute(check_factory("port_open", port=8443))
        assert outcome.status is CheckStatus.PASS

    async def test_not_listening_without_socket_table(self, caps_factory, check_factory):
        executor = CheckExecutor(caps_factory(supported=[Capability.PROCESSES]))
        outcome = await executor.execute(check_factory("port_open", port=8443))
        assert outcome.status is CheckStatus.FAIL


@posix_only
class TestCommandOutput:
    async def test_output_matches(self, executor, check_factory):
        outcome = await executor.execute(check_factory(
            "command_output", command="echo 'ufw status: active'", expected_pattern=r"status:\s+active",
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_output_does_not_match(self, executor, check_factory):
        outcome = await executor.execute(check_factory(
            "command_output", command="echo inactive", expected_pattern=r"^active",
        ))
        assert outcome.status is CheckStatus.FAIL
        assert "inactive" in outcome.message

    async def test_stderr_is_matched(self, executor, check_factory):
        outcome = await executor.execute(check_factory(
            "command_output", command="echo warning-on-stderr 1>&2", expected_pattern="warning-on-stderr",
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_exit_code_ignored(self, executor, check_factory):
        outcome = await executor.execute(check_factory(
            "command_output", command="echo enforcing; exit 3", expected_pattern="enforcing",
        ))
        assert outcome.status is CheckStatus.PASS

    async def test_timeout_is_error(self, caps_factory, check_factory):
        executor = CheckExecutor(caps_factory(), command_timeout=0.3)
        outcome = await executor.execute(check_factory(
            "command_output", command="sleep 10", expected_pattern=".*",
        ))
        assert outcome.status is CheckStatus.ERROR
        assert "timed out" in outcome.message

    async def test_spawn_failure_is_error(self, executor, check_factory, monkeypatch):
        async def broken_spawn(*args, **kwargs):
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", "/bin/sh")

        monkeypatch.setattr(asyncio, "create_subprocess_shell", broken_spawn)
        outcome = await executor.execute(check_factory(
            "command_output", command="echo hi", expected_pattern="hi",
        ))
        assert outcome.status is CheckStatus.ERROR
        assert "Failed to execute" in outcome.message

    async def test_invalid_regex_is_error(self, executor, check_factory):
        outcome = await executor.execute(check_factory(
            "command_output", command="echo hi", expected_pattern="[",
        ))
        assert outcome.status is CheckStatus.ERROR

    async def test_cancellation_kills_command(self, caps_factory, check_factory, tmp_path):
        executor = CheckExecutor(caps_factory(), command_timeout=30)
        marker = tmp_path / "finished"
        task = asyncio.create_task(executor.execute(check_factory(
            "command_output", command=f"sleep 1 && touch {marker}", expected_pattern=".*",
        )))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(1.5)
        assert not marker.exists()

    async def test_cancellation_reaps_process(self, caps_factory, check_factory, monkeypatch):
        spawned = []
        real_spawn = asyncio.create_subprocess_shell

        async def spawn(*args, **kwargs):
            proc = await real_spawn(*args, **kwargs)
            spawned.append(proc)
            return proc

        monkeypatch.setattr(asyncio, "create_subprocess_shell", spawn)
        executor = CheckExecutor(caps_factory(), command_timeout=30)
        task = asyncio.create_task(executor.execute(check_factory(
            "command_output", command="sleep 30", expected_pattern=".*",
        )))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # 取消返回时子进程已被回收
        assert len(spawned) == 1
        assert spawned[0].returncode is not None
