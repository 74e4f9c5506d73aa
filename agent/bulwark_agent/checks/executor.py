"""
检查执行器。

给定一个检查定义，产出一个结论（status, message），不关心调度、传输和持久化。
执行顺序：解析检查类型 → 平台能力闸门（缺失即 skipped，不看参数）→ 参数校验 → 执行处理函数。
阻塞式探测（文件、进程表、端口）放入线程池执行，命令检查使用 asyncio 子进程，
均可被取消或超时中断。
"""
from __future__ import annotations

import asyncio
import functools
import logging
import os
import re
import signal
from concurrent.futures import Executor
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from bulwark_agent.capabilities import UNSUPPORTED, PlatformCapabilities, get_capabilities
from bulwark_agent.checks.params import (
    PARAMS_MODELS,
    REQUIRED_CAPABILITIES,
    CheckOutcome,
    CheckType,
    CommandOutputParams,
    ConfigSettingParams,
    FileContentParams,
    FileExistsParams,
    PortOpenParams,
    ProcessRunningParams,
    RegistryKeyParams,
)
from bulwark_agent.errors import CheckExecutionError, PlatformUnsupportedError

if TYPE_CHECKING:
    from bulwark_agent.models import AssignedCheck

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024
OUTPUT_EXCERPT_CHARS = 200  # 失败信息中保留的命令输出长度

Handler = Callable[[BaseModel], Awaitable[CheckOutcome]]


def _compile(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise CheckExecutionError(f"Invalid regex pattern: {e}") from e


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _normalize_process_name(name: str) -> str:
    name = name.strip().lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "parameters"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def _kill_process(proc: asyncio.subprocess.Process) -> None:
    """终止命令进程；POSIX 下连同其进程组一起终止，避免子进程残留占用管道。"""
    if proc.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


class CheckExecutor:
    """按检查类型分派执行合规检查。"""

    def __init__(
        self,
        capabilities: Optional[PlatformCapabilities] = None,
        *,
        command_timeout: float = 30.0,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        port_probe_timeout: float = 1.0,
        pool: Optional[Executor] = None,
    ):
        self.capabilities = capabilities or get_capabilities()
        self.command_timeout = command_timeout
        self.max_file_bytes = max_file_bytes
        self.port_probe_timeout = port_probe_timeout
        self._pool = pool  # None 表示使用事件循环默认线程池
        self._handlers: dict[CheckType, Handler] = {
            CheckType.FILE_EXISTS: self._file_exists,
            CheckType.FILE_CONTENT: self._file_content,
            CheckType.REGISTRY_KEY: self._registry_key,
            CheckType.CONFIG_SETTING: self._config_setting,
            CheckType.PROCESS_RUNNING: self._process_running,
            CheckType.PORT_OPEN: self._port_open,
            CheckType.COMMAND_OUTPUT: self._command_output,
        }
        missing = set(CheckType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for check types: {sorted(t.value for t in missing)}")

    async def execute(self, check: "AssignedCheck") -> CheckOutcome:
        """执行单个检查并返回结论，检查自身的失败不会以异常形式抛出。"""
        try:
            check_type = CheckType(check.check_type)
        except ValueError:
            logger.warning("Check %s has unknown type %r", check.name, check.check_type)
            return CheckOutcome.errored(f"Unknown check type: {check.check_type}")

        capability = REQUIRED_CAPABILITIES.get(check_type)
        if capability is not None and not self.capabilities.supports(capability):
            return CheckOutcome.skipped(
                f"{check_type.value} checks are not supported on this platform "
                f"({self.capabilities.name}: no {capability.value} capability)"
            )

        try:
            params = PARAMS_MODELS[check_type].model_validate(check.parameters)
        except ValidationError as e:
            return CheckOutcome.errored(f"Invalid parameters: {_validation_summary(e)}")

        try:
            return await self._handlers[check_type](params)
        except PlatformUnsupportedError as e:
            return CheckOutcome.skipped(str(e))
        except CheckExecutionError as e:
            return CheckOutcome.errored(str(e))
        except OSError as e:
            return CheckOutcome.errored(f"{type(e).__name__}: {e}")

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._pool, functools.partial(func, *args))

    def _read_capped(self, path: str) -> str:
        try:
            with open(path, "rb") as f:
                data = f.read(self.max_file_bytes + 1)
        except OSError as e:
            raise CheckExecutionError(f"Failed to read file {path}: {e}") from e
        if len(data) > self.max_file_bytes:
            raise CheckExecutionError(
                f"File {path} exceeds the read limit of {self.max_file_bytes} bytes"
            )
        return data.decode("utf-8", errors="replace")

    # ── file_exists ─────────────────────────────────────────────────

    @staticmethod
    def _stat_path(path: str) -> CheckOutcome:
        try:
            os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return CheckOutcome.failed(f"File not found: {path}")
        except OSError as e:
            # 父目录不可读等情况无法判断文件是否存在
            raise CheckExecutionError(f"Cannot stat {path}: {e}") from e
        return CheckOutcome.passed(f"File exists: {path}")

    async def _file_exists(self, params: FileExistsParams) -> CheckOutcome:
        return await self._run_blocking(self._stat_path, params.path)

    # ── file_content ────────────────────────────────────────────────

    async def _file_content(self, params: FileContentParams) -> CheckOutcome:
        regex = _compile(params.pattern)
        content = await self._run_blocking(self._read_capped, params.path)
        matched = regex.search(content) is not None
        found = "found" if matched else "not found"
        if matched == params.should_match:
            return CheckOutcome.passed(f"Pattern {found} in {params.path}")
        expected = "match" if params.should_match else "no match"
        return CheckOutcome.failed(f"Pattern {found} in {params.path} (expected {expected})")

    # ── registry_key ────────────────────────────────────────────────

    async def _registry_key(self, params: RegistryKeyParams) -> CheckOutcome:
        try:
            result = await self._run_blocking(
                self.capabilities.read_registry_value, params.path, params.value_name
            )
        except ValueError as e:
            raise CheckExecutionError(str(e)) from e
        if result is UNSUPPORTED:
            raise PlatformUnsupportedError("Registry checks are only available on Windows")

        if not result.key_exists:
            return CheckOutcome.failed(f"Registry key not found: {params.path}")
        if params.value_name is None:
            return CheckOutcome.passed(f"Registry key exists: {params.path}")
        if not result.value_exists:
            return CheckOutcome.failed(f"Registry value not found: {params.value_name}")
        if params.expected is not None and result.value != params.expected:
            return CheckOutcome.failed(
                f"Registry value mismatch: {params.value_name} = {result.value} (expected {params.expected})"
            )
        return CheckOutcome.passed(f"Registry value {params.value_name} = {result.value}")

    # ── config_setting ──────────────────────────────────────────────

    @staticmethod
    def _find_setting(content: str, key: str) -> Optional[str]:
        """查找第一条生效的 key=value / key: value / key value 行，注释行不会匹配。"""
        pattern = re.compile(
            rf"^[ \t]*{re.escape(key)}(?:[ \t]*[=:][ \t]*|[ \t]+)(.*)$",
            re.MULTILINE,
        )
        m = pattern.search(content)
        if m is None:
            return None
        return _unquote(m.group(1))

    async def _config_setting(self, params: ConfigSettingParams) -> CheckOutcome:
        content = await self._run_blocking(self._read_capped, params.file)
        value = self._find_setting(content, params.key)
        if value is None:
            return CheckOutcome.failed(f"Config setting not found: {params.key} in {params.file}")
        expected = _unquote(params.expected)
        if value == expected:
            return CheckOutcome.passed(f"Config setting matches: {params.key} = {value}")
        return CheckOutcome.failed(
            f"Config setting mismatch: {params.key} = {value} (expected {expected})"
        )

    # ── process_running ─────────────────────────────────────────────

    async def _process_running(self, params: ProcessRunningParams) -> CheckOutcome:
        processes = await self._run_blocking(self.capabilities.list_processes)
        if processes is UNSUPPORTED:
            raise PlatformUnsupportedError("Process listing is not available on this platform")

        # 匹配策略：进程名或可执行文件名完全相等，忽略大小写和 .exe 后缀
        wanted = _normalize_process_name(params.name)
        for proc in processes:
            if wanted in (_normalize_process_name(proc.name), _normalize_process_name(proc.exe)):
                return CheckOutcome.passed(f"Process is running: {proc.name} (pid {proc.pid})")
        return CheckOutcome.failed(f"Process not running: {params.name}")

    # ── port_open ───────────────────────────────────────────────────

    async def _port_open(self, params: PortOpenParams) -> CheckOutcome:
        port = params.port
        if await self._run_blocking(self.capabilities.probe_local_port, port, self.port_probe_timeout):
            return CheckOutcome.passed(f"Port {port} is open/listening")
        # 监听在非回环地址上的端口只能从套接字表里看到
        listening = await self._run_blocking(self.capabilities.list_listening_ports)
        if listening is not UNSUPPORTED and port in listening:
            return CheckOutcome.passed(f"Port {port} is open/listening")
        return CheckOutcome.failed(f"Port {port} is not open/listening")

    # ── command_output ──────────────────────────────────────────────

    async def _command_output(self, params: CommandOutputParams) -> CheckOutcome:
        regex = _compile(params.expected_pattern)
        try:
            proc = await asyncio.create_subprocess_shell(
                params.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=hasattr(os, "killpg"),
            )
        except OSError as e:
            raise CheckExecutionError(f"Failed to execute command: {e}") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self.command_timeout
            )
        except asyncio.TimeoutError:
            _kill_process(proc)
            await proc.wait()
            raise CheckExecutionError(f"Command timed out after {self.command_timeout}s") from None
        except asyncio.CancelledError:
            _kill_process(proc)
            await asyncio.shield(proc.wait())
            raise

        output = stdout_bytes.decode(errors="replace") + stderr_bytes.decode(errors="replace")
        # 退出码不参与判定，以输出匹配为准
        if regex.search(output):
            return CheckOutcome.passed(f"Command output matches expected pattern (exit {proc.returncode})")
        excerpt = output.strip()[:OUTPUT_EXCERPT_CHARS]
        return CheckOutcome.failed(
            f"Command output does not match pattern (exit {proc.returncode}). Output: {excerpt}"
        )
