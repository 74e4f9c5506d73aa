"""
检查类型与参数模型。

七种检查类型构成一个封闭枚举，每种类型对应一个 Pydantic 参数模型，
以及（可选的）所需平台能力。新增检查类型时需同时补充参数模型和执行器处理函数，
执行器在构造时会校验处理函数是否覆盖全部类型。
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bulwark_agent.capabilities import Capability


class CheckType(str, enum.Enum):
    FILE_EXISTS = "file_exists"
    FILE_CONTENT = "file_content"
    REGISTRY_KEY = "registry_key"
    CONFIG_SETTING = "config_setting"
    PROCESS_RUNNING = "process_running"
    PORT_OPEN = "port_open"
    COMMAND_OUTPUT = "command_output"


class CheckStatus(str, enum.Enum):
    """检查结果状态：fail 表示条件不满足，error 表示无法评估，skipped 表示平台不适用。"""
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CheckOutcome:
    """单个检查的执行结论。"""
    status: CheckStatus
    message: Optional[str] = None

    @classmethod
    def passed(cls, message: Optional[str] = None) -> "CheckOutcome":
        return cls(CheckStatus.PASS, message)

    @classmethod
    def failed(cls, message: str) -> "CheckOutcome":
        return cls(CheckStatus.FAIL, message)

    @classmethod
    def errored(cls, message: str) -> "CheckOutcome":
        return cls(CheckStatus.ERROR, message)

    @classmethod
    def skipped(cls, message: str) -> "CheckOutcome":
        return cls(CheckStatus.SKIPPED, message)


def _scalar_to_str(value: Any) -> Any:
    # JSON 中的数字/布尔期望值按字符串比较
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FileExistsParams(_Params):
    path: str = Field(min_length=1)


class FileContentParams(_Params):
    path: str = Field(min_length=1)
    pattern: str
    should_match: bool = True


class RegistryKeyParams(_Params):
    path: str = Field(min_length=1)
    value_name: Optional[str] = None
    expected: Optional[str] = None

    @field_validator("expected", mode="before")
    @classmethod
    def coerce_expected(cls, value: Any) -> Any:
        return _scalar_to_str(value)


class ConfigSettingParams(_Params):
    file: str = Field(min_length=1)
    key: str = Field(min_length=1)
    expected: str

    @field_validator("expected", mode="before")
    @classmethod
    def coerce_expected(cls, value: Any) -> Any:
        return _scalar_to_str(value)


class ProcessRunningParams(_Params):
    name: str = Field(min_length=1)


class PortOpenParams(_Params):
    port: int = Field(ge=1, le=65535)


class CommandOutputParams(_Params):
    command: str = Field(min_length=1)
    expected_pattern: str


PARAMS_MODELS: dict[CheckType, Type[_Params]] = {
    CheckType.FILE_EXISTS: FileExistsParams,
    CheckType.FILE_CONTENT: FileContentParams,
    CheckType.REGISTRY_KEY: RegistryKeyParams,
    CheckType.CONFIG_SETTING: ConfigSettingParams,
    CheckType.PROCESS_RUNNING: ProcessRunningParams,
    CheckType.PORT_OPEN: PortOpenParams,
    CheckType.COMMAND_OUTPUT: CommandOutputParams,
}

# 需要特定平台能力的检查类型；缺失能力时结果为 skipped
REQUIRED_CAPABILITIES: dict[CheckType, Capability] = {
    CheckType.REGISTRY_KEY: Capability.REGISTRY,
    CheckType.PROCESS_RUNNING: Capability.PROCESSES,
}
