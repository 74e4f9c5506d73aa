"""
检查定义初始化 (Check Definition Seeding)

把一组基线检查写入数据库，已存在的同名检查跳过，可重复执行。
定义来自内置基线或 YAML 文件（顶层为检查列表，字段同 check_definitions 表）。

Usage:
    bulwark-seed-checks [--file checks.yaml] [--dry-run]
"""
import argparse
import asyncio
import logging
import sys
from typing import Any, Iterable, Optional

import yaml
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulwark_server.core.config import get_settings
from bulwark_server.core.database import create_engine, create_sessionmaker
from bulwark_server.models.check_definition import CHECK_TYPES, SEVERITIES
from bulwark_server.repositories import CheckRepository

logger = logging.getLogger(__name__)

# ── 内置基线 ──────────────────────────────────────────
BASELINE_CHECKS: list[dict[str, Any]] = [
    {
        "name": "ssh-root-login-disabled",
        "description": "sshd 禁止 root 直接登录",
        "check_type": "config_setting",
        "parameters": {"file": "/etc/ssh/sshd_config", "key": "PermitRootLogin", "expected": "no"},
        "severity": "high",
    },
    {
        "name": "ssh-password-auth-disabled",
        "check_type": "config_setting",
        "parameters": {"file": "/etc/ssh/sshd_config", "key": "PasswordAuthentication", "expected": "no"},
        "severity": "medium",
    },
    {
        "name": "auditd-running",
        "description": "审计守护进程在运行",
        "check_type": "process_running",
        "parameters": {"name": "auditd"},
        "severity": "medium",
    },
    {
        "name": "shadow-file-present",
        "check_type": "file_exists",
        "parameters": {"path": "/etc/shadow"},
        "severity": "low",
    },
    {
        "name": "https-listening",
        "check_type": "port_open",
        "parameters": {"port": 443},
        "severity": "medium",
        "enabled": False,
    },
    {
        "name": "firewall-active",
        "check_type": "command_output",
        "parameters": {"command": "ufw status", "expected_pattern": r"Status:\s+active"},
        "severity": "high",
    },
    {
        "name": "windows-firewall-enabled",
        "check_type": "registry_key",
        "parameters": {
            "path": "HKLM\\SYSTEM\\CurrentControlSet\\Services\\SharedAccess\\Parameters"
                    "\\FirewallPolicy\\StandardProfile",
            "value_name": "EnableFirewall",
            "expected": "1",
        },
        "severity": "high",
    },
]


def validate_definition(definition: dict[str, Any]) -> None:
    """校验单个检查定义的必填字段与取值范围，不合法时抛出 ValueError。"""
    if not isinstance(definition, dict):
        raise ValueError(f"Check definition must be a mapping: {definition!r}")
    name = definition.get("name")
    if not name or not isinstance(name, str):
        raise ValueError(f"Check definition without a name: {definition!r}")
    if definition.get("check_type") not in CHECK_TYPES:
        raise ValueError(f"{name}: unknown check_type {definition.get('check_type')!r}")
    if definition.get("severity", "medium") not in SEVERITIES:
        raise ValueError(f"{name}: unknown severity {definition.get('severity')!r}")
    if not isinstance(definition.get("parameters", {}), dict):
        raise ValueError(f"{name}: parameters must be a mapping")


def load_definitions(path: str) -> list[dict[str, Any]]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of check definitions")
    return data


async def seed_checks(
    sessionmaker: async_sessionmaker[AsyncSession],
    definitions: Iterable[dict[str, Any]],
) -> list[str]:
    """写入尚不存在的检查定义，返回新建的名称。整批在一个事务内完成。"""
    definitions = list(definitions)
    for definition in definitions:
        validate_definition(definition)

    created = []
    async with sessionmaker() as session:
        repo = CheckRepository(session)
        existing = await repo.names()
        for d in definitions:
            if d["name"] in existing:
                logger.info("Check %s already exists, skipped", d["name"])
                continue
            await repo.create(
                name=d["name"],
                check_type=d["check_type"],
                parameters=d.get("parameters", {}),
                severity=d.get("severity", "medium"),
                description=d.get("description"),
                enabled=d.get("enabled", True),
            )
            existing.add(d["name"])
            created.append(d["name"])
        await session.commit()
    return created


async def _seed(definitions: list[dict[str, Any]]) -> list[str]:
    engine = create_engine(get_settings().database_url)
    try:
        return await seed_checks(create_sessionmaker(engine), definitions)
    finally:
        await engine.dispose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed Bulwark check definitions")
    parser.add_argument("--file", help="YAML file with check definitions (default: built-in baseline)")
    parser.add_argument("--dry-run", action="store_true", help="Validate definitions without writing")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    try:
        definitions = load_definitions(args.file) if args.file else BASELINE_CHECKS
        for definition in definitions:
            validate_definition(definition)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"错误: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        print(f"{len(definitions)} check definition(s) valid")
        return 0

    created = asyncio.run(_seed(definitions))
    print(f"Created {len(created)} of {len(definitions)} check definition(s)")
    for name in created:
        print(f"  + {name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
