"""
Bulwark Agent 命令行入口模块。

提供 CLI 命令：run（前台运行 Agent）、once（执行一个周期后退出）和 check（验证配置文件）。
"""
import asyncio
import logging
import signal
import sys

import click

from bulwark_agent import __version__
from bulwark_agent.config import DEFAULT_CONFIG_PATH, AgentConfig, load_config
from bulwark_agent.errors import ConfigError


def _load_or_exit(config_path: str) -> AgentConfig:
    try:
        cfg = load_config(config_path)
        cfg.validate()
    except (FileNotFoundError, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return cfg


async def _serve(cfg: AgentConfig, once: bool) -> None:
    from bulwark_agent.scheduler import AgentScheduler
    from bulwark_agent.transport import AgentClient

    async with AgentClient.from_config(cfg) as client:
        scheduler = AgentScheduler(cfg, client)
        if once:
            try:
                await scheduler.run_cycle()
            finally:
                scheduler.close()
            return

        # 注册信号处理，优雅关闭
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.stop)
            except NotImplementedError:
                # Windows 事件循环不支持，依赖 KeyboardInterrupt
                pass
        await scheduler.run()


@click.group(invoke_without_command=True)
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, config, verbose):
    """Bulwark Agent - 端点合规检查代理。"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # 未指定子命令时，显示基本信息
    if ctx.invoked_subcommand is None:
        click.echo(f"Bulwark Agent v{__version__}")
        click.echo(f"Config: {config}")
        click.echo("Use --help for available commands")


@cli.command()
@click.pass_context
def run(ctx):
    """以前台模式运行 Agent。"""
    logger = logging.getLogger("bulwark-agent")
    cfg = _load_or_exit(ctx.obj["config_path"])

    logger.info(f"Starting Bulwark Agent v{__version__}")
    logger.info(f"Server: {cfg.server_url}")
    logger.info(f"Host: {cfg.hostname_override or '(auto-detect)'}")
    logger.info(f"Collection interval: {cfg.collection_interval_secs}s")
    logger.info(f"Workers: {cfg.max_workers}")

    try:
        asyncio.run(_serve(cfg, once=False))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    except Exception:
        logger.exception("Agent crashed")
        sys.exit(1)


@cli.command()
@click.pass_context
def once(ctx):
    """执行一个采集周期后退出。"""
    cfg = _load_or_exit(ctx.obj["config_path"])
    try:
        asyncio.run(_serve(cfg, once=True))
    except Exception:
        logging.getLogger("bulwark-agent").exception("Cycle failed")
        sys.exit(1)


@cli.command()
@click.pass_context
def check(ctx):
    """验证配置文件是否正确。"""
    config_path = ctx.obj["config_path"]
    try:
        cfg = load_config(config_path)
        cfg.validate()
    except (FileNotFoundError, ConfigError) as e:
        click.echo(f"❌ Config error: {e}", err=True)
        sys.exit(1)
    click.echo(f"✅ Config OK: {config_path}")
    click.echo(f"   Server: {cfg.server_url}")
    click.echo(f"   Host: {cfg.hostname_override or '(auto-detect)'}")
    click.echo(f"   Collection interval: {cfg.collection_interval_secs}s")
    click.echo(f"   Workers: {cfg.max_workers}, check timeout: {cfg.check_timeout_secs}s")
    click.echo(f"   Retry: {cfg.retry.max_attempts} attempt(s)")


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
