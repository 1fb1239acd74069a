"""CLI entry point for starbase."""

from __future__ import annotations

import argparse
import asyncio
import sys

from starbase.config import AppConfig, load_config
from starbase.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="starbase",
        description="Conversational household assistant engine",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("serve", "Start the HTTP server"),
        ("config-check", "Validate configuration"),
        ("model-info", "Show model tiers and prices"),
        ("link-user", "Link an external chat identity to a user"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        sub.add_argument("-e", "--env", default=".env", help="Path to .env file")
        if name == "link-user":
            sub.add_argument("--platform", default="discord", help="External platform name")
            sub.add_argument("--external-id", required=True, help="User id on the platform")
            sub.add_argument("--user-id", required=True, help="Internal user id")

    args = parser.parse_args()

    if args.command is None:
        args.command = "serve"
        args.config = "config.yaml"
        args.env = ".env"

    config = _load(args.config, args.env)
    if args.command == "config-check":
        _check_config(args.config, config)
    elif args.command == "model-info":
        _model_info(config)
    elif args.command == "link-user":
        setup_logging(config.log_level, config.log_format)
        asyncio.run(_link_user(config, args.platform, args.external_id, args.user_id))
    elif args.command == "serve":
        _serve(config)


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and fill in the secrets.")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, config: AppConfig) -> None:
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Anthropic: {'configured' if config.anthropic else 'MISSING'}")
    print(f"  Max tool rounds: {config.agent.max_tool_rounds}")
    print(f"  Discord: {'enabled' if config.discord.enabled else 'disabled'}")
    if config.discord.enabled and not config.discord.public_key:
        print("  Warning: discord.public_key is empty; every interaction will be rejected")


def _model_info(config: AppConfig) -> None:
    print("Model Tiers")
    print("=" * 50)
    for tier, tier_cfg in config.agent.tiers.items():
        print(f"\n  Tier: {tier}")
        print(f"    Model   : {tier_cfg.model}")
        print(f"    Input   : ${tier_cfg.input_per_1k}/1K tokens")
        print(f"    Output  : ${tier_cfg.output_per_1k}/1K tokens")
    print(f"\n  Max response tokens: {config.agent.max_response_tokens}")
    print()


async def _link_user(config: AppConfig, platform: str, external_id: str, user_id: str) -> None:
    from starbase.storage.database import Database
    from starbase.storage.identity_repo import IdentityRepository

    db = Database(config.storage.db_path)
    await db.initialize()
    try:
        await IdentityRepository(db).link(platform, external_id, user_id)
    finally:
        await db.close()
    print(f"Linked {platform}:{external_id} -> {user_id}")


def _serve(config: AppConfig) -> None:
    import uvicorn

    from starbase.api.app import create_app
    from starbase.app import StarbaseApp

    setup_logging(config.log_level, config.log_format)
    try:
        starbase = StarbaseApp(config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    uvicorn.run(create_app(starbase), host=config.server.host, port=config.server.port, log_config=None)


if __name__ == "__main__":
    main()
