from __future__ import annotations

import argparse
import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from apps.mcp_gateway.config import GatewaySettings
from apps.mcp_gateway.http import create_app
from apps.mcp_gateway.service.gateway import McpGateway

_UVICORN_LOG_LEVELS = {
    "DEBUG": "debug",
    "INFO": "info",
    "WARN": "warning",
    "ERROR": "error",
}

_LOGGING_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the MCP gateway")
    parser.add_argument("--host", default=None, help="HTTP host")
    parser.add_argument("--port", type=int, default=None, help="HTTP port")
    parser.add_argument(
        "--public-base-url",
        default=None,
        help="Absolute URL announced to push-stream clients",
    )
    parser.add_argument(
        "--toolpacks-dir",
        type=Path,
        default=None,
        help="Directory scanned for *.tool.yaml files",
    )
    parser.add_argument(
        "--max-body-bytes",
        type=int,
        default=None,
        help="Reject request bodies larger than this",
    )
    parser.add_argument(
        "--keepalive-seconds",
        type=float,
        default=None,
        help="Interval between keepalive comments on push streams",
    )
    parser.add_argument(
        "--mirror-messages",
        action="store_true",
        default=None,
        help="Broadcast every inbound write-back payload to open push streams",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default=None,
        help="Logging level",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Load environment variables from this file instead of ./.env",
    )
    parser.add_argument(
        "--enable-openapi",
        action="store_true",
        help="Serve /docs and /openapi.json",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return create_parser().parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> GatewaySettings:
    return GatewaySettings.from_env().with_overrides(
        host=args.host,
        port=args.port,
        public_base_url=args.public_base_url,
        toolpacks_dir=args.toolpacks_dir,
        max_body_bytes=args.max_body_bytes,
        keepalive_seconds=args.keepalive_seconds,
        mirror_messages=args.mirror_messages,
        log_level=args.log_level,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    load_dotenv(args.env_file)
    settings = resolve_settings(args)
    logging.basicConfig(
        level=_LOGGING_LEVELS[settings.log_level],
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    gateway = McpGateway.create(settings)
    app = create_app(gateway, enable_openapi=args.enable_openapi)
    logging.getLogger("mcp_gateway").info(
        "MCP gateway listening on http://%s:%d", settings.host, settings.port
    )
    try:
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=_UVICORN_LOG_LEVELS[settings.log_level],
            access_log=False,
        )
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
