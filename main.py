"""CLI entry point for pagebroker."""

import argparse
import asyncio
import dataclasses
import json
import sys

from pagebroker.server.mcp_server import run_http, run_stdio
from pagebroker.service.broker import WebBroker
from pagebroker.utils.config import Settings, load_settings
from pagebroker.utils.errors import BrokerError
from pagebroker.utils.logger import configure_logging, get_logger

log = get_logger(__name__)

SECRET_FIELDS = ("google_key", "llm_api_key", "master_key")


# -- Commands -------------------------------------------------------------------


async def cmd_fetch(broker: WebBroker, args) -> None:
    if args.markdown:
        print(await broker.fetch_markdown(args.url, args.selector))
    else:
        page = await broker.fetch_page(args.url, args.selector)
        print(page.html)


async def cmd_fetch_img(broker: WebBroker, args) -> None:
    resource = await broker.download(args.url, args.max_bytes)
    if args.output == "-":
        sys.stdout.buffer.write(resource.data)
        sys.stdout.buffer.flush()
    else:
        with open(args.output, "wb") as fh:
            fh.write(resource.data)
        log.info("Wrote %d bytes to %s", resource.size, args.output)


async def cmd_search(broker: WebBroker, args) -> None:
    if args.markdown:
        print(await broker.search_markdown(args.query), end="")
    else:
        results = await broker.search_json(args.query)
        print(json.dumps([dataclasses.asdict(r) for r in results], indent=2, ensure_ascii=False))


async def cmd_summary(broker: WebBroker, args) -> None:
    summary = await broker.summarize_url(args.url, args.selector, short=args.short or None)
    print(summary.to_yaml())


def cmd_debug(settings: Settings) -> None:
    """Print the effective settings with secrets masked."""
    for f in dataclasses.fields(settings):
        value = getattr(settings, f.name)
        if f.name in SECRET_FIELDS and value:
            value = "********"
        print(f"{f.name} = {value!r}")


async def run_broker_command(handler, settings: Settings, args) -> None:
    broker = WebBroker(settings)
    try:
        await handler(broker, args)
    finally:
        await broker.close()


BROKER_COMMANDS = {
    "fetch": cmd_fetch,
    "fetch-img": cmd_fetch_img,
    "search": cmd_search,
    "summary": cmd_summary,
}


# -- Argument parsing -----------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to a TOML config file")
    common.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")
    common.add_argument("--wd-port", type=int, help="Chromedriver port")
    common.add_argument("--wd-path", help="Path to the chromedriver executable")

    parser = argparse.ArgumentParser(
        prog="pagebroker",
        description="Fetch, search and summarize web pages for tool-calling agents",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fetch", parents=[common], help="Fetch a webpage (optionally as Markdown)")
    p.add_argument("url")
    p.add_argument("selector", nargs="?", default="")
    p.add_argument("--markdown", "--md", action="store_true", help="Convert the page to Markdown")
    p.add_argument("--abspath", action="store_true", help="Rewrite links and images to absolute URLs")
    p.add_argument("--pandoc", action="store_true", help="Use pandoc for the Markdown conversion")

    p = sub.add_parser("fetch-img", parents=[common], help="Download an image or binary file")
    p.add_argument("url")
    p.add_argument("-o", "--output", required=True, help="Output file, or - for stdout")
    p.add_argument("--max-bytes", type=int, help="Refuse resources larger than this (0 = unlimited)")

    p = sub.add_parser("search", parents=[common], help="Run a web search")
    p.add_argument("query")
    p.add_argument("--markdown", "--md", action="store_true", help="Output the results as Markdown")

    p = sub.add_parser("summary", parents=[common], help="Summarize a webpage with an LLM")
    p.add_argument("url")
    p.add_argument("selector", nargs="?", default="")
    p.add_argument("--short", action="store_true", help="Ask for a 1-3 sentence summary")

    sub.add_parser("mcp", parents=[common], help="Run the MCP server on stdio")

    p = sub.add_parser("mcp-http", parents=[common], help="Run the MCP server over HTTP")
    p.add_argument("--addr", help="Listen address")
    p.add_argument("--port", type=int, help="Listen port")
    p.add_argument("--master-key", help="Bearer token required from clients")

    sub.add_parser("debug", parents=[common], help="Print the effective configuration")
    return parser


def settings_from_args(args) -> Settings:
    overrides = {
        "webdriver_port": args.wd_port,
        "webdriver_path": args.wd_path,
        "log_level": "DEBUG" if args.verbose else None,
    }
    if args.command == "fetch":
        overrides["convert_absolute_links"] = True if args.abspath else None
        overrides["use_pandoc"] = True if args.pandoc else None
    elif args.command == "mcp-http":
        overrides["http_addr"] = args.addr
        overrides["http_port"] = args.port
        overrides["master_key"] = args.master_key
    return load_settings(args.config, overrides)


def main(argv=None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = settings_from_args(args)
        configure_logging(settings.log_level, settings.log_file or None)

        if args.command == "debug":
            cmd_debug(settings)
        elif args.command == "mcp":
            run_stdio(settings)
        elif args.command == "mcp-http":
            run_http(settings)
        else:
            asyncio.run(run_broker_command(BROKER_COMMANDS[args.command], settings, args))
    except BrokerError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
