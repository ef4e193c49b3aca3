import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.theme import Theme

from smart_scraper.config import CONFIG_PATH_SETTINGS, ScraperConfig
from smart_scraper.orchestrator import SmartScraper

custom_theme = Theme({
    "success": "bold green",
    "error": "bold red",
    "info": "cyan",
})
console = Console(theme=custom_theme, stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="smart-scrape", description="Retrieve readable content from a URL, escalating to a browser only when needed.")
    parser.add_argument("--settings", default=CONFIG_PATH_SETTINGS, help=f"Path to the YAML settings file. Default is '{CONFIG_PATH_SETTINGS}'.")
    parser.add_argument("--timeout", type=int, default=None, help="Per-stage timeout in milliseconds.")
    parser.add_argument("--user-agent", default=None, help="User agent sent by every retrieval method.")
    parser.add_argument("--lightpanda-path", default=None, help="Path to the Lightpanda binary. Discovered automatically when omitted.")
    parser.add_argument("--verbose", "-v", action="store_true", default=None, help="Log cascade progress at INFO level.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape a URL.")
    scrape.add_argument("url")
    scrape.add_argument("--no-html", action="store_true", help="Omit raw HTML from the output.")

    screenshot = subparsers.add_parser("screenshot", help="Capture a screenshot with headless Chrome.")
    screenshot.add_argument("url")

    quickshot = subparsers.add_parser("quickshot", help="Capture a screenshot with the speed-optimized settings and one retry.")
    quickshot.add_argument("url")

    ask = subparsers.add_parser("ask", help="Scrape a URL and answer a question about it.")
    ask.add_argument("url")
    ask.add_argument("question")
    ask.add_argument("--model", default=None, help="Chat model used by the AI provider.")

    subparsers.add_parser("health", help="Check which retrieval methods are available.")
    return parser


def config_from_args(args: argparse.Namespace) -> ScraperConfig:
    return ScraperConfig.from_settings(
        args.settings,
        timeout=args.timeout,
        user_agent=args.user_agent,
        lightpanda_path=args.lightpanda_path,
        verbose=args.verbose,
        model=getattr(args, "model", None),
    )


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    async with SmartScraper(config_from_args(args)) as scraper:
        if args.command == "scrape":
            output = (await scraper.scrape(args.url)).to_dict()
            if args.no_html:
                output.pop("html", None)
            return output
        if args.command == "screenshot":
            return (await scraper.screenshot(args.url)).to_dict()
        if args.command == "quickshot":
            return (await scraper.quickshot(args.url)).to_dict()
        if args.command == "ask":
            return (await scraper.ask_ai(args.url, args.question)).to_dict()
        health = await scraper.health_check()
        health["success"] = health["status"] == "healthy"
        return health


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    output = asyncio.run(run(args))
    sys.stdout.write(json.dumps(output, indent=2, ensure_ascii=False))
    sys.stdout.write("\n")

    if output.get("success"):
        console.print(f"{args.command}: ok", style="success")
        return 0
    console.print(f"{args.command}: {output.get('error') or output.get('status', 'failed')}", style="error")
    return 1


if __name__ == "__main__":
    sys.exit(main())
