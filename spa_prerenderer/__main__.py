"""
Command line entry point: `python -m spa_prerenderer`.

Options come from the `prerender` section of the active configuration
environment; command line flags override them.
"""
import argparse
import asyncio
import sys
from typing import List, Optional

from spa_prerenderer.core.config import ConfigError, config_manager
from spa_prerenderer.core.exceptions import PrerenderFrameworkError
from spa_prerenderer.core.logger import get_logger, setup_logging
from spa_prerenderer.core.manager import PrerenderManager
from spa_prerenderer.core.options import PrerenderOptions

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prerender the routes of a single-page application")
    parser.add_argument("--env", help="Configuration environment to load (defaults to APP_ENV or development)")
    parser.add_argument("--routes", nargs="+", help="Routes to prerender, e.g. / /about")
    parser.add_argument("--static-dir", help="Directory with the built application")
    parser.add_argument("--output-dir", "-o", help="Directory rendered routes are written to (defaults to the static dir)")
    parser.add_argument("--browser-command", help="Command used to start the browser")
    parser.add_argument("--capture-after-time", type=int, help="Capture this many milliseconds after DOMContentLoaded")
    parser.add_argument("--capture-after-element-exists", help="Capture once this CSS selector matches")
    parser.add_argument("--capture-after-document-event", help="Capture when this event fires on document")
    return parser


async def main_async(args: argparse.Namespace) -> List[str]:
    options = PrerenderOptions.from_config(
        config_manager,
        overrides={
            "routes": args.routes,
            "static_dir": args.static_dir,
            "output_dir": args.output_dir,
            "browser_command": args.browser_command,
            "capture_after_time": args.capture_after_time,
            "capture_after_element_exists": args.capture_after_element_exists,
            "capture_after_document_event": args.capture_after_document_event,
        },
    )
    return await PrerenderManager(options=options).run()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.env:
            config_manager.reload_config(env=args.env)
        setup_logging(config_manager, force=True)
        written = asyncio.run(main_async(args))
    except (ConfigError, PrerenderFrameworkError) as e:
        logger.error(f"Prerendering failed: {e}")
        return 1

    for path in written:
        print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
