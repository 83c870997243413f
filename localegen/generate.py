"""Command-line entry point for the locale-aware static site generator."""

import argparse
import sys
from pathlib import Path

from localegen.config import BuildMode, ConfigError, SiteConfig
from localegen.logger import configure_logging, get_logger
from localegen.services.builder import BuildError, SiteBuilder

logger = get_logger("cli")


def build_parser():
    parser = argparse.ArgumentParser(description="Static site generator for multi-locale sites")
    parser.add_argument("--root", default=".",
                        help="Project root containing site_config.yaml (default: current directory)")
    parser.add_argument("--output", metavar="DIR",
                        help="Override the output directory from site_config.yaml")
    parser.add_argument("--dev", action="store_true",
                        help="Development build: no asset hashing, no minification")
    parser.add_argument("--no-minify", action="store_true",
                        help="Disable HTML minification for debugging")
    parser.add_argument("--clean", action="store_true",
                        help="Delete output directory before generating")
    parser.add_argument("--watch", action="store_true",
                        help="Watch for file changes and rebuild automatically")
    parser.add_argument("--serve", type=int, nargs="?", const=8000, metavar="PORT",
                        help="Start local server with live reload (default: 8000)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    overrides = {}
    if args.output:
        overrides["output_dir"] = args.output
    if args.no_minify:
        overrides["minify"] = False

    try:
        config = SiteConfig.load(Path(args.root), overrides)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    mode = BuildMode.DEVELOPMENT if (args.dev or args.watch or args.serve) else BuildMode.PRODUCTION
    builder = SiteBuilder(config, mode)

    if args.clean:
        builder.clean()

    # Handle --serve flag (build, serve, and watch with live reload)
    if args.serve:
        from localegen.services.dev_server import serve

        serve(config, port=args.serve)
        return 0

    try:
        builder.build_all()
    except BuildError as e:
        logger.error("%s", e)
        return 1

    # Handle --watch flag (watch and rebuild without server)
    if args.watch:
        from localegen.services.dev_server import watch

        watch(config, mode)
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
