"""Command-line entry point for wechat-mdx."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import api
from .config import DEFAULT_ASSETS_DIR, DEFAULT_REQUEST_TIMEOUT, GenerationConfig
from .errors import AssetIOError, WeChatMdxError
from .generation import CoverImageGenerator, SummaryGenerator
from .token_cache import AccessTokenCache

logger = logging.getLogger("wechat_mdx.cli")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AssetIOError(path, str(exc)) from exc


def _write_output(text: str, output: Optional[Path]) -> None:
    if output is None:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")
        sys.stdout.flush()
        return
    try:
        output.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise AssetIOError(output, str(exc)) from exc
    logger.info("Saved output to %s", output)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Per-request network timeout in seconds",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_document_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("markdown", type=Path, help="Markdown file to process")
    parser.add_argument(
        "--site-prefix",
        default=None,
        help="Base URL used to fetch images referenced by origin-relative paths",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the rewritten Markdown here (default: STDOUT)",
    )
    parser.add_argument(
        "--in-place",
        action="store_true",
        help="Overwrite the source Markdown file",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export Markdown as WeChat-ready HTML and manage its images.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert_parser = subparsers.add_parser(
        "convert", help="Convert Markdown into a single HTML document with inline styles"
    )
    convert_parser.add_argument("markdown", type=Path, help="Markdown file to convert")
    convert_parser.add_argument(
        "--theme",
        default=None,
        help="Built-in theme name (default, lapis, sakura, tech)",
    )
    convert_parser.add_argument(
        "--css",
        type=Path,
        default=None,
        help="Custom stylesheet; overrides --theme",
    )
    convert_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write HTML here (default: STDOUT)",
    )
    _add_common_arguments(convert_parser)

    localize_parser = subparsers.add_parser(
        "localize", help="Download remote images into the assets directory"
    )
    _add_document_arguments(localize_parser)
    localize_parser.add_argument(
        "--assets-dir",
        default=DEFAULT_ASSETS_DIR,
        help="Assets directory name, relative to the Markdown file",
    )
    _add_common_arguments(localize_parser)

    publish_parser = subparsers.add_parser(
        "publish", help="Upload images to the WeChat media library"
    )
    _add_document_arguments(publish_parser)
    publish_parser.add_argument("--app-id", default="", help="WeChat APPID (or WECHAT_APP_ID)")
    publish_parser.add_argument(
        "--app-secret", default="", help="WeChat APPSECRET (or WECHAT_APP_SECRET)"
    )
    publish_parser.add_argument(
        "--items",
        type=Path,
        default=None,
        help="Write the uploaded image list as JSON to this path",
    )
    _add_common_arguments(publish_parser)

    token_parser = subparsers.add_parser("token", help="Check WeChat credentials")
    token_parser.add_argument("--app-id", default="")
    token_parser.add_argument("--app-secret", default="")
    _add_common_arguments(token_parser)

    summary_parser = subparsers.add_parser("summary", help="Generate a short article digest")
    summary_parser.add_argument("markdown", type=Path, nargs="?", default=None)
    summary_parser.add_argument("--api-key", default=None)
    summary_parser.add_argument("--base-url", default=None)
    summary_parser.add_argument("--model", default=None)
    summary_parser.add_argument(
        "--check",
        action="store_true",
        help="Only verify the provider configuration",
    )
    _add_common_arguments(summary_parser)

    cover_parser = subparsers.add_parser("cover", help="Generate a cover image")
    cover_parser.add_argument("markdown", type=Path)
    cover_parser.add_argument("--api-key", default=None)
    cover_parser.add_argument("--base-url", default=None)
    cover_parser.add_argument("--model", default=None)
    cover_parser.add_argument("--assets-dir", default=DEFAULT_ASSETS_DIR)
    _add_common_arguments(cover_parser)

    return parser.parse_args(list(sys.argv[1:] if argv is None else argv))


def _target(args: argparse.Namespace) -> Optional[Path]:
    return args.markdown if args.in_place else args.output


def _run_convert(args: argparse.Namespace) -> None:
    custom_css = _read_text(args.css) if args.css else args.theme
    html = api.convert(_read_text(args.markdown), custom_css)
    _write_output(html, args.output)


def _run_localize(args: argparse.Namespace) -> None:
    source = args.markdown.resolve()
    updated = api.localize_images(
        _read_text(source),
        source.parent,
        site_prefix=args.site_prefix,
        assets_dir=args.assets_dir,
        timeout=args.timeout,
    )
    _write_output(updated, _target(args))


def _run_publish(args: argparse.Namespace, token_cache: AccessTokenCache) -> None:
    source = args.markdown.resolve()
    result = api.publish_images(
        _read_text(source),
        args.app_id,
        args.app_secret,
        token_cache,
        base_dir=source.parent,
        site_prefix=args.site_prefix,
        timeout=args.timeout,
    )
    _write_output(result.markdown, _target(args))
    if args.items:
        payload = json.dumps([item.to_dict() for item in result.items], ensure_ascii=False, indent=2)
        _write_output(payload, args.items)


def _run_summary(args: argparse.Namespace) -> None:
    config = GenerationConfig.summary_from_env(args.api_key, args.base_url, args.model)
    config.request_timeout = args.timeout
    generator = SummaryGenerator(config)
    if args.check:
        _write_output(generator.check(), None)
        return
    if args.markdown is None:
        raise WeChatMdxError("A Markdown file is required unless --check is given")
    _write_output(generator.generate(_read_text(args.markdown)), None)


def _run_cover(args: argparse.Namespace) -> None:
    config = GenerationConfig.cover_from_env(args.api_key, args.base_url, args.model)
    config.request_timeout = args.timeout
    source = args.markdown.resolve()
    relative_path = CoverImageGenerator(config).generate(
        _read_text(source), source.parent, assets_dir=args.assets_dir
    )
    _write_output(relative_path, None)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    token_cache = AccessTokenCache()
    try:
        if args.command == "convert":
            _run_convert(args)
        elif args.command == "localize":
            _run_localize(args)
        elif args.command == "publish":
            _run_publish(args, token_cache)
        elif args.command == "token":
            _write_output(
                api.access_token_status(
                    args.app_id, args.app_secret, token_cache, timeout=args.timeout
                ),
                None,
            )
        elif args.command == "summary":
            _run_summary(args)
        else:
            _run_cover(args)
    except WeChatMdxError as exc:
        logger.error("%s", exc.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
