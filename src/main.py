"""
Main application: blur faces in page thumbnails as they scroll into view.

Opens a page in a Playwright-driven Chromium, loads the face detection
model, then watches the page and replaces each visible thumbnail that
contains faces with a blurred copy. A batch mode processes a fixed list of
image URLs instead and writes the blurred results to disk.

Usage:
    python src/main.py --config config/config.yaml --url https://www.youtube.com/
    python src/main.py --image https://example.com/a.jpg --output-dir output/blurred

Arguments:
    --config: Path to configuration file
    --url: Page to open in the browser
    --image: Image URL to process in batch mode (repeatable)
    --headed: Show the browser window
    --duration: Seconds to keep watching the page (0 = until interrupted)
"""

import os
import sys
import argparse
import asyncio
import base64
import logging
import yaml
from typing import Dict, Any, List, Tuple, Optional

from models.config import Config
from models.model_state import ModelStatus
from observation.memory import MemoryDocument, MemoryElement
from ops.logging import setup_logging
from runtime.context import build_runtime


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _positive_int(section: Dict[str, Any], key: str) -> bool:
    value = section.get(key)
    return value is None or (isinstance(value, int) and not isinstance(value, bool) and value > 0)


def _non_negative_int(section: Dict[str, Any], key: str) -> bool:
    value = section.get(key)
    return value is None or (isinstance(value, int) and not isinstance(value, bool) and value >= 0)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['detection', 'scheduler', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate detection settings
    detection = config.get('detection') or {}
    backend = detection.get('backend', 'haar')
    if backend not in ('haar', 'yunet'):
        return False, "detection.backend must be one of: haar, yunet"
    if backend == 'yunet' and not detection.get('model_base'):
        return False, "detection.model_base is required when detection.backend is 'yunet'"
    if not isinstance(detection.get('model_file', ''), str):
        return False, "detection.model_file must be a string"
    threshold = detection.get('score_threshold', 0.5)
    if not isinstance(threshold, (int, float)) or not (0 <= threshold <= 1):
        return False, "detection.score_threshold must be between 0 and 1"

    # Validate scheduler settings
    scheduler = config.get('scheduler') or {}
    if 'max_concurrent' not in scheduler:
        return False, "Missing scheduler.max_concurrent"
    if not _positive_int(scheduler, 'max_concurrent'):
        return False, "scheduler.max_concurrent must be a positive integer"

    # Optional loader settings
    loader = config.get('loader') or {}
    if not _positive_int(loader, 'max_attempts'):
        return False, "loader.max_attempts must be a positive integer"
    if not _non_negative_int(loader, 'base_delay_ms'):
        return False, "loader.base_delay_ms must be a non-negative integer"

    # Optional acquisition settings
    acquisition = config.get('acquisition') or {}
    if not _positive_int(acquisition, 'timeout_ms'):
        return False, "acquisition.timeout_ms must be a positive integer"

    # Optional discovery settings
    discovery = config.get('discovery') or {}
    for key in ('debounce_ms', 'navigation_settle_ms', 'root_margin_px'):
        if not _non_negative_int(discovery, key):
            return False, f"discovery.{key} must be a non-negative integer"
    if 'selectors' in discovery:
        selectors = discovery['selectors']
        if not isinstance(selectors, list) or not selectors or not all(isinstance(s, str) and s for s in selectors):
            return False, "discovery.selectors must be a non-empty list of strings"
    if 'threshold' in discovery:
        t = discovery['threshold']
        if not isinstance(t, (int, float)) or not (0 <= t <= 1):
            return False, "discovery.threshold must be between 0 and 1"

    # Optional blur settings
    blur = config.get('blur') or {}
    if 'intensity_px' in blur:
        if not isinstance(blur['intensity_px'], (int, float)) or blur['intensity_px'] <= 0:
            return False, "blur.intensity_px must be a positive number"
    if not _non_negative_int(blur, 'padding_px'):
        return False, "blur.padding_px must be a non-negative integer"
    if blur.get('output_format', 'png') not in ('png', 'jpg', 'jpeg', 'webp'):
        return False, "blur.output_format must be one of: png, jpg, jpeg, webp"

    if 'skip_patterns' in config and not isinstance(config['skip_patterns'], list):
        return False, "skip_patterns must be a list of strings"

    # Validate log settings
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


async def run_page(config: Config, url: str, headed: bool = False, duration: float = 0.0) -> Dict[str, Any]:
    """Open `url` in Chromium and blur thumbnails until `duration` elapses or interrupted."""
    from playwright.async_api import async_playwright
    from observation.playwright_document import PlaywrightDocument

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=not headed)
        try:
            page = await browser.new_page()
            document = await PlaywrightDocument.attach(page)
            await page.goto(url, wait_until="domcontentloaded")
            logging.info(f"Page opened: {url}")

            ctx = build_runtime(config, document)
            status = await ctx.start()
            try:
                if status is ModelStatus.READY:
                    if duration > 0:
                        await asyncio.sleep(duration)
                    else:
                        await asyncio.Event().wait()
            finally:
                stats = await ctx.stop(timeout=config.acquisition.timeout_s)
                await document.close()
        finally:
            await browser.close()
    return stats


async def run_batch(config: Config, image_urls: List[str], output_dir: str) -> Dict[str, Any]:
    """Process a fixed list of image URLs, writing blurred results into `output_dir`."""
    document = MemoryDocument()
    elements = [MemoryElement(url, loaded=True, visible=True) for url in image_urls]
    document.elements.extend(elements)

    ctx = build_runtime(config, document)
    status = await ctx.start()
    if status is ModelStatus.READY:
        # visibility notifications arrive on a later loop iteration than start()
        while not all(ctx.statuses.get(el).is_terminal for el in elements):
            await asyncio.sleep(0.01)
            await ctx.scheduler.join()

    os.makedirs(output_dir, exist_ok=True)
    for index, element in enumerate(elements):
        if not element.was_mutated:
            logging.info(f"Unchanged: {image_urls[index]}")
            continue
        header, _, payload = element.src.partition(",")
        ext = header.split("/")[-1].split(";")[0].replace("jpeg", "jpg")
        path = os.path.join(output_dir, f"blurred_{index:04d}.{ext}")
        with open(path, "wb") as f:
            f.write(base64.b64decode(payload))
        logging.info(f"Blurred: {image_urls[index]} -> {path}")

    return await ctx.stop()


def main():
    """Main application function."""
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description='Face Blur - thumbnail face obscuring')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--url', type=str, default=None,
                        help='Page to open in the browser')
    parser.add_argument('--image', action='append', default=[],
                        help='Image URL to process in batch mode (repeatable)')
    parser.add_argument('--output-dir', type=str, default='output/blurred',
                        help='Where batch mode writes blurred images')
    parser.add_argument('--headed', action='store_true',
                        help='Show the browser window')
    parser.add_argument('--duration', type=float, default=0.0,
                        help='Seconds to watch the page (0 = until interrupted)')
    args = parser.parse_args()

    if not args.url and not args.image:
        parser.error("one of --url or --image is required")

    # Load configuration
    config_dict = load_config(args.config)

    # Validate configuration
    is_valid, error_msg = validate_config(config_dict)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config_dict['log_path'], config_dict['log_level'])
    config = Config.from_dict(config_dict)

    logging.info("Starting Face Blur")
    try:
        if args.image:
            stats = asyncio.run(run_batch(config, args.image, args.output_dir))
        else:
            stats = asyncio.run(run_page(config, args.url, headed=args.headed, duration=args.duration))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return

    if stats.get("model") == ModelStatus.FAILED.value:
        sys.exit(2)


if __name__ == "__main__":
    main()
