"""
Lacrosse drill engine: face-off reaction and shooting drills.

Runs one session from the command line, or serves the operator API.

Usage:
    python src/main.py --config config/config.yaml --drill faceoff --reps 10
    python src/main.py --drill shooting --mode placement --minutes 5
    python src/main.py --serve

Arguments:
    --config: Path to configuration file
    --drill: faceoff or shooting
    --mode: release (reaction time) or placement (shot zone)
    --reps / --minutes: Fixed rep count or timed session
    --serve: Start the operator API instead of running a session
"""

import os
import sys
import argparse
import logging
import time
from typing import Dict, Any, Tuple, Optional

import yaml
import uvicorn

from exceptions import DrillError
from models.config import Config
from models.drill import DrillMode, DrillState, SessionState
from ops.logging import setup_logging
from runtime.context import build_context
from web.app import create_app

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
WHISTLE_DELAY_TYPES = ('fixed', 'random', 'random_range')


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
    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _validate_timing(name: str, timing: Dict[str, Any]) -> Optional[str]:
    for key in ('pre_start_delay', 'command_delay', 'inter_rep_delay', 'whistle_fixed_delay'):
        if key in timing:
            value = timing[key]
            if not isinstance(value, (int, float)) or value < 0:
                return f"timing.{name}.{key} must be a non-negative number"

    delay_type = timing.get('whistle_delay_type', 'fixed')
    if delay_type not in WHISTLE_DELAY_TYPES:
        return f"timing.{name}.whistle_delay_type must be one of: {', '.join(WHISTLE_DELAY_TYPES)}"

    if 'whistle_candidates_ms' in timing:
        candidates = timing['whistle_candidates_ms']
        if not isinstance(candidates, list) or not candidates:
            return f"timing.{name}.whistle_candidates_ms must be a non-empty list"
        if not all(isinstance(c, int) and c > 0 for c in candidates):
            return f"timing.{name}.whistle_candidates_ms values must be positive integers"

    if 'whistle_range' in timing:
        rng = timing['whistle_range']
        if not isinstance(rng, list) or len(rng) != 2:
            return f"timing.{name}.whistle_range must be a list of [min, max] seconds"
        if not all(isinstance(x, (int, float)) and x > 0 for x in rng) or rng[0] > rng[1]:
            return f"timing.{name}.whistle_range must be positive and ordered"
    return None


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['camera', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate camera settings
    camera = config.get('camera', {}) or {}
    if 'device_id' not in camera:
        return False, "Missing camera.device_id"
    if not isinstance(camera['device_id'], (int, str)):
        return False, "camera.device_id must be an integer (index) or string (video file)"
    if isinstance(camera['device_id'], int) and camera['device_id'] < 0:
        return False, "camera.device_id integer must be non-negative"

    if 'resolution' in camera:
        if not isinstance(camera['resolution'], list) or len(camera['resolution']) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in camera['resolution']):
            return False, "camera.resolution values must be positive integers"

    if 'fps' in camera and (not isinstance(camera['fps'], int) or camera['fps'] <= 0):
        return False, "camera.fps must be a positive integer"

    if camera.get('rotate', 0) not in (0, 90, 180, 270):
        return False, "camera.rotate must be one of: 0, 90, 180, 270"

    # Per-drill timing
    timing = config.get('timing', {}) or {}
    for name, drill_timing in timing.items():
        if name not in ('faceoff', 'shooting'):
            return False, f"Unknown drill in timing: {name}"
        error = _validate_timing(name, drill_timing or {})
        if error:
            return False, error

    # Audio
    audio = config.get('audio', {}) or {}
    if 'volume' in audio:
        volume = audio['volume']
        if not isinstance(volume, (int, float)) or not (0 <= volume <= 1):
            return False, "audio.volume must be between 0 and 1"
    if 'clips' in audio and not isinstance(audio['clips'], dict):
        return False, "audio.clips must be a mapping of cue name to file path or data URL"

    # Session
    session = config.get('session', {}) or {}
    if 'guard_band_seconds' in session:
        gb = session['guard_band_seconds']
        if not isinstance(gb, int) or gb < 0:
            return False, "session.guard_band_seconds must be a non-negative integer"
    if 'default_reps' in session:
        reps = session['default_reps']
        if not isinstance(reps, int) or reps <= 0:
            return False, "session.default_reps must be a positive integer"

    # Validate log settings
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def run_session(ctx, drill: str, mode: str, reps: Optional[int], minutes: Optional[int]) -> int:
    """Run one session to completion from the command line. Returns an exit code."""
    session = ctx.session

    session.select_drill(drill, DrillMode(mode))
    if minutes is not None:
        session.configure("timed", minutes)
    else:
        session.configure("count", reps or ctx.config.session.default_reps)

    session.start()
    last_text = None
    try:
        while True:
            status = ctx.orchestrator.status()
            if status.status_text != last_text:
                logging.info(status.status_text)
                last_text = status.status_text
            if session.state == SessionState.FINISHED or status.state == DrillState.ERROR:
                break
            if status.state == DrillState.LOG_SHOT:
                answer = input("Shot zone (0-8, row-major from top-left): ").strip()
                if answer.isdigit():
                    try:
                        ctx.orchestrator.log_zone(int(answer))
                    except DrillError as e:
                        logging.warning(e.message)
                continue
            time.sleep(0.1)
    except KeyboardInterrupt:
        logging.info("Interrupted, aborting session")
        session.abort()

    status = session.status()
    if status.error:
        logging.error(f"Session failed: {status.error}")
        return 1
    if status.result is not None:
        logging.info(f"Session result: {status.result.to_dict()}")
    return 0


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Lacrosse Drill Engine')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--drill', choices=['faceoff', 'shooting'], default='faceoff',
                        help='Drill to run')
    parser.add_argument('--mode', choices=['release', 'placement'], default='release',
                        help='Measure release time or shot placement')
    target = parser.add_mutually_exclusive_group()
    target.add_argument('--reps', type=int, help='Fixed number of reps')
    target.add_argument('--minutes', type=int, help='Timed session length in minutes')
    parser.add_argument('--serve', action='store_true',
                        help='Serve the operator API instead of running a session')
    args = parser.parse_args()

    # Load configuration
    config = load_config(args.config)

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])
    logging.info("Starting Lacrosse Drill Engine")

    cfg = Config.from_dict(config)
    ctx = build_context(cfg)
    exit_code = 0
    try:
        if args.serve:
            logging.info(f"Operator API on {cfg.web.host}:{cfg.web.port}")
            uvicorn.run(
                create_app(ctx),
                host=cfg.web.host,
                port=cfg.web.port,
                log_level="info",
            )
        else:
            exit_code = run_session(ctx, args.drill, args.mode, args.reps, args.minutes)
    except DrillError as e:
        logging.error(f"Drill failed: {e.message}")
        exit_code = 1
    finally:
        ctx.shutdown()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
