"""
Command-line interface for MEmu Gather Bot
Runs one task controller or one perception step against a MEmu instance
"""

import argparse
import sys
import time

from . import __version__
from .core.capture_gateway import CaptureGateway
from .core.device_bridge import MemucBridge
from .core.instance_supervisor import InstanceSupervisor
from .modules.march_detector import MarchDetector, get_available_queues, summarize_queues
from .utils.config import ConfigManager
from .utils.exceptions import BotError, ImageRecognitionError, OCRError, TaskError
from .utils.logger import get_logger, set_level
from .utils.module_settings import AutoStartGameSettings
from .utils.template_matcher import TemplateMatcher

logger = get_logger(__name__)


def _wait_for(controller) -> None:
    """Block until the controller finishes; Ctrl+C stops it"""
    try:
        while not controller.join(0.5):
            pass
    except KeyboardInterrupt:
        print("\nStopping...")
        controller.stop()
        controller.join()


def cmd_autostart(args, config) -> int:
    bridge = MemucBridge(config.bridge)
    bridge.check_available()

    supervisor = InstanceSupervisor(bridge, config=config)
    supervisor.modules.set(args.instance, AutoStartGameSettings(enabled=True, attempts=args.attempts))
    controller = supervisor.start_auto_start(args.instance)
    if controller is None:
        raise TaskError(f"Auto start game already running for instance {args.instance}")

    _wait_for(controller)
    print(f"Auto start game finished: {controller.run_state.outcome.value}")
    return 0


def cmd_gather(args, config) -> int:
    bridge = MemucBridge(config.bridge)
    bridge.check_available()

    supervisor = InstanceSupervisor(bridge, config=config)
    controller = supervisor.start_gather(args.instance)
    if controller is None:
        raise TaskError(f"Resource gathering already running for instance {args.instance}")

    print("Press Ctrl+C to stop gathering\n")
    _wait_for(controller)
    return 0


def cmd_queues(args, config) -> int:
    bridge = MemucBridge(config.bridge)
    bridge.check_available()

    detector = MarchDetector(CaptureGateway(bridge, config=config), config)
    if not detector.reader.available:
        raise OCRError("Tesseract OCR is not available, cannot read march queues")

    queues = detector.read_queues(args.instance)
    if not queues:
        print("No march queues detected")
        return 1

    print("=" * 40)
    for queue in queues:
        print(f"  {queue}")
    print("=" * 40)
    counts = summarize_queues(queues)
    print(f"Available: {len(get_available_queues(queues))} | "
          + " | ".join(f"{status.value}: {count}" for status, count in counts.items()))
    return 0


def cmd_locate(args, config) -> int:
    bridge = MemucBridge(config.bridge)
    bridge.check_available()

    matcher = TemplateMatcher(config.image_recognition)
    if matcher.resolve_template(args.template) is None:
        raise ImageRecognitionError(f"Template not found: {args.template}")

    gateway = CaptureGateway(bridge, config=config)
    capture = gateway.capture(args.instance, "locate")
    match = matcher.match(capture.path, args.template, args.threshold)
    capture.consume()

    if match is None or not match.found:
        confidence = f"{match.confidence:.3f}" if match else "n/a"
        print(f"{args.template}: not found (confidence {confidence})")
        return 1

    print(f"{args.template}: found at {match.center} (confidence {match.confidence:.3f})")
    return 0


COMMANDS = {
    'autostart': cmd_autostart,
    'gather': cmd_gather,
    'queues': cmd_queues,
    'locate': cmd_locate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="memubot", description="MEmu Gather Bot - game automation for MEmu instances")
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--log-level', help='Override the configured log level')
    parser.add_argument('--version', action='version', version=f'MEmu Gather Bot v{__version__}')

    subparsers = parser.add_subparsers(dest='command', required=True)

    autostart = subparsers.add_parser('autostart', help='Launch the game and clear popups')
    autostart.add_argument('--instance', '-i', type=int, required=True, help='MEmu instance index')
    autostart.add_argument('--attempts', type=int, default=10, help='Maximum attempts (default: 10)')

    gather = subparsers.add_parser('gather', help='Keep march queues gathering until stopped')
    gather.add_argument('--instance', '-i', type=int, required=True, help='MEmu instance index')

    queues = subparsers.add_parser('queues', help='Read the march queue panel once')
    queues.add_argument('--instance', '-i', type=int, required=True, help='MEmu instance index')

    locate = subparsers.add_parser('locate', help='Find a template on the current screen')
    locate.add_argument('--instance', '-i', type=int, required=True, help='MEmu instance index')
    locate.add_argument('--template', '-t', required=True, help='Template file name, e.g. game_icon.png')
    locate.add_argument('--threshold', type=float, default=None, help='Minimum confidence (default: icon threshold)')

    return parser


def main(argv=None) -> int:
    """Main function"""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(args.config).get_config()
        set_level(args.log_level or config.logging.level)

        started = time.time()
        result = COMMANDS[args.command](args, config)
        logger.debug(f"{args.command} finished in {time.time() - started:.1f}s")
        return result

    except KeyboardInterrupt:
        print("\nStopped by user")
        return 130
    except BotError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        print(f"Unexpected error: {e}")
        logger.exception("Unexpected error occurred")
        return 1


if __name__ == "__main__":
    sys.exit(main())
