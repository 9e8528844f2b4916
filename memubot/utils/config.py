"""
Configuration management for MEmu Gather Bot
Handles loading and managing configuration from YAML files and environment variables
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, field, fields
from dotenv import load_dotenv

from ..utils.logger import get_logger
from ..utils.exceptions import ConfigurationError

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

DEFAULT_CONFIG_FILE = "config/bot_config.yaml"

# Letters, digits, the timer separator and a space
OCR_WHITELIST = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789: "


@dataclass
class BridgeConfig:
    """memuc / adb bridge settings"""
    memuc_path: Optional[str] = None
    remote_screenshot_path: str = "/sdcard/screen.png"
    capture_timeout: float = 10.0
    pull_timeout: float = 10.0
    tap_timeout: float = 5.0
    status_timeout: float = 5.0
    # Pause between screencap and pull so the device finishes writing
    settle_delay: float = 0.5


@dataclass
class CaptureConfig:
    """Screenshot acquisition and validation settings"""
    screenshot_directory: str = "screenshots"
    min_bytes: int = 15000
    max_attempts: int = 5
    retry_delay: float = 0.5
    verify_decode: bool = True
    # Startup cleanup removes artifacts smaller than this
    corrupted_bytes: int = 1000


@dataclass
class ImageRecognitionConfig:
    """Template matching settings"""
    icon_threshold: float = 0.8
    landmark_threshold: float = 0.6
    template_matching_method: str = 'cv2.TM_CCOEFF_NORMED'
    template_dirs: list = field(default_factory=lambda: ["assets/images", ".", "images"])


@dataclass
class OCRConfig:
    """Panel OCR settings"""
    enabled: bool = True
    tesseract_cmd: Optional[str] = None
    language: str = 'eng'
    timeout: float = 15.0
    # x, y, width, height of the queue text column (no flag icons)
    panel_region: list = field(default_factory=lambda: [50, 190, 230, 310])
    # Resolution panel_region was calibrated on (width, height)
    reference_resolution: list = field(default_factory=lambda: [400, 652])
    variants: list = field(default_factory=lambda: [
        {'name': 'psm6_lstm', 'psm': 6, 'oem': 1, 'whitelist': OCR_WHITELIST, 'preprocess': 'none'},
        {'name': 'psm4_lstm', 'psm': 4, 'oem': 1, 'whitelist': OCR_WHITELIST, 'preprocess': 'none'},
        {'name': 'psm6_legacy', 'psm': 6, 'oem': 0, 'whitelist': OCR_WHITELIST, 'preprocess': 'none'},
        {'name': 'psm3_lstm', 'psm': 3, 'oem': 1, 'whitelist': OCR_WHITELIST, 'preprocess': 'none'},
        {'name': 'psm6_otsu', 'psm': 6, 'oem': 1, 'whitelist': OCR_WHITELIST, 'preprocess': 'otsu'},
    ])


@dataclass
class AutoStartConfig:
    """Auto Start Game task settings"""
    attempts: int = 10
    attempt_interval: float = 5.0
    screenshot_retry_delay: float = 2.0
    popup_close_delay: float = 1.0
    max_popup_closes: int = 10
    # Wait after an instance boots before the first attempt
    start_delay: float = 7.0
    running_icon: str = "game_icon.png"
    launcher_icon: str = "game_launcher.png"
    popup_close_icons: list = field(default_factory=lambda: ["close_x.png", "close_x2.png", "close_x3.png"])


@dataclass
class GatherConfig:
    """Gather Resources task settings"""
    check_interval: float = 60.0
    error_cooldown: float = 30.0
    dispatch_delay: float = 3.0
    placeholder_dispatch_time: float = 2.0
    click_retries: int = 3
    click_retry_delay: float = 1.0
    open_panel_icon: str = "open_left.png"
    open_panel_wait: float = 2.0
    wilderness_icon: str = "wilderness_button.png"
    wilderness_wait: float = 3.0


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = 'INFO'


@dataclass
class BotConfig:
    """Main bot configuration"""
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    image_recognition: ImageRecognitionConfig = field(default_factory=ImageRecognitionConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    auto_start: AutoStartConfig = field(default_factory=AutoStartConfig)
    gather: GatherConfig = field(default_factory=GatherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


SECTIONS = {
    'bridge': BridgeConfig,
    'capture': CaptureConfig,
    'image_recognition': ImageRecognitionConfig,
    'ocr': OCRConfig,
    'auto_start': AutoStartConfig,
    'gather': GatherConfig,
    'logging': LoggingConfig,
}


class ConfigManager:
    """
    Configuration manager for the MEmu Gather Bot
    Handles loading, validation, and access to configuration settings
    """

    def __init__(self, config_file: str = None, create_default: bool = True):
        """
        Initialize configuration manager

        Args:
            config_file: Path to the configuration file
            create_default: Write a default file when none exists
        """
        self.config_file = Path(config_file or os.getenv('MEMUBOT_CONFIG_FILE', DEFAULT_CONFIG_FILE))
        self.create_default = create_default
        self.config: Optional[BotConfig] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables"""
        try:
            config_data = self._get_default_config()

            if self.config_file.exists():
                logger.info(f"Loading configuration from {self.config_file}")
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = yaml.safe_load(f) or {}
                    config_data = self._merge_configs(config_data, file_config)
            else:
                logger.info("No configuration file found, using defaults")
                if self.create_default:
                    self._create_default_config_file()

            config_data = self._apply_environment_overrides(config_data)
            self.config = self.build_config(config_data)

            logger.info("Configuration loaded successfully")

        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error loading configuration: {e}")
            raise ConfigurationError(f"Failed to load configuration: {e}")

    @staticmethod
    def build_config(config_data: Dict[str, Any]) -> BotConfig:
        """Create a BotConfig from a (possibly partial) nested dictionary"""
        sections = {}
        for name, section_cls in SECTIONS.items():
            values = config_data.get(name) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Section '{name}' must be a mapping")
            known = {f.name for f in fields(section_cls)}
            unknown = set(values) - known
            if unknown:
                logger.warning(f"Ignoring unknown keys in '{name}': {sorted(unknown)}")
            sections[name] = section_cls(**{k: v for k, v in values.items() if k in known})
        return BotConfig(**sections)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return {name: {} for name in SECTIONS}

    def _merge_configs(self, base: Dict, override: Dict) -> Dict:
        """Recursively merge configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_environment_overrides(self, config_data: Dict) -> Dict:
        """Apply environment variable overrides"""
        if os.getenv('MEMUBOT_MEMUC_PATH'):
            config_data.setdefault('bridge', {})['memuc_path'] = os.getenv('MEMUBOT_MEMUC_PATH')

        if os.getenv('MEMUBOT_TESSERACT_CMD'):
            config_data.setdefault('ocr', {})['tesseract_cmd'] = os.getenv('MEMUBOT_TESSERACT_CMD')

        if os.getenv('MEMUBOT_SCREENSHOT_DIR'):
            config_data.setdefault('capture', {})['screenshot_directory'] = os.getenv('MEMUBOT_SCREENSHOT_DIR')

        if os.getenv('MEMUBOT_LOG_LEVEL'):
            config_data.setdefault('logging', {})['level'] = os.getenv('MEMUBOT_LOG_LEVEL')

        return config_data

    def _as_dict(self, config: BotConfig) -> Dict[str, Any]:
        return {name: asdict(getattr(config, name)) for name in SECTIONS}

    def _create_default_config_file(self) -> None:
        """Create a default configuration file"""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.dump(self._as_dict(BotConfig()), f, default_flow_style=False, indent=2)

            logger.info(f"Created default configuration file: {self.config_file}")

        except Exception as e:
            logger.warning(f"Could not create default config file: {e}")

    def get_config(self) -> BotConfig:
        """Get the current configuration"""
        if self.config is None:
            raise ConfigurationError("Configuration not loaded")
        return self.config

    def save_config(self) -> None:
        """Save current configuration to file"""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.dump(self._as_dict(self.get_config()), f, default_flow_style=False, indent=2)

            logger.info(f"Configuration saved to {self.config_file}")

        except Exception as e:
            logger.error(f"Error saving configuration: {e}")
            raise ConfigurationError(f"Failed to save configuration: {e}")

    def reload_config(self) -> None:
        """Force reload configuration from file"""
        logger.info("Force reloading configuration")
        self.config = None
        self._load_config()


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Shared configuration manager, created on first use"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> BotConfig:
    """Shortcut for the shared manager's current configuration"""
    return get_config_manager().get_config()
