"""
Device Bridge - memuc/adb operations against MEmu instances
Captures frames, pulls files, injects taps and queries instance status
"""

import os
import platform
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from ..utils.logger import get_logger
from ..utils.config import BridgeConfig
from ..utils.exceptions import DeviceBridgeError

logger = get_logger(__name__)


class DeviceBridge:
    """
    Black-box device capability used by the capture gateway and task controllers.

    Every method reports failure as False and never raises; timeouts are
    failures too.
    """

    def capture(self, instance_index: int, remote_path: str, timeout: float) -> bool:
        """Write a screenshot of the instance to ``remote_path`` on the device"""
        raise NotImplementedError

    def pull(self, instance_index: int, remote_path: str, local_path: str, timeout: float) -> bool:
        """Copy ``remote_path`` from the device to ``local_path``"""
        raise NotImplementedError

    def tap(self, instance_index: int, x: int, y: int, timeout: float = 5.0) -> bool:
        """Inject a tap at screen coordinates"""
        raise NotImplementedError

    def is_running(self, instance_index: int, timeout: float = 5.0) -> bool:
        """Whether the instance VM is running"""
        raise NotImplementedError


class MemucBridge(DeviceBridge):
    """
    DeviceBridge backed by MEmu's ``memuc`` command line tool
    """

    def __init__(self, config: Optional[BridgeConfig] = None):
        """
        Args:
            config: Bridge settings; memuc_path is auto-detected when unset
        """
        self.config = config or BridgeConfig()
        self.memuc_path: Optional[str] = self.config.memuc_path
        self._find_memuc()

    def _find_memuc(self) -> None:
        """
        Find memuc executable.
        Search order: configured path, system PATH, default MEmu install folders.
        """
        if self.memuc_path:
            memuc_file = Path(self.memuc_path)
            if memuc_file.exists() and memuc_file.is_file():
                self.memuc_path = str(memuc_file.absolute())
                logger.info(f"Using provided memuc path: {self.memuc_path}")
                return
            logger.warning(f"Provided memuc path does not exist: {self.memuc_path}, will search for memuc")
            self.memuc_path = None

        found = shutil.which('memuc')
        if found:
            self.memuc_path = found
            logger.info(f"memuc found in PATH: {found}")
            return

        search_paths = []
        if platform.system() == 'Windows':
            program_files = os.getenv('ProgramFiles', r'C:\Program Files')
            program_files_x86 = os.getenv('ProgramFiles(x86)', r'C:\Program Files (x86)')
            search_paths.extend([
                Path(program_files) / 'Microvirt' / 'MEmu' / 'memuc.exe',
                Path(program_files_x86) / 'Microvirt' / 'MEmu' / 'memuc.exe',
                Path('D:/') / 'Program Files' / 'Microvirt' / 'MEmu' / 'memuc.exe',
            ])

        for memuc_file in search_paths:
            if memuc_file.exists() and memuc_file.is_file():
                self.memuc_path = str(memuc_file.absolute())
                logger.info(f"memuc found at: {self.memuc_path}")
                return

        logger.warning("memuc not found. Set bridge.memuc_path in config or MEMUBOT_MEMUC_PATH")

    def check_available(self) -> bool:
        """Raise DeviceBridgeError unless a memuc executable was located"""
        if not self.memuc_path:
            raise DeviceBridgeError(
                "memuc not found. Please install MEmu or specify bridge.memuc_path in config."
            )
        return True

    def _run(self, args: List[str], timeout: float, text: bool = True) -> Tuple[bool, str]:
        """
        Run a memuc command with a hard timeout.

        subprocess.run kills the child when the timeout expires, so a hung
        device never leaves a process behind.
        """
        if not self.memuc_path:
            logger.error("memuc unavailable, cannot run: " + ' '.join(args))
            return False, ""

        command = [self.memuc_path] + args
        logger.debug(f"memuc executing: {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=text, timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"memuc command timeout after {timeout:.1f}s: {' '.join(command)}")
            return False, ""
        except OSError as e:
            logger.error(f"memuc command failed to start: {' '.join(command)}: {e}")
            return False, ""

        output = result.stdout if result.returncode == 0 else result.stderr
        if not isinstance(output, str):
            output = (output or b"").decode('utf-8', errors='ignore')
        if result.returncode != 0:
            logger.warning(f"memuc command failed (code {result.returncode}): {' '.join(command)}: {output.strip()[:200]}")
            return False, output
        return True, output

    def _adb(self, instance_index: int, args: List[str], timeout: float) -> Tuple[bool, str]:
        return self._run(['adb', '-i', str(instance_index)] + args, timeout)

    def capture(self, instance_index: int, remote_path: str, timeout: float) -> bool:
        success, _ = self._adb(instance_index, ['shell', 'screencap', '-p', remote_path], timeout)
        if not success:
            logger.error(f"Screenshot capture failed for instance {instance_index}")
        return success

    def pull(self, instance_index: int, remote_path: str, local_path: str, timeout: float) -> bool:
        success, _ = self._adb(instance_index, ['pull', remote_path, str(local_path)], timeout)
        if not success:
            logger.error(f"Screenshot pull failed for instance {instance_index}")
        return success

    def tap(self, instance_index: int, x: int, y: int, timeout: float = 5.0) -> bool:
        success, output = self._adb(instance_index, ['shell', 'input', 'tap', str(int(x)), str(int(y))], timeout)
        if success:
            logger.info(f"Clicked at ({x}, {y}) on instance {instance_index}")
        else:
            logger.warning(f"Failed to tap at ({x}, {y}) on instance {instance_index}: {output.strip()[:200]}")
        return success

    def is_running(self, instance_index: int, timeout: float = 5.0) -> bool:
        success, output = self._run(['isvmrunning', '-i', str(instance_index)], timeout)
        if not success:
            return False
        first_line = output.strip().splitlines()[0].strip() if output.strip() else ""
        return first_line == "1" or first_line.lower() == "running"
