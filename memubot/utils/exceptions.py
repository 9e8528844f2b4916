"""
Custom exceptions for MEmu Gather Bot
"""

class BotError(Exception):
    """Base exception for all bot-related errors"""
    pass

class DeviceBridgeError(BotError):
    """Exception raised when the memuc/adb bridge cannot be used at all"""
    pass

class CaptureError(BotError):
    """Exception raised when no valid screenshot could be obtained"""

    def __init__(self, message: str, instance_index: int = None, purpose: str = None,
                 attempts: int = 0):
        super().__init__(message)
        self.instance_index = instance_index
        self.purpose = purpose
        self.attempts = attempts

class ImageRecognitionError(BotError):
    """Exception raised for image recognition errors"""
    pass

class OCRError(BotError):
    """Exception raised when the OCR engine fails"""
    pass

class ConfigurationError(BotError):
    """Exception raised for configuration errors"""
    pass

class TaskError(BotError):
    """Exception raised for task controller misuse"""
    pass
