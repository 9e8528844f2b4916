"""
MEmu Gather Bot - Main Package
Screen-driven automation for games running in MEmu Android instances.
"""

__version__ = "1.0.0"
__author__ = "MEmu Gather Bot Team"
__description__ = "Screenshot, template matching and OCR driven task automation for MEmu instances"
