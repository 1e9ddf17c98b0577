"""
Configuration, logging and metrics utilities
"""

from .config import DetectionSettings, get_settings
from .metrics import DetectionMetrics

__all__ = ['DetectionSettings', 'get_settings', 'DetectionMetrics']
