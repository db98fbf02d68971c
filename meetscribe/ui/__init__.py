"""Terminal user interface."""

from .keyboard_input import KeyboardInputHandler
from .status_screen import render_status, format_elapsed, render_levels, KEY_HINTS

__all__ = ['KeyboardInputHandler', 'render_status', 'format_elapsed', 'render_levels', 'KEY_HINTS']
