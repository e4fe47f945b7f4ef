"""
MIMO Installer Templates Package

Provides loading and rendering of shell snippets dropped onto the host.
"""

from .loader import TemplateLoader

__all__ = ["TemplateLoader"]
