"""
Annotator host.

Hosts independently packaged, versioned annotator modules and exposes their
embedded 'config', 'task' and 'ext' web-apps over HTTP.
"""

__version__ = "1.0.0"
