"""
Platform abstraction layer.

Detects the host OS family and userland variant, resolves logical command
names to binaries with the right flag dialect, and hands the result to the
abstracted operations through a PlatformContext.
"""

import platform as _platform

# Interpreter-level view of the host; the detector refines this into an
# OSFamily/Variant profile.
IS_WINDOWS = _platform.system() == "Windows"
IS_POSIX = not IS_WINDOWS
