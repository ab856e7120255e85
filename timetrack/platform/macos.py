"""macOS sampling source using AppleScript (osascript)."""

import logging
import subprocess
from typing import Optional

from timetrack.core.models import Sample
from timetrack.platform.base import Sampler

logger = logging.getLogger(__name__)

# Browsers whose active tab URL can be read over AppleScript, by bundle id.
BROWSER_APPS = {
    "com.apple.Safari": ("Safari", "current tab"),
    "com.google.Chrome": ("Google Chrome", "active tab"),
    "company.thebrowser.Browser": ("Arc", "active tab"),
}

_FRONTMOST_SCRIPT = (
    'tell application "System Events"\n'
    "  set fp to first application process whose frontmost is true\n"
    '  return (name of fp) & linefeed & (bundle identifier of fp)\n'
    "end tell"
)

_TITLE_SCRIPT = (
    'tell application "System Events"\n'
    "  set fp to first application process whose frontmost is true\n"
    "  if (count of windows of fp) > 0 then\n"
    "    return name of first window of fp\n"
    "  end if\n"
    "end tell"
)


class MacOSSampler(Sampler):
    """Sample the frontmost app, its front window title and browser URL.

    Needs the Accessibility/Automation permissions for System Events.
    Without them, or with nothing focused, the idle sample is returned.
    """

    def get_sample(self) -> Optional[Sample]:
        frontmost = self._run_osascript(_FRONTMOST_SCRIPT)
        if frontmost is None:
            return Sample.idle()

        app_name, _, bundle_id = frontmost.partition("\n")
        app_name = app_name.strip()
        if not app_name:
            return Sample.idle()
        bundle_id = bundle_id.strip() or None
        if bundle_id == "missing value":
            bundle_id = None

        window_title = self._run_osascript(_TITLE_SCRIPT)
        url = self._get_browser_url(bundle_id)

        return Sample(
            app_name=app_name,
            app_bundle_id=bundle_id,
            window_title=window_title,
            url=url,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_browser_url(self, bundle_id: Optional[str]) -> Optional[str]:
        if bundle_id not in BROWSER_APPS:
            return None
        app, tab = BROWSER_APPS[bundle_id]
        script = (
            f'tell application "{app}"\n'
            f"  if (count of windows) > 0 then\n"
            f"    return URL of {tab} of front window\n"
            f"  end if\n"
            f"end tell"
        )
        return self._run_osascript(script)

    def _run_osascript(self, script: str) -> Optional[str]:
        """Execute an AppleScript snippet via ``osascript`` and return stdout.

        Returns ``None`` on any error or empty output.
        """
        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=5,
            )
            if result.returncode != 0:
                logger.debug(
                    "osascript returned %d: %s", result.returncode, result.stderr.strip()
                )
                return None
            output = result.stdout.strip()
            return output if output else None
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
            logger.debug("osascript execution failed: %s", exc)
            return None
