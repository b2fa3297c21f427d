"""
Live Session Capture
====================
Opens a headed (visible) browser so a human can complete a login that
cannot be automated: SSO/SAML redirects, MFA, CAPTCHA, consent screens.

Workflow:
    1. Launch headed Chromium and navigate to the site
    2. The user logs in by hand
    3. The user presses Enter in the terminal
    4. The page is reloaded so late cookies land
    5. ``storage_state`` (cookies + localStorage) is written to disk

The saved file is later replayed verbatim by the auth manager.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Optional

from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)


def _wait_for_enter() -> str:
    """Block until the user presses Enter (runs in executor)."""
    try:
        return input("  Press ENTER when login is complete → ")
    except (EOFError, KeyboardInterrupt):
        return ""


async def capture_live_session(
    url: str,
    output_path: Path,
    *,
    timeout_minutes: int = 10,
    wait_for_user: Optional[Callable[[], str]] = None,
) -> bool:
    """Run the headed capture and save the session to *output_path*.

    Returns:
        True if a session with at least one cookie was saved.
    """
    print("\n" + "=" * 60)
    print("  LIVE SESSION CAPTURE")
    print("=" * 60)
    print(f"  Site:         {url}")
    print(f"  Output file:  {output_path}")
    print(f"  Timeout:      {timeout_minutes} minutes")
    print("=" * 60)
    print("  A browser window will open. Log in completely (including MFA),")
    print("  then come back here and press ENTER to save the session.")
    print("=" * 60)

    pw = await async_playwright().start()
    browser = None
    context = None

    try:
        browser = await pw.chromium.launch(headless=False, args=['--start-maximized'])
        context = await browser.new_context(viewport=None, locale="en-US")
        page = await context.new_page()

        try:
            await page.goto(url, wait_until="load", timeout=60_000)
        except Exception as e:
            logger.warning(f"[SESSION] Initial navigation issue: {e}")

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, wait_for_user or _wait_for_enter),
                timeout=timeout_minutes * 60,
            )
        except asyncio.TimeoutError:
            print(f"\n  ⏰ Timeout ({timeout_minutes} min) — saving current state anyway.")

        try:
            await page.reload(wait_until="load", timeout=30_000)
        except Exception as e:
            logger.debug(f"[SESSION] Reload before save failed: {e}")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        await context.storage_state(path=str(output_path))

        data = json.loads(output_path.read_text(encoding="utf-8"))
        cookies = data.get("cookies", [])
        print(f"\n  Session saved: {output_path}")
        print(f"  Cookies:       {len(cookies)}")
        print(f"  Origins:       {len(data.get('origins', []))}")

        if not cookies:
            print("\n  ⚠  No cookies saved — login may not have completed.\n")
            return False
        print("\n  ✅ Live session captured.\n")
        return True

    except Exception as e:
        logger.error(f"[SESSION] Live capture failed: {e}")
        return False
    finally:
        if context:
            try:
                await context.close()
            except Exception:
                pass
        if browser:
            try:
                await browser.close()
            except Exception:
                pass
        try:
            await pw.stop()
        except Exception:
            pass
