"""
Helpers for resetting or removing the app under test through an Appium driver.

The driver is whatever session the consuming project creates (for example an
``appium.webdriver.Remote``); only its app-management commands are used here.
"""

import logging

from ..config import Platform


logger = logging.getLogger(__name__)
logger.propagate = True


def reset_mobile_app(driver, app_id, platform):
    """
    Reset the app by terminating and relaunching it.

    Android relaunches with activate_app, iOS with the XCUITest launchApp command.

    Args:
        driver: Appium driver session
        app_id: Package name (Android) or bundle id (iOS)
        platform: Platform the session runs on
    """
    logger.debug(f"Resetting {app_id} on {platform.value}")
    driver.terminate_app(app_id)
    if platform is Platform.ANDROID:
        driver.activate_app(app_id)
    else:
        driver.execute_script("mobile: launchApp", {"bundleId": app_id})


def uninstall_app(driver, app_id):
    """Best-effort removal of the app; returns False when the driver refuses."""
    try:
        removed = driver.remove_app(app_id)
    except Exception as exc:
        logger.warning(f"Could not uninstall {app_id}: {exc}")
        return False
    return bool(removed) if removed is not None else True
