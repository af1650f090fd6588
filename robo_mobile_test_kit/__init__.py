"""
Robo Mobile Test Kit
Consolidated cucumber-JSON and HTML reporting for pytest driven Appium suites.
"""

from robo_mobile_test_kit.utils import RoboHelper
from robo_mobile_test_kit.utils.AppUtil import reset_mobile_app, uninstall_app

__version__ = RoboHelper.get_version()

__all__ = ["RoboHelper", "reset_mobile_app", "uninstall_app"]
