"""
Run configuration for robo_mobile_test_kit.

Every value the plugin needs (platform, target, report locations, report
metadata) is resolved once from command-line options and environment
variables into a frozen RunSettings, then passed explicitly to the report
pipeline and the app helpers.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from .utils.RoboHelper import get_env


logger = logging.getLogger(__name__)
logger.propagate = True

SUPPORTED_THEMES = ("bootstrap", "simple")


class Platform(Enum):
    ANDROID = "AppAndroid"
    IOS = "AppiOS"

    @classmethod
    def parse(cls, value):
        normalized = str(value or "").strip().lower()
        for member in cls:
            if normalized in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(
            f"Unsupported platform '{value}', expected one of "
            f"{', '.join(m.value for m in cls)}"
        )


class ExecutionTarget(Enum):
    LOCAL = "local"
    BROWSERSTACK = "browserstack"

    @classmethod
    def parse(cls, value):
        normalized = str(value or "").strip().lower()
        for member in cls:
            if normalized == member.value:
                return member
        raise ValueError(
            f"Unsupported execution target '{value}', expected one of "
            f"{', '.join(m.value for m in cls)}"
        )


@dataclass(frozen=True)
class ReportMetadata:
    app_version: str = "Version xxxxxx"
    environment: str = "local"
    parallelism_mode: str = "Scenarios"
    execution_mode: str = "Remote"

    def as_dict(self):
        return {
            "App Version": self.app_version,
            "Test Environment": self.environment,
            "Parallel": self.parallelism_mode,
            "Executed": self.execution_mode,
        }


@dataclass(frozen=True)
class RunSettings:
    platform: Platform = Platform.ANDROID
    target: ExecutionTarget = ExecutionTarget.LOCAL
    suite_name: str = ""
    parallel: bool = False
    json_dir: Path = Path("reports/json/tmp")
    report_dir: Path = Path("reports/html")
    download_dir: Path = Path("tempDownloads")
    theme: str = "bootstrap"
    store_screenshots: bool = False
    open_report: bool = False
    brand_title: str = "Appium-Pytest-BDD Tests"
    app_version: str = "Version xxxxxx"
    app_id: str = ""
    log_level: str = "DEBUG"
    browserstack: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.theme not in SUPPORTED_THEMES:
            raise ValueError(
                f"Unsupported report theme '{self.theme}', expected one of "
                f"{', '.join(SUPPORTED_THEMES)}"
            )

    @property
    def canonical_json(self):
        return Path(self.json_dir) / "report.json"

    @property
    def screenshots_dir(self):
        return Path(self.report_dir) / "screenshots"

    def report_metadata(self):
        return ReportMetadata(
            app_version=self.app_version,
            environment=self.target.value,
            parallelism_mode="Scenarios" if self.parallel else "None",
            execution_mode="Remote" if self.target is ExecutionTarget.BROWSERSTACK else "Local",
        )


def load_environment():
    """Load .env, then the APP_ENV specific .env.<name> on top of it."""
    load_dotenv()

    app_env = os.getenv("APP_ENV", "").upper()
    if app_env:
        env_file = f".env.{app_env.lower()}"
        if os.path.exists(env_file):
            load_dotenv(env_file, override=True)
            logger.info(f"Loaded environment-specific config from {env_file}")
        else:
            logger.warning(f"Environment file {env_file} not found for APP_ENV={app_env}")


def _is_yes(value):
    return str(value).strip().upper() in ("Y", "YES", "TRUE", "1")


def _option(config, name):
    if config is None:
        return None
    return config.getoption(name, default=None)


def build_run_settings(config=None):
    """
    Resolve RunSettings from pytest options, falling back to env variables.

    Raises:
        ValueError: unknown platform, execution target or theme
    """
    platform = Platform.parse(
        _option(config, "robo_platform") or get_env("PLATFORM", Platform.ANDROID.value)
    )
    target = ExecutionTarget.parse(
        _option(config, "robo_env") or get_env("RUN_ON", ExecutionTarget.LOCAL.value)
    )

    store_screenshots = _option(config, "robo_store_screenshots")
    if store_screenshots is None:
        store_screenshots = _is_yes(get_env("STORE_SCREENSHOTS", "N"))

    open_report = _option(config, "robo_open_report")
    if open_report is None:
        open_report = _is_yes(get_env("OPEN_REPORT", "N"))

    if platform is Platform.ANDROID:
        app_id = get_env("APP_ID_ANDROID", "com.saucelabs.mydemoapp.rn")
    else:
        app_id = get_env("APP_ID_IOS", "com.saucelabs.mydemoapp.rn")

    return RunSettings(
        platform=platform,
        target=target,
        suite_name=_option(config, "robo_suite") or get_env("SUITE", ""),
        parallel=_is_yes(get_env("PARALLEL_EXECUTION", "N")),
        json_dir=Path(_option(config, "robo_json_dir") or get_env("JSON_DIR", "reports/json/tmp")),
        report_dir=Path(_option(config, "robo_report_dir") or get_env("REPORT_DIR", "reports/html")),
        download_dir=Path(
            _option(config, "robo_download_dir") or get_env("DOWNLOAD_DIR", "tempDownloads")
        ),
        theme=(_option(config, "robo_theme") or get_env("REPORT_THEME", "bootstrap")).lower(),
        store_screenshots=bool(store_screenshots),
        open_report=bool(open_report),
        brand_title=get_env("REPORT_BRAND_TITLE", "Appium-Pytest-BDD Tests"),
        app_version=get_env("APP_VERSION", "Version xxxxxx"),
        app_id=app_id,
        log_level=(_option(config, "robo_log_level") or get_env("LOG_LEVEL", "DEBUG")).upper(),
        browserstack={
            "username": get_env("BROWSERSTACK_USERNAME", ""),
            "access_key": get_env("BROWSERSTACK_ACCESS_KEY", ""),
            "hub": get_env("BROWSERSTACK_HUB", "hub.browserstack.com"),
            "android_app_url": get_env("BROWSERSTACK_ANDROID_APP_URL", ""),
            "ios_app_url": get_env("BROWSERSTACK_IOS_APP_URL", ""),
        },
    )


# ============================================================================
# Capabilities and services handed to the external Appium/BrowserStack layer
# ============================================================================


def get_capabilities(settings):
    if settings.target is ExecutionTarget.BROWSERSTACK:
        browserstack_options = {
            "browserstack.debug": True,
            "browserstack.video": True,
            "browserstack.networkLogs": True,
        }
        if settings.platform is Platform.ANDROID:
            return [
                {
                    "deviceName": "Samsung Galaxy S22 Ultra",
                    "platformVersion": "12.0",
                    "platformName": "android",
                    "app": settings.browserstack.get("android_app_url", ""),
                    **browserstack_options,
                }
            ]
        return [
            {
                "deviceName": "iPhone 14 Pro Max",
                "platformVersion": "16",
                "platformName": "ios",
                "app": settings.browserstack.get("ios_app_url", ""),
                **browserstack_options,
            }
        ]

    if settings.platform is Platform.ANDROID:
        return [
            {
                "platformName": "Android",
                "maxInstances": 1,
                "appium:deviceName": "Pixel_7",
                "appium:platformVersion": "16.0",
                "appium:automationName": "UiAutomator2",
                "appium:app": "./AppAndroid/Configs/apps/Android-MyDemoAppRN.1.3.0.build-244.apk",
                "appium:autoGrantPermissions": True,
            }
        ]
    return [
        {
            "platformName": "iOS",
            "maxInstances": 1,
            "appium:deviceName": "iPhone 14",
            "appium:platformVersion": "16.0",
            "appium:automationName": "XCUITest",
            "appium:app": "./AppiOS/Configs/apps/iOS-Real-Device-MyRNDemoApp.1.3.0-162.ipa",
            "appium:autoAcceptAlerts": True,
        }
    ]


def get_services(settings):
    if settings.target is ExecutionTarget.BROWSERSTACK:
        return [
            (
                "browserstack",
                {
                    "testObservability": True,
                    "testObservabilityOptions": {
                        "projectName": "Demo App Automation",
                        "buildName": f"Pytest-{settings.platform.value}-Test",
                        "buildTag": "Tag1",
                        "accessibility": False,
                    },
                },
            )
        ]

    appium = {
        "command": "appium",
        "args": {
            "address": "127.0.0.1",
            "port": 4723,
            "log": "./appium.log",
            "basePath": "/wd/hub",
        },
    }
    # iOS waits up to 60s for the Appium server
    if settings.platform is Platform.IOS:
        appium["waitStartTimeout"] = 60000
    return [("appium", appium)]
