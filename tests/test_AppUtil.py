from robo_mobile_test_kit.config import Platform
from robo_mobile_test_kit.utils.AppUtil import reset_mobile_app, uninstall_app


class FakeDriver:
    def __init__(self, remove_result=True, remove_error=None):
        self.calls = []
        self.remove_result = remove_result
        self.remove_error = remove_error

    def terminate_app(self, app_id):
        self.calls.append(("terminate_app", app_id))
        return True

    def activate_app(self, app_id):
        self.calls.append(("activate_app", app_id))

    def execute_script(self, script, args):
        self.calls.append(("execute_script", script, args))

    def remove_app(self, app_id):
        self.calls.append(("remove_app", app_id))
        if self.remove_error:
            raise self.remove_error
        return self.remove_result


def test_reset_android_app():
    driver = FakeDriver()

    reset_mobile_app(driver, "com.demo", Platform.ANDROID)

    assert driver.calls == [("terminate_app", "com.demo"), ("activate_app", "com.demo")]


def test_reset_ios_app():
    driver = FakeDriver()

    reset_mobile_app(driver, "com.demo", Platform.IOS)

    assert driver.calls == [
        ("terminate_app", "com.demo"),
        ("execute_script", "mobile: launchApp", {"bundleId": "com.demo"}),
    ]


def test_uninstall_app():
    assert uninstall_app(FakeDriver(), "com.demo") is True
    assert uninstall_app(FakeDriver(remove_result=False), "com.demo") is False


def test_uninstall_app_is_best_effort():
    driver = FakeDriver(remove_error=RuntimeError("not installed"))

    assert uninstall_app(driver, "com.demo") is False
    assert driver.calls == [("remove_app", "com.demo")]
