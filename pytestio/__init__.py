"""pytestio - remote Appium/WebDriver sessions for pytest with WebdriverIO-style services."""

__version__ = "0.1.0"
