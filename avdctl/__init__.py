"""avdctl — Android SDK 与模拟器 (AVD) 管理工具。"""

__version__ = "0.1.0"
